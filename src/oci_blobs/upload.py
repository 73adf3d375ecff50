"""
Chunked blob transfer engine.

Uploads a blob either as one digest-qualified PUT (payloads up to the chunk
size) or as a sequence of PATCH writes followed by a finalizing PUT. Every
request body is produced by a factory that re-opens the caller's source, so
the transport can regenerate it after an authentication challenge.
"""
from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Optional, Union

from .errors import SourceExhaustedError
from .models import ByteRange, Descriptor, Digest, UploadSession, plan_chunks
from .session import location_from, open_upload_session
from .settings import DEFAULT_CHUNK_SIZE
from .transport import BodyFactory, RegistryTransport

logger = logging.getLogger(__name__)

__all__ = ["BodySource", "BlobUploader", "bytes_source", "file_source"]

# Zero-argument callable returning a fresh binary stream positioned at offset 0
BodySource = Callable[[], BinaryIO]

OCTET_STREAM = "application/octet-stream"

_READ_BLOCK = 1024 * 1024


def bytes_source(data: bytes) -> BodySource:
    """Body source over in-memory content."""
    return lambda: io.BytesIO(data)


def file_source(path: Union[str, Path]) -> BodySource:
    """Body source that re-opens a file on every call."""
    path = Path(path)
    return lambda: open(path, "rb")


def _skip_to(stream: BinaryIO, offset: int) -> None:
    if offset == 0:
        return
    seekable = getattr(stream, "seekable", None)
    if seekable is not None and seekable():
        stream.seek(offset)
        return
    remaining = offset
    while remaining > 0:
        block = stream.read(min(_READ_BLOCK, remaining))
        if not block:
            raise SourceExhaustedError(f"Body source ended before offset {offset}")
        remaining -= len(block)


def iter_range(source: BodySource, byte_range: ByteRange) -> Iterator[bytes]:
    """
    Yield exactly the bytes of ``byte_range`` from a fresh source stream.

    Raises:
        SourceExhaustedError: If the source ends before the range does
    """
    with source() as stream:
        _skip_to(stream, byte_range.start)
        remaining = byte_range.length
        while remaining > 0:
            block = stream.read(min(_READ_BLOCK, remaining))
            if not block:
                raise SourceExhaustedError(
                    f"Body source ended {remaining} bytes short of range {byte_range.content_range}"
                )
            remaining -= len(block)
            yield block


def _range_body(source: BodySource, byte_range: ByteRange) -> Optional[BodyFactory]:
    if byte_range.length == 0:
        return None
    return lambda: iter_range(source, byte_range)


class BlobUploader:
    """
    Drives one upload session from initiation to a digest-qualified PUT.

    Writes are strictly sequential: each PATCH targets the location returned
    by the previous response. Any failure aborts the whole upload and the
    session is left for the registry to expire.
    """

    def __init__(self, transport: RegistryTransport, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.transport = transport
        self.chunk_size = chunk_size

    def upload(self, repository: str, digest: Union[Digest, str], total_length: int,
               source: BodySource) -> Descriptor:
        """
        Upload a blob.

        Args:
            repository: Target repository
            digest: Expected digest of the full content
            total_length: Size of the content in bytes
            source: Factory returning a fresh stream of the content from offset 0

        Returns:
            Descriptor of the registered blob

        Raises:
            SessionOpenError: Upload session could not be opened
            RegistryStatusError: A write was rejected
            TransportError: Network failure
            MissingHeaderError: A PATCH response carried no Location
            SourceExhaustedError: Source shorter than total_length
        """
        if isinstance(digest, str):
            digest = Digest.parse(digest)
        if total_length < 0:
            raise ValueError(f"total_length must be non-negative, got {total_length}")
        if source is None:
            raise ValueError("source is required")

        session = open_upload_session(self.transport, repository)

        if total_length <= self.chunk_size:
            logger.debug(f"Single-shot upload of {digest} ({total_length} bytes) to {repository}")
            self._finalize(session, digest, ByteRange(0, total_length), source, with_range=False)
        else:
            ranges = plan_chunks(total_length, self.chunk_size)
            final_range = ranges.pop()
            logger.debug(
                f"Chunked upload of {digest} ({total_length} bytes) to {repository}: "
                f"{len(ranges)} chunks of {self.chunk_size} bytes"
            )
            for byte_range in ranges:
                self._write_chunk(session, byte_range, source)
            self._finalize(session, digest, final_range, source, with_range=final_range.length > 0)

        logger.info(f"Uploaded {digest} ({total_length} bytes) to {repository}")
        return Descriptor(digest=digest, size=total_length)

    def upload_bytes(self, repository: str, digest: Union[Digest, str], data: bytes) -> Descriptor:
        """Upload in-memory content."""
        return self.upload(repository, digest, len(data), bytes_source(data))

    def _write_chunk(self, session: UploadSession, byte_range: ByteRange, source: BodySource) -> None:
        """PATCH one full-size chunk and adopt the rotated location."""
        if byte_range.start != session.cursor:
            raise ValueError(f"Chunk {byte_range.content_range} does not start at cursor {session.cursor}")

        logger.debug(f"PATCH {session.location} Content-Range={byte_range.content_range}")
        response = self.transport.request(
            "PATCH",
            session.location,
            headers={
                "Content-Type": OCTET_STREAM,
                "Content-Length": str(byte_range.length),
                "Content-Range": byte_range.content_range,
            },
            body=_range_body(source, byte_range),
        )
        session.advance(location_from(response), byte_range.length)

    def _finalize(self, session: UploadSession, digest: Digest, byte_range: ByteRange,
                  source: BodySource, with_range: bool) -> None:
        """PUT the last bytes with the digest query parameter, closing the session."""
        headers = {
            "Content-Type": OCTET_STREAM,
            "Content-Length": str(byte_range.length),
        }
        if with_range:
            headers["Content-Range"] = byte_range.content_range
        elif byte_range.start > 0:
            # Exact multiple of the chunk size: nothing left to send
            logger.debug(f"Finalizing {digest} with an empty body at offset {byte_range.start}")

        logger.debug(f"PUT {session.location} digest={digest} Content-Length={byte_range.length}")
        self.transport.request(
            "PUT",
            session.location,
            headers=headers,
            params={"digest": str(digest)},
            body=_range_body(source, byte_range),
        )
        session.advance(session.location, byte_range.length)
