"""
Blob client for OCI registries.

Single entry point for blob operations: upload (single-shot or chunked),
download, existence and metadata probes, and cross-repository mounts.
Constructed once from explicit Settings; there is no module-level client.
"""
from __future__ import annotations

import logging
from typing import Iterator, Optional, Union

import httpx

from .errors import MissingHeaderError, RegistryStatusError, TransportError
from .models import Descriptor, Digest
from .settings import Settings
from .transport import DockerAuth, RegistryTransport
from .upload import BlobUploader, BodySource

logger = logging.getLogger(__name__)

__all__ = ["BlobClient", "BlobStream"]


def _blob_path(repository: str, digest: Digest) -> str:
    return f"/v2/{repository}/blobs/{digest}"


def _as_digest(digest: Union[Digest, str]) -> Digest:
    return Digest.parse(digest) if isinstance(digest, str) else digest


class BlobStream:
    """
    Live byte stream of a downloaded blob.

    Owned by a single consumer, which must close it (or use it as a
    context manager).
    """

    def __init__(self, response: httpx.Response, digest: Digest):
        self._response = response
        self.digest = digest

    @property
    def content_length(self) -> Optional[int]:
        value = self._response.headers.get("Content-Length")
        return int(value) if value and value.isdigit() else None

    def iter_bytes(self, chunk_size: Optional[int] = None) -> Iterator[bytes]:
        try:
            yield from self._response.iter_bytes(chunk_size)
        except httpx.RequestError as e:
            raise TransportError(f"Network error reading blob {self.digest}: {e}") from e

    def read(self) -> bytes:
        """Read the remaining content."""
        try:
            return self._response.read()
        except httpx.RequestError as e:
            raise TransportError(f"Network error reading blob {self.digest}: {e}") from e

    def close(self) -> None:
        self._response.close()

    @property
    def closed(self) -> bool:
        return self._response.is_closed

    def __enter__(self) -> BlobStream:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class BlobClient:
    """
    Blob operations against one registry.

    Example:
        >>> settings = Settings(registry_url="localhost:5000", registry_insecure=True)
        >>> with BlobClient(settings) as client:
        ...     client.upload_bytes("myorg/app", digest, data)
        ...     client.has_blob("myorg/app", digest)
        True
    """

    def __init__(self, settings: Settings, auth: Optional[DockerAuth] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize blob client.

        Args:
            settings: Registry configuration
            auth: Docker auth handler (defaults to the configured Docker config)
            transport: Optional httpx transport override
        """
        self.settings = settings
        self.transport = RegistryTransport(settings, auth=auth, transport=transport)
        self.uploader = BlobUploader(self.transport, chunk_size=settings.chunk_size)

    # Uploads

    def upload_blob(self, repository: str, digest: Union[Digest, str], total_length: int,
                    source: BodySource) -> Descriptor:
        """
        Upload a blob from a restartable source.

        The source is a zero-argument callable returning a fresh binary
        stream at offset 0; it may be called several times (once per chunk
        and again whenever the registry issues an auth challenge).
        """
        return self.uploader.upload(repository, _as_digest(digest), total_length, source)

    def upload_bytes(self, repository: str, digest: Union[Digest, str], data: bytes) -> Descriptor:
        """Upload in-memory content, chunked when larger than the chunk size."""
        return self.uploader.upload_bytes(repository, _as_digest(digest), data)

    # Downloads

    def download_blob(self, repository: str, digest: Union[Digest, str]) -> BlobStream:
        """
        Open a streaming download of a blob.

        Raises:
            BlobNotFound: If the registry does not have the blob
            RegistryStatusError: For other rejections
            TransportError: Network failure
        """
        digest = _as_digest(digest)
        logger.debug(f"Downloading {repository}@{digest}")
        response = self.transport.request("GET", _blob_path(repository, digest), stream=True)
        return BlobStream(response, digest)

    def get_blob_content(self, repository: str, digest: Union[Digest, str]) -> bytes:
        """Download a blob fully into memory."""
        with self.download_blob(repository, digest) as stream:
            return stream.read()

    # Probes

    def has_blob(self, repository: str, digest: Union[Digest, str]) -> bool:
        """
        Check whether a blob exists in a repository.

        Returns:
            True on a success status, False when the registry answers 404

        Raises:
            RegistryStatusError: Any other rejection (e.g., 401, 500)
            TransportError: Network failure
        """
        digest = _as_digest(digest)
        logger.debug(f"Checking {repository}@{digest}")
        try:
            self.transport.request("HEAD", _blob_path(repository, digest))
        except RegistryStatusError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    def blob_metadata(self, repository: str, digest: Union[Digest, str]) -> Descriptor:
        """
        Describe a blob without downloading it.

        Raises:
            RegistryStatusError: Any rejection, including 404
            TransportError: Network failure
            MissingHeaderError: No usable Content-Length in the response
        """
        digest = _as_digest(digest)
        logger.debug(f"Fetching metadata for {repository}@{digest}")
        response = self.transport.request("HEAD", _blob_path(repository, digest))

        length = response.headers.get("Content-Length", "")
        if not length.isdigit():
            raise MissingHeaderError(
                f"Registry returned no usable Content-Length for {repository}@{digest}",
                header="Content-Length",
            )
        return Descriptor(
            digest=digest,
            size=int(length),
            media_type=response.headers.get("Content-Type"),
        )

    # Mounts

    def mount_blob(self, repository: str, digest: Union[Digest, str], from_repository: str) -> None:
        """
        Ask the registry to link a blob from another repository.

        No content passes through the client. A 202 means the registry
        declined to mount and opened an upload session instead; it is
        logged and otherwise treated as success.
        """
        digest = _as_digest(digest)
        if not from_repository:
            raise ValueError("from_repository is required")

        logger.debug(f"Mounting {digest} from {from_repository} into {repository}")
        response = self.transport.request(
            "POST",
            f"/v2/{repository}/blobs/uploads/",
            headers={"Content-Type": "application/octet-stream", "Content-Length": "0"},
            params={"mount": str(digest), "from": from_repository},
        )
        if response.status_code == 202:
            logger.info(f"Registry did not mount {digest} into {repository}; upload session opened instead")
        else:
            logger.info(f"Mounted {digest} from {from_repository} into {repository}")

    def close(self):
        """Close the underlying transport."""
        self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
