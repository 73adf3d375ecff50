"""
Data models for blob transfers.

Digest and Descriptor identify blobs known to the registry; ByteRange and
UploadSession carry the bookkeeping of a single in-progress upload.
"""
from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = ["Digest", "Descriptor", "ByteRange", "UploadSession", "plan_chunks"]

_DIGEST_RE = re.compile(r"^([a-z0-9]+(?:[+._-][a-z0-9]+)*):([a-zA-Z0-9=_-]+)$")

# Registered algorithms with a fixed lowercase-hex encoding
_HEX_LENGTHS = {"sha256": 64, "sha512": 128}
_HEX_RE = re.compile(r"^[a-f0-9]+$")


@dataclass(frozen=True)
class Digest:
    """
    Content identifier in canonical ``algorithm:encoded`` form.

    Opaque to this package beyond its string form and equality; the
    registry is the one that checks it against the uploaded bytes.
    """
    algorithm: str
    encoded: str

    @classmethod
    def parse(cls, value: str) -> Digest:
        """
        Parse a digest string.

        Raises:
            ValueError: If the string is not a well-formed digest
        """
        match = _DIGEST_RE.match(value or "")
        if not match:
            raise ValueError(f"Invalid digest format: {value}")

        algorithm, encoded = match.group(1), match.group(2)
        expected_len = _HEX_LENGTHS.get(algorithm)
        if expected_len is not None:
            if len(encoded) != expected_len or not _HEX_RE.match(encoded):
                raise ValueError(
                    f"Invalid {algorithm} digest: expected {expected_len} lowercase hex characters"
                )
        return cls(algorithm=algorithm, encoded=encoded)

    @classmethod
    def from_bytes(cls, data: bytes, algorithm: str = "sha256") -> Digest:
        """Compute the digest of in-memory content."""
        if algorithm not in _HEX_LENGTHS:
            raise ValueError(f"Unsupported digest algorithm: {algorithm}")
        return cls(algorithm=algorithm, encoded=hashlib.new(algorithm, data).hexdigest())

    @classmethod
    def from_file(cls, path: Union[str, Path], algorithm: str = "sha256") -> Digest:
        """Compute the digest of a file without loading it into memory."""
        if algorithm not in _HEX_LENGTHS:
            raise ValueError(f"Unsupported digest algorithm: {algorithm}")
        hasher = hashlib.new(algorithm)
        with open(path, "rb") as f:
            for block in iter(lambda: f.read(1024 * 1024), b""):
                hasher.update(block)
        return cls(algorithm=algorithm, encoded=hasher.hexdigest())

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.encoded}"


class Descriptor(BaseModel):
    """Digest and size of a blob resident on the registry."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    digest: Digest = Field(..., description="Content digest")
    size: int = Field(..., ge=0, description="Blob size in bytes")
    media_type: Optional[str] = Field(default=None, description="Content-Type reported by the registry")

    @field_validator("digest", mode="before")
    @classmethod
    def parse_digest(cls, v):
        """Accept canonical digest strings as well as Digest values."""
        if isinstance(v, str):
            return Digest.parse(v)
        return v


@dataclass(frozen=True)
class ByteRange:
    """
    Half-open interval ``[start, end)`` of a blob's bytes.

    Invariants:
    - 0 <= start <= end
    """
    start: int
    end: int

    def __post_init__(self):
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid byte range [{self.start}, {self.end})")

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def content_range(self) -> str:
        """Content-Range header value with an inclusive end, e.g. ``0-8095999``."""
        return f"{self.start}-{self.end - 1}"


@dataclass
class UploadSession:
    """
    In-progress resumable upload.

    The location is rotated by the registry after each partial write and
    the cursor tracks how many bytes have been accepted so far. Owned by a
    single upload call and never shared or persisted.
    """
    repository: str
    location: str
    cursor: int = 0

    def advance(self, location: str, written: int) -> None:
        """Record a completed partial write."""
        self.location = location
        self.cursor += written


def plan_chunks(total_length: int, chunk_size: int) -> List[ByteRange]:
    """
    Split ``[0, total_length)`` into full-size chunks plus the remainder.

    The last element is always the finalizing range; it is empty when
    ``total_length`` is an exact multiple of ``chunk_size``.

    Args:
        total_length: Blob size in bytes
        chunk_size: Size of each partial write

    Returns:
        Contiguous, non-overlapping, increasing ranges covering the blob
    """
    if total_length < 0:
        raise ValueError(f"total_length must be non-negative, got {total_length}")
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    full_chunks = total_length // chunk_size
    ranges = [
        ByteRange(i * chunk_size, (i + 1) * chunk_size)
        for i in range(full_chunks)
    ]
    ranges.append(ByteRange(full_chunks * chunk_size, total_length))
    return ranges
