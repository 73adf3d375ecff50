"""
Blob transfer error classes.

Provides a clear taxonomy of errors that can occur while talking to a registry:
transport failures, peer rejections (tagged with the HTTP status code) and
protocol violations such as a missing upload Location header.
"""
from __future__ import annotations

from typing import Optional

import httpx


class BlobError(Exception):
    """Base class for all blob transfer errors."""
    pass


class TransportError(BlobError):
    """
    The request never produced an HTTP response.

    Raised when:
    - Connection refused or DNS failure
    - Connect/read/write timeouts
    - Malformed response at the HTTP layer
    """
    pass


class RegistryStatusError(BlobError):
    """
    The registry answered with a non-success status code.

    The status code is carried as a field so callers can branch on it
    directly (``err.status_code == 404``) instead of inspecting wrappers.
    """

    def __init__(self, message: str, status_code: int, method: str = "",
                 url: str = "", response: Optional[httpx.Response] = None):
        super().__init__(message)
        self.status_code = status_code
        self.method = method
        self.url = url
        self.response = response

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class BlobNotFound(RegistryStatusError):
    """HTTP 404: blob, upload session or repository does not exist."""
    pass


class RegistryAuthError(RegistryStatusError):
    """
    Authentication or authorization error.

    Raised when:
    - HTTP 401 Unauthorized (no or invalid credentials after the challenge)
    - HTTP 403 Forbidden (insufficient permissions)
    """
    pass


class PayloadTooLarge(RegistryStatusError):
    """HTTP 413: registry enforces size limits on blobs or chunks."""
    pass


class RateLimited(RegistryStatusError):
    """HTTP 429: registry enforces rate limiting."""
    pass


class ProtocolError(BlobError):
    """The registry response violates the distribution protocol."""
    pass


class MissingHeaderError(ProtocolError):
    """A required response header is absent or unparseable."""

    def __init__(self, message: str, header: str):
        super().__init__(message)
        self.header = header


class SessionOpenError(BlobError):
    """An upload session could not be opened; the cause is chained."""

    def __init__(self, message: str, repository: str):
        super().__init__(message)
        self.repository = repository


class SourceExhaustedError(BlobError):
    """A body source produced fewer bytes than the declared blob length."""
    pass


_STATUS_ERRORS = {
    401: RegistryAuthError,
    403: RegistryAuthError,
    404: BlobNotFound,
    413: PayloadTooLarge,
    429: RateLimited,
}


def status_error_for(response: httpx.Response, method: str, url: str) -> RegistryStatusError:
    """
    Build the tagged error for a non-success response.

    Args:
        response: Final response (after any auth challenge was answered)
        method: HTTP method of the request
        url: Request URL

    Returns:
        RegistryStatusError subclass matching the status code
    """
    status = response.status_code
    error_cls = _STATUS_ERRORS.get(status, RegistryStatusError)
    return error_cls(
        f"Registry returned {status} for {method} {url}",
        status_code=status,
        method=method,
        url=url,
        response=response,
    )


__all__ = [
    "BlobError",
    "TransportError",
    "RegistryStatusError",
    "BlobNotFound",
    "RegistryAuthError",
    "PayloadTooLarge",
    "RateLimited",
    "ProtocolError",
    "MissingHeaderError",
    "SessionOpenError",
    "SourceExhaustedError",
    "status_error_for",
]
