"""
Upload session initiation.

Opens a resumable upload on the registry and returns the session handle the
chunked transfer engine advances.
"""
from __future__ import annotations

import logging
from urllib.parse import urljoin

import httpx

from .errors import BlobError, MissingHeaderError, SessionOpenError
from .models import UploadSession
from .transport import RegistryTransport

logger = logging.getLogger(__name__)

__all__ = ["open_upload_session", "location_from"]


def location_from(response: httpx.Response) -> str:
    """
    Absolute upload location from a response's Location header.

    Relative locations are resolved against the URL that produced the response.

    Raises:
        MissingHeaderError: If the header is absent or not a usable URL
    """
    location = response.headers.get("Location", "").strip()
    if not location:
        raise MissingHeaderError("Registry response is missing the Location header", header="Location")

    try:
        resolved = urljoin(str(response.url), location)
        httpx.URL(resolved)
    except (ValueError, httpx.InvalidURL) as e:
        raise MissingHeaderError(f"Unparseable Location header {location!r}: {e}", header="Location") from e
    return resolved


def open_upload_session(transport: RegistryTransport, repository: str) -> UploadSession:
    """
    Create a new upload session for a repository.

    Exactly one session is created on the registry per call. Abandoned
    sessions are never cleaned up here; the registry expires them.

    Args:
        transport: Registry transport
        repository: Repository name (e.g., "library/ubuntu")

    Returns:
        UploadSession positioned at offset 0

    Raises:
        SessionOpenError: The request failed or the registry returned no
            usable Location; the underlying error is chained as the cause
    """
    if not repository:
        raise ValueError("repository is required")

    path = f"/v2/{repository}/blobs/uploads/"
    logger.debug(f"Initiating upload in {repository}")

    try:
        response = transport.request(
            "POST",
            path,
            headers={"Content-Type": "application/octet-stream", "Content-Length": "0"},
        )
        location = location_from(response)
    except BlobError as e:
        raise SessionOpenError(f"Could not open upload session in {repository}: {e}", repository=repository) from e

    logger.debug(f"Upload session for {repository} at {location}")
    return UploadSession(repository=repository, location=location)
