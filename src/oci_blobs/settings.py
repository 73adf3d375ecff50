"""
Settings and configuration for oci-blobs.

Centralizes configuration values and provides validation with fail-fast behavior.
Loads settings from environment variables at client construction time.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

__all__ = ["DEFAULT_CHUNK_SIZE", "Settings", "create_settings_from_env"]

# Payloads up to this size are sent in a single finalizing PUT
DEFAULT_CHUNK_SIZE = 8_096_000


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for the blob client.

    Registry Settings:
        registry_url: Registry host[:port] or http(s):// URL (required)
        registry_insecure: Allow HTTP connections for local/dev use
        registry_user: Username for registry authentication
        registry_pass: Password for registry authentication
        docker_config: Directory holding Docker's config.json (credential fallback)

    Transfer Settings:
        http_timeout_s: HTTP request timeout in seconds
        http_retry: Retries for timed-out reads (GET/HEAD only, 0=no retry)
        chunk_size: Threshold and size of each PATCH in chunked uploads
    """
    registry_url: str
    registry_insecure: bool = False
    registry_user: Optional[str] = None
    registry_pass: Optional[str] = None
    docker_config: Optional[Path] = None
    http_timeout_s: float = 30.0
    http_retry: int = 0
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self):
        """Validate settings on construction."""
        if not self.registry_url:
            raise ValueError("registry_url is required")

        # Basic URL validation - should be host[:port] or https://host[:port]
        url_pattern = r"^(?:https?://)?[a-zA-Z0-9.-]+(?::[0-9]+)?(?:/.*)?$"
        if not re.match(url_pattern, self.registry_url):
            raise ValueError(f"Invalid registry_url format: {self.registry_url}")

        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if self.http_retry < 0:
            raise ValueError(f"http_retry must be non-negative, got {self.http_retry}")

        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

        # Credentials come in pairs
        if self.registry_user and not self.registry_pass:
            raise ValueError("registry_user specified but registry_pass is missing")
        if self.registry_pass and not self.registry_user:
            raise ValueError("registry_pass specified but registry_user is missing")

    @property
    def registry_host(self) -> str:
        """Registry host[:port] without scheme or path, as used in Docker config keys."""
        host = self.registry_url.split("://", 1)[-1]
        return host.split("/", 1)[0]

    @property
    def base_url(self) -> str:
        """Scheme-qualified registry URL that /v2/ paths are joined to."""
        if self.registry_url.startswith(("http://", "https://")):
            return self.registry_url.rstrip("/")
        if self.registry_insecure:
            return f"http://{self.registry_url}".rstrip("/")
        return f"https://{self.registry_url}".rstrip("/")


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        - OCI_BLOBS_REGISTRY_URL (required)
        - OCI_BLOBS_REGISTRY_INSECURE (default: false)
        - OCI_BLOBS_REGISTRY_USERNAME (optional)
        - OCI_BLOBS_REGISTRY_PASSWORD (optional)
        - OCI_BLOBS_HTTP_TIMEOUT (default: 30.0)
        - OCI_BLOBS_HTTP_RETRY (default: 0)
        - OCI_BLOBS_CHUNK_SIZE (default: 8096000)
        - DOCKER_CONFIG (optional, directory containing config.json)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid or required values missing

    Note:
        Creates a fresh Settings instance every time (no caching).
        This ensures test isolation and eliminates global state.
    """
    def str_to_bool(value: str) -> bool:
        return value.lower() in ('true', '1', 'yes', 'on')

    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    registry_url = os.getenv("OCI_BLOBS_REGISTRY_URL")
    if not registry_url:
        raise ValueError("OCI_BLOBS_REGISTRY_URL environment variable is required")

    docker_config = os.getenv("DOCKER_CONFIG")

    return Settings(
        registry_url=registry_url,
        registry_insecure=str_to_bool(os.getenv("OCI_BLOBS_REGISTRY_INSECURE", "false")),
        registry_user=os.getenv("OCI_BLOBS_REGISTRY_USERNAME"),
        registry_pass=os.getenv("OCI_BLOBS_REGISTRY_PASSWORD"),
        docker_config=Path(docker_config) if docker_config else None,
        http_timeout_s=get_float("OCI_BLOBS_HTTP_TIMEOUT", 30.0),
        http_retry=get_int("OCI_BLOBS_HTTP_RETRY", 0),
        chunk_size=get_int("OCI_BLOBS_CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
    )
