"""
CLI Context for managing application dependencies.

Holds the settings and the lazily created blob client for one CLI command
execution, avoiding global state.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

import httpx

from .client import BlobClient
from .settings import Settings, create_settings_from_env

_REPOSITORY_RE = re.compile(r"^[a-z0-9][a-z0-9._-]*(?:/[a-z0-9][a-z0-9._-]*)*$")


def check_repository(name: str) -> str:
    """
    Validate a repository name given on the command line.

    Raises:
        ValueError: If the name does not follow OCI naming conventions
    """
    if not name or not _REPOSITORY_RE.match(name):
        raise ValueError(f"Invalid repository name: {name!r}. Must follow OCI naming conventions.")
    return name


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    The client is created on first access and closed by ``close()``.
    """
    settings: Settings
    transport: Optional[httpx.BaseTransport] = None
    _client: Optional[BlobClient] = None

    @classmethod
    def from_env(cls) -> CLIContext:
        """Create CLI context from environment variables."""
        return cls(settings=create_settings_from_env())

    @property
    def client(self) -> BlobClient:
        if self._client is None:
            self._client = BlobClient(self.settings, transport=self.transport)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
