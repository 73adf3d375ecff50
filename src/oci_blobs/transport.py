"""
Registry transport for the OCI Distribution API.

Wraps an httpx client with the Docker Registry v2 auth flow: a request that
is answered with a 401 challenge is authorized and resubmitted once with a
freshly generated body, so streamed uploads survive token negotiation.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urljoin

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from . import __version__
from .errors import TransportError, status_error_for
from .settings import Settings

logger = logging.getLogger(__name__)

# Produces a fresh request body (bytes or an iterable of bytes) on every call
BodyFactory = Callable[[], Any]

# Only reads are retried on timeouts; writes would move the upload cursor twice
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD"})


class DockerAuth:
    """Handle Docker Registry authentication from config files."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or Path.home() / ".docker" / "config.json"
        self._config_cache: Optional[dict] = None
        self._config_mtime: Optional[float] = None

    def get_credentials(self, registry: str) -> Optional[Tuple[str, str]]:
        """
        Get credentials for registry from Docker config.

        Returns: (username, password) or None if not found
        """
        config = self._load_config()
        if not config:
            return None

        auths = config.get("auths", {})

        # Try exact match first
        registry_key = registry
        if registry_key not in auths:
            # Try with https:// prefix
            registry_key = f"https://{registry}"
            if registry_key not in auths:
                # Try without protocol
                registry_key = registry.replace("https://", "").replace("http://", "")
                if registry_key not in auths:
                    return None

        auth_entry = auths[registry_key]

        # Handle base64 encoded auth field
        if "auth" in auth_entry:
            try:
                decoded = base64.b64decode(auth_entry["auth"]).decode()
            except (binascii.Error, UnicodeDecodeError):
                logger.debug(f"Ignoring malformed auth entry for {registry_key}")
            else:
                if ":" in decoded:
                    username, password = decoded.split(":", 1)
                    return (username, password)

        if "username" in auth_entry and "password" in auth_entry:
            return (auth_entry["username"], auth_entry["password"])

        return None

    def _load_config(self) -> Optional[dict]:
        """Load Docker config with caching and mtime checking."""
        if not self.config_path.exists():
            return None

        try:
            current_mtime = self.config_path.stat().st_mtime

            # Use cached version if file hasn't changed
            if (self._config_cache is not None and
                    self._config_mtime is not None and
                    current_mtime == self._config_mtime):
                return self._config_cache

            with open(self.config_path, 'r') as f:
                config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Failed to read Docker config {self.config_path}: {e}")
            return None

        self._config_cache = config
        self._config_mtime = current_mtime
        return config


class RegistryTransport:
    """
    HTTP exchange with a single registry.

    Every non-success response is raised as a tagged RegistryStatusError and
    every connection-level failure as TransportError.
    """

    def __init__(self, settings: Settings, auth: Optional[DockerAuth] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize registry transport.

        Args:
            settings: Registry configuration
            auth: Docker auth handler (defaults to the configured Docker config)
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self.settings = settings
        if auth is None:
            config_dir = settings.docker_config or Path.home() / ".docker"
            auth = DockerAuth(config_dir / "config.json")
        self.auth = auth
        self.base_url = settings.base_url

        timeout = settings.http_timeout_s
        self.client = httpx.Client(
            timeout=httpx.Timeout(connect=5.0, read=timeout, write=timeout, pool=5.0),
            follow_redirects=True,
            verify=not settings.registry_insecure,
            headers={"User-Agent": f"oci-blobs/{__version__}"},
            transport=transport,
        )

        # Token cache: {service:scope: (token, expiry_timestamp)}
        self._token_cache: Dict[str, Tuple[str, float]] = {}
        # Last Authorization header that was accepted, sent pre-emptively
        self._authorization: Optional[str] = None

    def url_for(self, path: str) -> str:
        """Resolve a registry path (or pass through an absolute URL)."""
        return urljoin(self.base_url + "/", path)

    def request(self, method: str, url: str, *, headers: Optional[dict] = None,
                params: Optional[dict] = None, body: Optional[BodyFactory] = None,
                stream: bool = False) -> httpx.Response:
        """
        Perform one logical request, answering at most one auth challenge.

        Args:
            method: HTTP method
            url: Absolute URL or registry path such as ``/v2/<repo>/blobs/<digest>``
            headers: Extra request headers
            params: Query parameters merged into the URL
            body: Body factory; called once per attempt so the body can be resent
            stream: Leave the response body unread (caller must close it)

        Returns:
            Successful (2xx) response

        Raises:
            RegistryStatusError: Non-success status after auth handling
            TransportError: Network failure or timeout
        """
        method = method.upper()
        url = self.url_for(url)
        if params:
            # Keep the query the registry put on the location (e.g. _state)
            url = str(httpx.URL(url).copy_merge_params(params))
        try:
            if method in IDEMPOTENT_METHODS and self.settings.http_retry > 0:
                retryer = Retrying(
                    stop=stop_after_attempt(self.settings.http_retry + 1),
                    wait=wait_exponential(multiplier=1, min=1, max=10),
                    retry=retry_if_exception_type(httpx.TimeoutException),
                    reraise=True,
                )
                return retryer(self._request, method, url, headers, body, stream)
            return self._request(method, url, headers, body, stream)
        except httpx.RequestError as e:
            raise TransportError(f"Network error during {method} {url}: {e}") from e

    def is_registry_origin(self, url: str) -> bool:
        """True when ``url`` has the same scheme, host and port as the registry."""
        target, registry = httpx.URL(url), httpx.URL(self.base_url)
        return (target.scheme, target.host, target.port) == (registry.scheme, registry.host, registry.port)

    def _request(self, method: str, url: str, headers: Optional[dict],
                 body: Optional[BodyFactory], stream: bool) -> httpx.Response:
        request_headers = dict(headers or {})
        same_origin = self.is_registry_origin(url)
        # Credentials never follow a Location to another host
        if same_origin and self._authorization and "Authorization" not in request_headers:
            request_headers["Authorization"] = self._authorization

        response = self._exchange(method, url, request_headers, body, stream)

        if response.status_code == 401 and same_origin:
            authorization = self._answer_challenge(response.headers.get("WWW-Authenticate", ""))
            if authorization:
                response.close()
                logger.debug(f"Resubmitting {method} {url} after auth challenge")
                request_headers["Authorization"] = authorization
                response = self._exchange(method, url, request_headers, body, stream)
                if response.status_code != 401:
                    self._authorization = authorization

        if not response.is_success:
            error = status_error_for(response, method, url)
            response.close()
            raise error
        return response

    def _exchange(self, method: str, url: str, headers: dict,
                  body: Optional[BodyFactory], stream: bool) -> httpx.Response:
        content = body() if body is not None else None
        try:
            request = self.client.build_request(method, url, headers=headers, content=content)
            logger.debug(f"{method} {request.url}")
            return self.client.send(request, stream=stream)
        finally:
            # A body abandoned mid-stream (e.g. on a 401) still holds its source open
            close = getattr(content, "close", None)
            if close is not None:
                close()

    def _answer_challenge(self, www_authenticate: str) -> Optional[str]:
        """Turn a WWW-Authenticate challenge into an Authorization header value."""
        if www_authenticate.startswith("Bearer "):
            token = self._handle_bearer_auth(www_authenticate)
            return f"Bearer {token}" if token else None

        if www_authenticate.startswith("Basic"):
            creds = self._credentials()
            if creds:
                encoded = base64.b64encode(f"{creds[0]}:{creds[1]}".encode()).decode()
                return f"Basic {encoded}"
        return None

    def _credentials(self) -> Optional[Tuple[str, str]]:
        """Explicit settings win over Docker config."""
        if self.settings.registry_user and self.settings.registry_pass:
            return (self.settings.registry_user, self.settings.registry_pass)
        return self.auth.get_credentials(self.settings.registry_host)

    def _handle_bearer_auth(self, www_authenticate: str) -> Optional[str]:
        """
        Handle Bearer token authentication flow.

        Parses WWW-Authenticate header, gets credentials, exchanges for token.
        Anonymous tokens are requested when no credentials are configured.
        """
        # Format: Bearer realm="...",service="...",scope="..."
        bearer_params = {}
        for match in re.finditer(r'(\w+)="([^"]*)"', www_authenticate):
            bearer_params[match.group(1)] = match.group(2)

        realm = bearer_params.get("realm")
        service = bearer_params.get("service")
        scope = bearer_params.get("scope")

        if not realm:
            return None

        cache_key = f"{service or ''}:{scope or ''}"
        if cache_key in self._token_cache:
            token, expiry = self._token_cache[cache_key]
            if time.time() < expiry - 30:  # 30s buffer before expiry
                return token

        params = {}
        if service:
            params["service"] = service
        if scope:
            params["scope"] = scope

        creds = self._credentials()
        try:
            auth_response = self.client.get(realm, auth=creds, params=params)
            auth_response.raise_for_status()
            token_data = auth_response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Token exchange with {realm} failed: {e}")
            return None

        token = token_data.get("token") or token_data.get("access_token")
        if not token:
            return None

        # Cache with expiry (default 1 hour if not specified)
        expires_in = token_data.get("expires_in", 3600)
        self._token_cache[cache_key] = (token, time.time() + expires_in)
        return token

    def close(self):
        """Close HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


__all__ = ["BodyFactory", "DockerAuth", "RegistryTransport"]
