"""
Fake OCI registry for testing.

Implements the blob routes of the distribution API in memory and is served
through httpx.MockTransport, so the real transport, session and upload code
paths run end to end without a network.
"""
from __future__ import annotations

import hashlib
import json
import re
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx

__all__ = ["FakeRegistry", "RecordedRequest", "REALM"]

REALM = "https://auth.test/token"
TOKEN = "good-token"

_UPLOAD_RE = re.compile(r"^/v2/(?P<repo>.+)/blobs/uploads/(?P<upload>[^/]*)$")
_BLOB_RE = re.compile(r"^/v2/(?P<repo>.+)/blobs/(?P<digest>[^/]+)$")


@dataclass
class RecordedRequest:
    """A request as seen by the fake registry."""
    method: str
    url: httpx.URL
    headers: Dict[str, str]
    body: bytes

    @property
    def path(self) -> str:
        return self.url.path


@dataclass
class _Upload:
    repo: str
    data: bytearray = field(default_factory=bytearray)
    state: int = 0


class FakeRegistry:
    """
    In-memory registry test double; not for production use.

    Knobs:
        require_token: Demand ``Authorization: Bearer good-token`` on every route
        relative_locations: Return upload Locations as paths instead of URLs
        fail_next(method, status): Answer the next request of ``method`` with ``status``
        challenge_next(method): Answer the next request of ``method`` with a 401 challenge
        omit_patch_location: Drop the Location header from PATCH responses

    Like a distribution registry, PATCH and PUT must carry the current
    ``_state`` query of the upload Location.
    """

    def __init__(self, base_url: str = "http://registry.test", require_token: bool = False,
                 relative_locations: bool = True) -> None:
        self.base_url = base_url
        self.require_token = require_token
        self.relative_locations = relative_locations
        self.omit_patch_location = False
        self.blobs: Dict[str, Dict[str, bytes]] = {}  # repo -> {digest: content}
        self.uploads: Dict[str, _Upload] = {}
        self.requests: List[RecordedRequest] = []
        self.token_requests = 0
        self._failures: Dict[str, int] = {}
        self._challenges: set = set()

    # Test helpers

    def put(self, repo: str, content: bytes) -> str:
        """Seed a blob and return its digest."""
        digest = "sha256:" + hashlib.sha256(content).hexdigest()
        self.blobs.setdefault(repo, {})[digest] = content
        return digest

    def fail_next(self, method: str, status: int) -> None:
        self._failures[method.upper()] = status

    def challenge_next(self, method: str) -> None:
        self._challenges.add(method.upper())

    def requests_for(self, method: str) -> List[RecordedRequest]:
        return [r for r in self.requests if r.method == method.upper()]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    # Request handling

    def handler(self, request: httpx.Request) -> httpx.Response:
        if str(request.url).startswith(REALM):
            self.token_requests += 1
            return httpx.Response(200, json={"token": TOKEN, "expires_in": 300})

        method = request.method
        self.requests.append(RecordedRequest(
            method=method,
            url=request.url,
            headers=dict(request.headers),
            body=request.content,
        ))

        if method in self._challenges:
            self._challenges.discard(method)
            return self._challenge(request)
        if self.require_token and request.headers.get("Authorization") != f"Bearer {TOKEN}":
            return self._challenge(request)
        if method in self._failures:
            return self._error(self._failures.pop(method), "INJECTED", "injected failure")

        path = request.url.path
        match = _UPLOAD_RE.match(path)
        if match:
            repo, upload_id = match.group("repo"), match.group("upload")
            if method == "POST" and not upload_id:
                return self._start_upload(request, repo)
            if method == "PATCH" and upload_id:
                return self._patch_upload(request, repo, upload_id)
            if method == "PUT" and upload_id:
                return self._finish_upload(request, repo, upload_id)
            return self._error(405, "UNSUPPORTED", "method not allowed")

        match = _BLOB_RE.match(path)
        if match:
            repo, digest = match.group("repo"), match.group("digest")
            content = self.blobs.get(repo, {}).get(digest)
            if content is None:
                return self._error(404, "BLOB_UNKNOWN", "blob unknown to registry")
            headers = {
                "Content-Length": str(len(content)),
                "Content-Type": "application/octet-stream",
                "Docker-Content-Digest": digest,
            }
            if method == "HEAD":
                return httpx.Response(200, headers=headers)
            if method == "GET":
                return httpx.Response(200, headers=headers, content=content)
            return self._error(405, "UNSUPPORTED", "method not allowed")

        return self._error(404, "NAME_UNKNOWN", "unknown route")

    def _start_upload(self, request: httpx.Request, repo: str) -> httpx.Response:
        mount = request.url.params.get("mount")
        source = request.url.params.get("from")
        if mount and source:
            content = self.blobs.get(source, {}).get(mount)
            if content is not None:
                self.blobs.setdefault(repo, {})[mount] = content
                return httpx.Response(201, headers={
                    "Location": self._location(f"/v2/{repo}/blobs/{mount}"),
                    "Docker-Content-Digest": mount,
                })

        upload_id = uuid.uuid4().hex
        self.uploads[upload_id] = _Upload(repo=repo)
        return httpx.Response(202, headers={
            "Location": self._upload_location(repo, upload_id),
            "Range": "0-0",
            "Docker-Upload-UUID": upload_id,
        })

    def _patch_upload(self, request: httpx.Request, repo: str, upload_id: str) -> httpx.Response:
        upload = self.uploads.get(upload_id)
        if upload is None or upload.repo != repo:
            return self._error(404, "BLOB_UPLOAD_UNKNOWN", "upload unknown")
        if request.url.params.get("_state") != str(upload.state):
            return self._error(400, "BLOB_UPLOAD_INVALID", "stale or missing upload state")

        error = self._check_range(request, upload)
        if error is not None:
            return error

        upload.data.extend(request.content)
        upload.state += 1
        headers = {
            "Range": f"0-{len(upload.data) - 1}",
            "Docker-Upload-UUID": upload_id,
        }
        if not self.omit_patch_location:
            headers["Location"] = self._upload_location(repo, upload_id)
        return httpx.Response(202, headers=headers)

    def _finish_upload(self, request: httpx.Request, repo: str, upload_id: str) -> httpx.Response:
        upload = self.uploads.get(upload_id)
        if upload is None or upload.repo != repo:
            return self._error(404, "BLOB_UPLOAD_UNKNOWN", "upload unknown")
        if request.url.params.get("_state") != str(upload.state):
            return self._error(400, "BLOB_UPLOAD_INVALID", "stale or missing upload state")

        digest = request.url.params.get("digest")
        if not digest:
            return self._error(400, "DIGEST_INVALID", "digest parameter missing")

        if "content-range" in request.headers:
            error = self._check_range(request, upload)
            if error is not None:
                return error

        data = bytes(upload.data) + request.content
        algorithm, _, encoded = digest.partition(":")
        if hashlib.new(algorithm, data).hexdigest() != encoded:
            return self._error(400, "DIGEST_INVALID", "provided digest did not match uploaded content")

        del self.uploads[upload_id]
        self.blobs.setdefault(repo, {})[digest] = data
        return httpx.Response(201, headers={
            "Location": self._location(f"/v2/{repo}/blobs/{digest}"),
            "Docker-Content-Digest": digest,
        })

    def _check_range(self, request: httpx.Request, upload: _Upload) -> Optional[httpx.Response]:
        content_range = request.headers.get("content-range", "")
        match = re.match(r"^(\d+)-(\d+)$", content_range)
        if not match:
            return self._error(400, "BLOB_UPLOAD_INVALID", f"bad Content-Range {content_range!r}")
        start, end = int(match.group(1)), int(match.group(2))
        if start != len(upload.data) or end - start + 1 != len(request.content):
            return httpx.Response(416, headers={"Range": f"0-{max(len(upload.data) - 1, 0)}"})
        return None

    def _upload_location(self, repo: str, upload_id: str) -> str:
        state = self.uploads[upload_id].state
        return self._location(f"/v2/{repo}/blobs/uploads/{upload_id}?_state={state}")

    def _location(self, path: str) -> str:
        return path if self.relative_locations else f"{self.base_url}{path}"

    def _challenge(self, request: httpx.Request) -> httpx.Response:
        repo = request.url.path.split("/blobs/")[0][len("/v2/"):]
        header = f'Bearer realm="{REALM}",service="registry.test",scope="repository:{repo}:pull,push"'
        return self._error(401, "UNAUTHORIZED", "authentication required",
                           headers={"WWW-Authenticate": header})

    @staticmethod
    def _error(status: int, code: str, message: str, headers: Optional[dict] = None) -> httpx.Response:
        body = json.dumps({"errors": [{"code": code, "message": message}]}).encode()
        return httpx.Response(status, headers=headers or {}, content=body)
