"""Shared fakes for agora_uploader tests."""
import hashlib
import json
import re
from typing import Dict, List, Optional

import httpx
import pytest

from agora_uploader.models import UploadConfig


def parse_multipart(request: httpx.Request):
    """Split a multipart/form-data request into (fields, files)."""
    boundary = request.headers["content-type"].split("boundary=")[1].encode()
    fields: Dict[str, str] = {}
    files: Dict[str, bytes] = {}
    for part in request.content.split(b"--" + boundary)[1:-1]:
        headers, body = part[2:].split(b"\r\n\r\n", 1)
        body = body[:-2]  # trailing CRLF before the next boundary
        name = re.search(rb'name="([^"]+)"', headers).group(1).decode()
        if b"filename=" in headers:
            files[name] = body
        else:
            fields[name] = body.decode()
    return fields, files


class FakeAgoraServer:
    """
    In-memory Agora server behind httpx.MockTransport.

    Chunks are stored per flowIdentifier; the flowfile reports the SHA-256 of
    the joined chunks once every chunk has arrived.
    """

    def __init__(self, import_id: int = 7):
        self.import_id = import_id
        self.chunks: Dict[str, Dict[int, bytes]] = {}
        self.chunk_fields: List[Dict[str, str]] = []
        self.total_chunks: Dict[str, int] = {}
        self.filenames: Dict[str, str] = {}
        self.requests: List[httpx.Request] = []
        self.progress_states: List[dict] = [{"state": 4, "progress": 100}]
        self.result: List[dict] = [{"datafiles": []}]
        self.complete_body: Optional[dict] = None
        self.create_status = 201
        self.complete_status = 204
        self.fail_uploads_for: set = set()  # flowFilename values whose chunks always fail
        self.malformed_flowfile_for: set = set()  # flowFilename values answered with a non-JSON body
        self.api_key = "secret-key"

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def assembled(self, transfer_id: str) -> bytes:
        parts = self.chunks[transfer_id]
        return b"".join(parts[i] for i in sorted(parts))

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        base = f"/api/v1/import/{self.import_id}/"

        if path == "/api/v1/version/":
            return httpx.Response(200, json={"version": "7.0"})
        if path == "/api/v1/user/current/":
            authorized = request.headers.get("authorization") == f"X-Agora-Api-Key {self.api_key}"
            return httpx.Response(200 if authorized else 401, json={})
        if path == "/api/v1/apikey/":
            if not request.headers.get("authorization", "").startswith("Basic "):
                return httpx.Response(401)
            return httpx.Response(200, json={"key": self.api_key})
        if path == "/api/v1/import/" and request.method == "POST":
            return httpx.Response(self.create_status, json={"id": self.import_id, "state": 0})
        if path == base + "upload/":
            return self._upload(request)
        if path.startswith("/api/v1/flowfile/"):
            return self._flowfile(path.split("/")[-2])
        if path == base + "complete/":
            self.complete_body = json.loads(request.content or b"{}")
            return httpx.Response(self.complete_status)
        if path == base + "progress/":
            state = self.progress_states.pop(0) if len(self.progress_states) > 1 else self.progress_states[0]
            return httpx.Response(200, json={**state, "tasks": {"count": 1, "finished": 1, "error": 0, "ids": [1]}})
        if path == base + "result/":
            return httpx.Response(200, json=self.result)
        return httpx.Response(404)

    def _upload(self, request: httpx.Request) -> httpx.Response:
        fields, files = parse_multipart(request)
        if fields["flowFilename"] in self.fail_uploads_for:
            return httpx.Response(500)
        transfer_id = fields["flowIdentifier"]
        self.chunk_fields.append(fields)
        self.chunks.setdefault(transfer_id, {})[int(fields["flowChunkNumber"])] = files["file"]
        self.total_chunks[transfer_id] = int(fields["flowTotalChunks"])
        self.filenames[transfer_id] = fields["flowFilename"]
        return httpx.Response(200)

    def _flowfile(self, transfer_id: str) -> httpx.Response:
        parts = self.chunks.get(transfer_id)
        if parts is None:
            return httpx.Response(404)
        if self.filenames[transfer_id] in self.malformed_flowfile_for:
            return httpx.Response(200, text="<html>proxy</html>")
        if len(parts) < self.total_chunks[transfer_id]:
            return httpx.Response(200, json={"state": 1, "content_hash": ""})
        digest = hashlib.sha256(self.assembled(transfer_id)).hexdigest()
        return httpx.Response(200, json={"state": 2, "content_hash": digest})


@pytest.fixture
def fake_server():
    return FakeAgoraServer()


@pytest.fixture
def fast_config():
    """Small chunks and no waiting between polls."""
    return UploadConfig(
        chunk_size=100 * 1024,
        chunk_retry_delay=0,
        hash_poll_interval=0,
        hash_max_attempts=5,
        progress_interval=0,
    )
