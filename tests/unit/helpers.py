"""Fake transports and payloads for upload tests."""

from __future__ import annotations

import json
from collections import deque
from collections.abc import Callable
from typing import Any

import aiohttp
from multidict import CIMultiDict

from storage_lite.transport import HttpRequest, HttpResponse

API_URL = "https://storage.test/v0"
UPLOAD_URL = "https://storage.test/upload/session-1"
GRANULARITY = 262144


class ZeroPayload:
    """Payload of a given size that does not hold its bytes in memory."""

    def __init__(self, size: int, content_type: str = "application/octet-stream"):
        self._size = size
        self._content_type = content_type
        self.slices: list[tuple[int, int]] = []

    @property
    def size(self) -> int:
        return self._size

    @property
    def content_type(self) -> str:
        return self._content_type

    def slice(self, start: int, end: int) -> ZeroPayload:
        end = min(end, self._size)
        self.slices.append((start, end))
        return ZeroPayload(max(end - start, 0), self._content_type)

    def read(self) -> bytes:
        return b"\0" * self._size


def make_response(
    status: int = 200,
    headers: dict[str, str] | None = None,
    json_body: Any = None,
    text: str = "",
) -> HttpResponse:
    body = json.dumps(json_body).encode() if json_body is not None else text.encode()
    return HttpResponse(status=status, headers=CIMultiDict(headers or {}), body=body)


class FakeTransport:
    """Records requests and replies with queued responses or a handler."""

    def __init__(self) -> None:
        self.requests: list[HttpRequest] = []
        self.responses: deque[HttpResponse] = deque()
        self.handler: Callable[[HttpRequest], HttpResponse] | None = None

    def queue(self, *responses: HttpResponse) -> None:
        self.responses.extend(responses)

    async def send(self, request: HttpRequest) -> HttpResponse:
        self.requests.append(request)
        if self.handler is not None:
            return self.handler(request)
        return self.responses.popleft()

    async def __aenter__(self) -> FakeTransport:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None


class FakeResumableServer:
    """Minimal server side of the resumable upload protocol.

    Validates chunk offsets and sizes against the session, answers
    ``active`` until a finalize command arrives with every byte received.
    """

    def __init__(self, granularity: int = GRANULARITY) -> None:
        self.granularity = granularity
        self.declared_size: int | None = None
        self.received = 0
        self.finalized = False
        self.metadata: dict[str, Any] | None = None
        self.fail_at_request: int | None = None
        self.requests: list[HttpRequest] = []
        self.session_headers: dict[str, str] = {
            "x-goog-upload-url": UPLOAD_URL,
            "x-goog-upload-chunk-granularity": str(granularity),
        }

    @property
    def chunk_requests(self) -> list[HttpRequest]:
        return self.requests[1:]

    def __call__(self, request: HttpRequest) -> HttpResponse:
        self.requests.append(request)
        if self.fail_at_request == len(self.requests):
            return make_response(503, text="backend unavailable")

        headers = CIMultiDict(request.headers)
        if headers.get("X-Goog-Upload-Command") == "start":
            self.declared_size = int(headers["X-Goog-Upload-Header-Content-Length"])
            self.metadata = json.loads(request.body)
            return make_response(200, headers=self.session_headers)

        assert request.url == UPLOAD_URL
        assert not self.finalized, "request after finalization"
        offset = int(headers["X-Goog-Upload-Offset"])
        if offset != self.received:
            return make_response(400, text=f"offset {offset} != {self.received}")

        body = request.body or b""
        self.received += len(body)
        if headers["X-Goog-Upload-Command"] == "upload, finalize":
            if self.received == self.declared_size:
                self.finalized = True
                return make_response(
                    200,
                    headers={"x-goog-upload-status": "final"},
                    json_body={**(self.metadata or {}), "size": str(self.received)},
                )
        elif len(body) != self.granularity:
            return make_response(400, text="chunk is not aligned to granularity")
        return make_response(200, headers={"x-goog-upload-status": "active"})


class _Collector:
    def __init__(self) -> None:
        self.data = bytearray()

    async def write(self, chunk: bytes) -> None:
        self.data.extend(chunk)


async def render_multipart(writer: aiohttp.MultipartWriter) -> bytes:
    """Serialize a multipart writer the way aiohttp sends it."""
    collector = _Collector()
    await writer.write(collector)
    return bytes(collector.data)
