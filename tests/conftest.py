"""Pytest configuration and fixtures for pipeline tests."""

import json
from typing import Any

import httpx
import pytest

BASE_URL = "https://gemini.test"
UPLOAD_URL = "https://upload.test/resumable/session-1"
API_KEY = "test-key"


def gemini_text_response(text: str) -> httpx.Response:
    """generateContent response carrying ``text`` as the first candidate."""
    return httpx.Response(
        200,
        json={"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": "STOP"}]},
    )


def gemini_error_response(status_code: int, status: str = "", message: str = "") -> httpx.Response:
    return httpx.Response(
        status_code,
        json={"error": {"code": status_code, "status": status, "message": message}},
    )


class FakeGeminiServer:
    """In-process stand-in for the Files API and generateContent endpoints.

    Only request metadata is kept, never chunk bodies, so multi-gigabyte
    uploads can be exercised without holding them in memory.
    """

    def __init__(
        self,
        file_name: str = "files/abc123",
        states: list[Any] | None = None,
        replies: list[Any] | None = None,
    ) -> None:
        self.file_name = file_name
        # Each entry is a state string or an httpx.Response; the last one repeats.
        self.states: list[Any] = states or ["ACTIVE"]
        # Each entry is reply text, an httpx.Response or an exception; the last one repeats.
        self.replies: list[Any] = replies or ['{"players": []}']

        self.start_status = 200
        self.start_errors: list[Exception] = []
        self.omit_upload_url = False
        self.chunk_errors: dict[int, Any] = {}
        self.finalize_body: dict[str, Any] | None = None
        self.delete_status = 200

        self.calls: list[tuple[str, str]] = []
        self.start_request: httpx.Request | None = None
        self.chunks: list[tuple[int, int, str]] = []
        self.uploads_started = 0
        self.status_checks = 0
        self.deleted: list[str] = []
        self.generate_payloads: list[dict[str, Any]] = []

    def file_json(self, state: str) -> dict[str, Any]:
        return {
            "name": self.file_name,
            "uri": f"{BASE_URL}/v1beta/{self.file_name}",
            "mimeType": "video/mp4",
            "state": state,
        }

    @staticmethod
    def _next(queue: list[Any]) -> Any:
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))

        if request.method == "POST" and path == "/upload/v1beta/files":
            return self._start(request)
        if request.method == "PUT" and request.url.host == "upload.test":
            return self._chunk(request)
        if request.method == "GET" and path == f"/v1beta/{self.file_name}":
            self.status_checks += 1
            state = self._next(self.states)
            if isinstance(state, httpx.Response):
                return state
            return httpx.Response(200, json=self.file_json(state))
        if request.method == "DELETE" and path.startswith("/v1beta/files/"):
            self.deleted.append(path.removeprefix("/v1beta/"))
            return httpx.Response(self.delete_status, json={})
        if request.method == "POST" and path.endswith(":generateContent"):
            self.generate_payloads.append(json.loads(request.content))
            reply = self._next(self.replies)
            if isinstance(reply, Exception):
                raise reply
            if isinstance(reply, httpx.Response):
                return reply
            return gemini_text_response(reply)
        return httpx.Response(404, json={"error": {"message": f"unexpected {request.method} {path}"}})

    def _start(self, request: httpx.Request) -> httpx.Response:
        self.uploads_started += 1
        self.start_request = request
        if self.start_errors:
            raise self.start_errors.pop(0)
        if self.start_status >= 400:
            return httpx.Response(self.start_status, json={"error": {"message": "rejected"}})
        headers = {} if self.omit_upload_url else {"X-Goog-Upload-URL": UPLOAD_URL}
        return httpx.Response(200, headers=headers, json={})

    def _chunk(self, request: httpx.Request) -> httpx.Response:
        offset = int(request.headers["X-Goog-Upload-Offset"])
        command = request.headers["X-Goog-Upload-Command"]
        error = self.chunk_errors.pop(offset, None)
        if isinstance(error, Exception):
            raise error
        if isinstance(error, int):
            return httpx.Response(error)

        self.chunks.append((offset, len(request.content), command))
        if "finalize" not in command:
            return httpx.Response(200)
        body = self.finalize_body if self.finalize_body is not None else {"file": self.file_json("PROCESSING")}
        return httpx.Response(200, json=body)

    @property
    def generate_calls(self) -> int:
        return len(self.generate_payloads)


class FakeClock:
    """Monotonic clock advanced only by the paired sleep."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class RecordingSleep:
    """Awaitable sleep replacement that records delays instead of waiting."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.calls: list[float] = []
        self._clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._clock is not None:
            self._clock.now += seconds


@pytest.fixture
def server() -> FakeGeminiServer:
    return FakeGeminiServer()


@pytest.fixture
def http_client(server: FakeGeminiServer) -> httpx.AsyncClient:
    """AsyncClient routed to the fake server."""
    return httpx.AsyncClient(transport=httpx.MockTransport(server.handler))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep(clock: FakeClock) -> RecordingSleep:
    return RecordingSleep(clock)
