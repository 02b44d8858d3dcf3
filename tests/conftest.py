"""
Shared Test Fixtures
====================

Pytest fixtures used across all test modules.
Provides a recording fake of the HTTP transport and canned provider bodies.
"""

import os

# Set env vars BEFORE any loneless.* imports so cached settings pick them up
os.environ.setdefault("PROVIDER_API_KEYS", "test-key-0000001,test-key-0000002")
os.environ.setdefault("PROVIDER_MODELS", "gemini-2.0-flash,gemini-2.0-flash-lite")
os.environ.setdefault("PROVIDER_BASE_URL", "https://generativelanguage.googleapis.com/v1beta")

import json
from collections import deque
from contextlib import asynccontextmanager
from typing import Any, Optional, Union
from unittest.mock import AsyncMock, MagicMock

import pytest

from loneless.chat.store import InMemoryConversationStore
from loneless.config import ChatSettings
from loneless.llm.base import ProviderAdapter
from loneless.llm.models import ProviderConfig
from loneless.llm.rotation import RotationPolicy
from loneless.llm.transport import HttpRequest, HttpResponse

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
OPENAI_BASE_URL = "https://api.openai.com/v1"


# ---------------------------------------------------------------------------
# Canned provider bodies
# ---------------------------------------------------------------------------

def gemini_body(text: str) -> dict[str, Any]:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


def openai_body(text: str) -> dict[str, Any]:
    return {"choices": [{"index": 0, "message": {"role": "assistant", "content": text}}]}


def sse_event(delta: str) -> bytes:
    payload = {"choices": [{"index": 0, "delta": {"content": delta}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n".encode("utf-8")


SSE_DONE = b"data: [DONE]\n"


def form_value(request: HttpRequest, name: str) -> Optional[Union[str, bytes]]:
    """Return the value of a multipart field of a recorded request."""
    for f in request.form_fields or []:
        if f.name == name:
            return f.value
    return None


# ---------------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------------

class FakeStreamResponse:
    """Streaming response that yields preset chunks, optionally failing afterwards."""

    def __init__(
        self,
        status: int = 200,
        chunks: Optional[list[bytes]] = None,
        body: bytes = b"",
        error: Optional[Exception] = None,
    ) -> None:
        self.status = status
        self.chunks = chunks or []
        self.body = body
        self.error = error

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    async def read(self) -> bytes:
        return self.body

    async def iter_chunks(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


class FakeTransport:
    """
    Records every request and answers from queues.

    Queued items may be exceptions, which are raised instead of answering.
    """

    def __init__(self) -> None:
        self.requests: list[HttpRequest] = []
        self.responses: deque = deque()
        self.stream_responses: deque = deque()
        self.close = AsyncMock()

    def queue(self, status: int, body: Union[dict, list, str, bytes]) -> None:
        if isinstance(body, (dict, list)):
            body = json.dumps(body, ensure_ascii=False)
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.responses.append(HttpResponse(status=status, body=body))

    def queue_error(self, error: Exception) -> None:
        self.responses.append(error)

    def queue_stream(self, response: Union[FakeStreamResponse, Exception]) -> None:
        self.stream_responses.append(response)

    @property
    def last_request(self) -> HttpRequest:
        return self.requests[-1]

    async def send(self, request: HttpRequest) -> HttpResponse:
        self.requests.append(request)
        item = self.responses.popleft()
        if isinstance(item, Exception):
            raise item
        return item

    @asynccontextmanager
    async def stream(self, request: HttpRequest):
        self.requests.append(request)
        item = self.stream_responses.popleft()
        if isinstance(item, Exception):
            raise item
        yield item


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def gemini_config() -> ProviderConfig:
    return ProviderConfig(
        api_key="gemini-test-key",
        model="gemini-2.0-flash",
        system_prompt="Be a kind friend.",
        base_url=GEMINI_BASE_URL,
    )


@pytest.fixture
def openai_config() -> ProviderConfig:
    return ProviderConfig(
        api_key="sk-test-key",
        model="gpt-4o-mini",
        system_prompt="Be a kind friend.",
        base_url=OPENAI_BASE_URL,
    )


@pytest.fixture
def store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def chat_settings() -> ChatSettings:
    """Deterministic chat settings: no mood, no streaming, voice off."""
    return ChatSettings(
        enable_mood=False,
        use_streaming=False,
        enable_voice_responses=False,
        enable_notifications=True,
    )


@pytest.fixture
def rotation() -> RotationPolicy:
    return RotationPolicy(["key-0-abcdefgh", "key-1-abcdefgh"], ["model-a", "model-b"])


@pytest.fixture
def mock_adapter() -> MagicMock:
    """Adapter mock with every network coroutine replaced."""
    adapter = MagicMock(spec=ProviderAdapter)
    adapter.send = AsyncMock(return_value="Hello there!")
    adapter.send_stream = AsyncMock(return_value="Hello there!")
    adapter.describe_image = AsyncMock(return_value="Nice photo!")
    adapter.transcribe_audio = AsyncMock(return_value="transcribed words")
    return adapter


@pytest.fixture
def mock_sleep() -> AsyncMock:
    return AsyncMock()
