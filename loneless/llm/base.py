"""
Provider Adapter Base
=====================

One provider-agnostic interface over the two supported wire protocols.

An adapter turns a provider-agnostic call (message history, system prompt,
``ProviderConfig``, optional media) into an ``HttpRequest`` for its vendor
and parses the vendor's JSON answer back into plain text. Request building
and response parsing are pure functions of their inputs; the ``send*`` /
``describe_image`` / ``transcribe_audio`` coroutines add exactly one network
call on top. Adapters never retry: that is the rotation policy's job.

Concrete variants:
    - ``OpenAIAdapter``: ``POST {base}/chat/completions`` with a bearer token
    - ``GeminiAdapter``: ``POST {base}/models/{model}:generateContent?key=...``

Use ``create_adapter(kind, transport)`` to pick one from a ``ProviderKind``.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from loneless.llm.errors import CapabilityError, DecodeError, raise_for_status
from loneless.llm.models import DEFAULT_TEMPERATURE, Message, ProviderConfig, ProviderKind
from loneless.llm.streaming import DeltaCallback
from loneless.llm.transport import (
    DEFAULT_TIMEOUT,
    VISION_TIMEOUT,
    HttpRequest,
    HttpResponse,
    HttpTransport,
    RequestTimeout,
)
from loneless.utils.logger import get_logger

logger = get_logger(__name__)

AUDIO_UNSUPPORTED_MESSAGE = (
    "Voice messages are not supported by the configured model. "
    "Add a key for a provider with audio support in the settings."
)


def dig(data: Any, *path: Any) -> Any:
    """Walk nested dicts/lists, returning None as soon as a step is missing."""
    current = data
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or len(current) <= step:
                return None
        elif not isinstance(current, dict) or step not in current:
            return None
        current = current[step]
    return current


class ProviderAdapter(ABC):
    """
    Base class for provider protocol adapters.

    Subclasses implement the request builders and the response parser; the
    network-facing coroutines are shared.
    """

    kind: ProviderKind

    def __init__(
        self,
        transport: HttpTransport,
        temperature: float = DEFAULT_TEMPERATURE,
        timeout: RequestTimeout = DEFAULT_TIMEOUT,
        vision_timeout: RequestTimeout = VISION_TIMEOUT,
    ) -> None:
        self._transport = transport
        self.temperature = temperature
        self.timeout = timeout
        self.vision_timeout = vision_timeout

    # ------------------------------------------------------------------
    # Request builders
    # ------------------------------------------------------------------

    @abstractmethod
    def build_chat_request(
        self,
        history: Sequence[Message],
        config: ProviderConfig,
        stream: bool = False,
    ) -> HttpRequest:
        """Build a text chat request for the given history."""

    @abstractmethod
    def build_vision_request(
        self,
        image: bytes,
        mime_type: str,
        prompt: str,
        config: ProviderConfig,
    ) -> HttpRequest:
        """Build an image + text request."""

    @abstractmethod
    def build_audio_request(
        self,
        audio: bytes,
        mime_type: str,
        prompt: str,
        config: ProviderConfig,
    ) -> HttpRequest:
        """Build an audio understanding / transcription request."""

    @abstractmethod
    def supports_audio(self, config: ProviderConfig) -> bool:
        """Whether audio requests are possible with this provider and model."""

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    @abstractmethod
    def extract_text(self, payload: dict[str, Any]) -> Optional[str]:
        """Pull the reply text out of a decoded response object."""

    def parse_response(self, response: HttpResponse) -> str:
        """
        Parse a chat/vision response body into trimmed text.

        Returns "" when the body is a JSON object without the text field.

        Raises:
            ProviderError: For a non-2xx status.
            DecodeError: When the body is not a JSON object.
        """
        raise_for_status(response.status, response.text)
        payload = response.json()
        if not isinstance(payload, dict):
            raise DecodeError("Response body is not a JSON object", raw_body=response.text)
        text = self.extract_text(payload)
        return text.strip() if isinstance(text, str) else ""

    def parse_audio_response(self, response: HttpResponse) -> str:
        """Parse an audio response; same rules as chat by default."""
        return self.parse_response(response)

    # ------------------------------------------------------------------
    # Network operations
    # ------------------------------------------------------------------

    async def send(self, history: Sequence[Message], config: ProviderConfig) -> str:
        """Send a chat request and return the reply text."""
        request = self.build_chat_request(history, config)
        response = await self._transport.send(request)
        self._log_response("chat", config, response)
        return self.parse_response(response)

    @abstractmethod
    async def send_stream(
        self,
        history: Sequence[Message],
        config: ProviderConfig,
        on_delta: DeltaCallback,
    ) -> str:
        """Send a chat request, reporting reply fragments through ``on_delta``."""

    async def describe_image(
        self,
        image: bytes,
        mime_type: str,
        prompt: str,
        config: ProviderConfig,
    ) -> str:
        """Send an image with a prompt and return the reply text."""
        request = self.build_vision_request(image, mime_type, prompt, config)
        response = await self._transport.send(request)
        self._log_response("vision", config, response)
        return self.parse_response(response)

    async def transcribe_audio(
        self,
        audio: bytes,
        mime_type: str,
        prompt: str,
        config: ProviderConfig,
    ) -> str:
        """
        Send audio with a prompt and return the text answer.

        Raises:
            CapabilityError: Before any network call if audio is unsupported.
        """
        if not self.supports_audio(config):
            raise CapabilityError(AUDIO_UNSUPPORTED_MESSAGE)
        request = self.build_audio_request(audio, mime_type, prompt, config)
        response = await self._transport.send(request)
        self._log_response("audio", config, response)
        return self.parse_audio_response(response)

    def _log_response(self, purpose: str, config: ProviderConfig, response: HttpResponse) -> None:
        if response.ok:
            logger.debug("Provider call succeeded", purpose=purpose, provider=self.kind.value, model=config.model)
        else:
            logger.warning(
                "Provider call failed",
                purpose=purpose,
                provider=self.kind.value,
                model=config.model,
                status=response.status,
                body=response.text[:500],
            )


def create_adapter(
    kind: ProviderKind,
    transport: HttpTransport,
    **kwargs: Any,
) -> ProviderAdapter:
    """
    Create the adapter for a provider kind.

    Extra keyword arguments are forwarded to the adapter constructor
    (``temperature``, ``timeout``, ``vision_timeout`` and, for the
    OpenAI-compatible adapter, ``transcription_model`` / ``audio_enabled``).
    """
    # Imported here to avoid a cycle: both variants subclass ProviderAdapter.
    from loneless.llm.gemini_adapter import GeminiAdapter
    from loneless.llm.openai_adapter import OpenAIAdapter

    if kind is ProviderKind.GEMINI:
        kwargs.pop("transcription_model", None)
        kwargs.pop("audio_enabled", None)
        return GeminiAdapter(transport, **kwargs)
    return OpenAIAdapter(transport, **kwargs)
