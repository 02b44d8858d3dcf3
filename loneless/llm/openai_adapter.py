"""
OpenAI-Compatible Adapter
=========================

Adapter for providers that speak the OpenAI chat completions protocol
(OpenAI, Groq, OpenRouter, local servers, ...).

Wire format:
    POST {base_url}/chat/completions
    Authorization: Bearer {key}
    {"model": ..., "messages": [{"role": ..., "content": ...}], "temperature": 0.8}

Vision input is sent as an ``image_url`` content part whose URL is a
``data:{mime};base64,...`` URI. Audio goes to ``{base_url}/audio/transcriptions``
as multipart/form-data.

Streaming uses server-sent events (``"stream": true``) decoded by
``loneless.llm.streaming``.
"""

import mimetypes
from typing import Any, Optional, Sequence

from loneless.llm.base import ProviderAdapter, dig
from loneless.llm.errors import DecodeError, TransportError, raise_for_status
from loneless.llm.models import Message, ProviderConfig, ProviderKind, Role, data_uri
from loneless.llm.streaming import DeltaCallback, decode_stream
from loneless.llm.transport import HttpRequest, HttpResponse, MultipartField
from loneless.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TRANSCRIPTION_MODEL = "whisper-1"
_DEFAULT_AUDIO_EXTENSION = ".m4a"

_ROLE_MAP = {
    Role.USER: "user",
    Role.ASSISTANT: "assistant",
}


class OpenAIAdapter(ProviderAdapter):
    """Adapter for the OpenAI chat completions protocol."""

    kind = ProviderKind.OPENAI

    def __init__(
        self,
        *args: Any,
        transcription_model: Optional[str] = DEFAULT_TRANSCRIPTION_MODEL,
        audio_enabled: bool = True,
        **kwargs: Any,
    ) -> None:
        """
        Args:
            transcription_model: Model sent to ``/audio/transcriptions``.
                ``None`` means "use the rotated chat model".
            audio_enabled: Whether the provider exposes the transcription endpoint.
        """
        super().__init__(*args, **kwargs)
        self.transcription_model = transcription_model
        self.audio_enabled = audio_enabled

    # ------------------------------------------------------------------
    # Request builders
    # ------------------------------------------------------------------

    @staticmethod
    def _headers(config: ProviderConfig) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {config.api_key}",
        }

    def build_messages(self, history: Sequence[Message], system_prompt: str) -> list[dict[str, Any]]:
        """Build the ``messages`` array: a leading system message, then the history."""
        messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        for msg in history:
            content = msg.model_text()
            if not content:
                continue
            messages.append({"role": _ROLE_MAP[msg.role], "content": content})
        return messages

    def build_chat_request(
        self,
        history: Sequence[Message],
        config: ProviderConfig,
        stream: bool = False,
    ) -> HttpRequest:
        body: dict[str, Any] = {
            "model": config.model,
            "messages": self.build_messages(history, config.system_prompt),
            "temperature": self.temperature,
        }
        headers = self._headers(config)
        if stream:
            body["stream"] = True
            headers["Accept"] = "text/event-stream"
        return HttpRequest(
            url=f"{config.base_url}/chat/completions",
            headers=headers,
            json_body=body,
            timeout=self.timeout,
        )

    def build_vision_request(
        self,
        image: bytes,
        mime_type: str,
        prompt: str,
        config: ProviderConfig,
    ) -> HttpRequest:
        messages = [
            {
                "role": "system",
                "content": [{"type": "text", "text": config.system_prompt}],
            },
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": data_uri(image, mime_type)}},
                ],
            },
        ]
        return HttpRequest(
            url=f"{config.base_url}/chat/completions",
            headers=self._headers(config),
            json_body={
                "model": config.model,
                "messages": messages,
                "temperature": self.temperature,
            },
            timeout=self.vision_timeout,
        )

    def build_audio_request(
        self,
        audio: bytes,
        mime_type: str,
        prompt: str,
        config: ProviderConfig,
    ) -> HttpRequest:
        extension = mimetypes.guess_extension(mime_type) or _DEFAULT_AUDIO_EXTENSION
        return HttpRequest(
            url=f"{config.base_url}/audio/transcriptions",
            # Content-Type (with boundary) is set by the multipart encoder.
            headers={"Authorization": f"Bearer {config.api_key}"},
            form_fields=[
                MultipartField("model", self.transcription_model or config.model),
                MultipartField("prompt", prompt),
                MultipartField("file", audio, filename=f"audio{extension}", content_type=mime_type),
            ],
            timeout=self.vision_timeout,
        )

    def supports_audio(self, config: ProviderConfig) -> bool:
        return self.audio_enabled

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    def extract_text(self, payload: dict[str, Any]) -> Optional[str]:
        return dig(payload, "choices", 0, "message", "content")

    def parse_audio_response(self, response: HttpResponse) -> str:
        """
        Parse a transcription response: ``{"text": ...}``.

        Servers configured for ``response_format=text`` answer with the bare
        transcript, which is returned as is.
        """
        raise_for_status(response.status, response.text)
        try:
            payload = response.json()
        except DecodeError:
            return response.text.strip()
        if isinstance(payload, dict):
            text = payload.get("text")
            return text.strip() if isinstance(text, str) else ""
        return response.text.strip()

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def send_stream(
        self,
        history: Sequence[Message],
        config: ProviderConfig,
        on_delta: DeltaCallback,
    ) -> str:
        """
        Stream a chat completion.

        The HTTP status is checked before the body is read. If the transport
        fails mid-stream, the same request is repeated without streaming to
        recover the vendor's error body, which then becomes the raised error.

        Returns:
            The concatenated deltas.
        """
        request = self.build_chat_request(history, config, stream=True)
        try:
            async with self._transport.stream(request) as response:
                if not response.ok:
                    body = (await response.read()).decode("utf-8", errors="replace")
                    logger.warning(
                        "Streaming request rejected",
                        model=config.model,
                        status=response.status,
                        body=body[:500],
                    )
                    raise_for_status(response.status, body)
                return await decode_stream(response.iter_chunks(), on_delta)
        except TransportError as error:
            logger.warning("Stream failed, retrying without streaming for diagnostics", error=str(error))
            await self._raise_diagnostic_error(history, config)
            raise

    async def _raise_diagnostic_error(self, history: Sequence[Message], config: ProviderConfig) -> None:
        """Repeat a failed stream as a plain request; raise its error status if any."""
        fallback = self.build_chat_request(history, config, stream=False)
        response = await self._transport.send(fallback)
        raise_for_status(response.status, response.text)
