"""
Gemini Adapter
==============

Adapter for the Gemini ``generateContent`` REST protocol.

Wire format:
    POST {base_url}/models/{model}:generateContent?key={key}
    {"contents": [{"role": "user" | "model", "parts": [{"text": ...}]}],
     "generationConfig": {"temperature": 0.8}}

The API key travels in the query string only. This protocol shape has no
system role: the system prompt becomes a leading ``user`` turn for chat, and
is folded in front of the prompt text for image/audio requests. Media is
sent inline as ``inlineData{mimeType, data}`` parts.

Streaming is not used with this protocol: ``send_stream`` performs one
ordinary call and delivers the whole reply as a single delta.
"""

from typing import Any, Optional, Sequence

from loneless.llm.base import ProviderAdapter, dig
from loneless.llm.models import Message, ProviderConfig, ProviderKind, Role, encode_base64
from loneless.llm.streaming import DeltaCallback
from loneless.llm.transport import HttpRequest

# Model families whose generateContent endpoint rejects inline audio.
AUDIO_UNSUPPORTED_MODEL_PREFIXES = ("gemini-1.0", "gemini-pro")

_ROLE_MAP = {
    Role.USER: "user",
    Role.ASSISTANT: "model",
}


class GeminiAdapter(ProviderAdapter):
    """Adapter for the Gemini generateContent protocol."""

    kind = ProviderKind.GEMINI

    # ------------------------------------------------------------------
    # Request builders
    # ------------------------------------------------------------------

    def _request(self, config: ProviderConfig, contents: list[dict[str, Any]], timeout=None) -> HttpRequest:
        return HttpRequest(
            url=f"{config.base_url}/models/{config.model}:generateContent",
            headers={"Content-Type": "application/json"},
            params={"key": config.api_key},
            json_body={
                "contents": contents,
                "generationConfig": {"temperature": self.temperature},
            },
            timeout=timeout or self.timeout,
        )

    def build_contents(self, history: Sequence[Message], system_prompt: str) -> list[dict[str, Any]]:
        """Build the ``contents`` array, folding the system prompt into a user turn."""
        contents: list[dict[str, Any]] = []
        if system_prompt:
            contents.append({"role": "user", "parts": [{"text": system_prompt}]})
        for msg in history:
            text = msg.model_text()
            if not text:
                continue
            contents.append({"role": _ROLE_MAP[msg.role], "parts": [{"text": text}]})
        return contents

    def build_chat_request(
        self,
        history: Sequence[Message],
        config: ProviderConfig,
        stream: bool = False,
    ) -> HttpRequest:
        return self._request(config, self.build_contents(history, config.system_prompt))

    @staticmethod
    def _media_contents(data: bytes, mime_type: str, prompt: str, system_prompt: str) -> list[dict[str, Any]]:
        """One user turn: instruction text (if any) followed by the inline media."""
        text = "\n\n".join(p for p in (system_prompt.strip(), prompt.strip()) if p)
        parts: list[dict[str, Any]] = []
        if text:
            parts.append({"text": text})
        parts.append({"inlineData": {"mimeType": mime_type, "data": encode_base64(data)}})
        return [{"role": "user", "parts": parts}]

    def build_vision_request(
        self,
        image: bytes,
        mime_type: str,
        prompt: str,
        config: ProviderConfig,
    ) -> HttpRequest:
        contents = self._media_contents(image, mime_type, prompt, config.system_prompt)
        return self._request(config, contents, timeout=self.vision_timeout)

    def build_audio_request(
        self,
        audio: bytes,
        mime_type: str,
        prompt: str,
        config: ProviderConfig,
    ) -> HttpRequest:
        contents = self._media_contents(audio, mime_type, prompt, config.system_prompt)
        return self._request(config, contents, timeout=self.vision_timeout)

    def supports_audio(self, config: ProviderConfig) -> bool:
        return not config.model.startswith(AUDIO_UNSUPPORTED_MODEL_PREFIXES)

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    def extract_text(self, payload: dict[str, Any]) -> Optional[str]:
        return dig(payload, "candidates", 0, "content", "parts", 0, "text")

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def send_stream(
        self,
        history: Sequence[Message],
        config: ProviderConfig,
        on_delta: DeltaCallback,
    ) -> str:
        text = await self.send(history, config)
        if text:
            on_delta(text)
        return text
