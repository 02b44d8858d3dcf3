"""
LLM Data Model
==============

Data classes shared by the provider adapters, the rotation policy and the
chat orchestrator: provider configuration, conversation messages and their
media attachments.
"""

import base64
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

# Substring of the Gemini API host used to recognise a Gemini base URL.
GEMINI_HOST_MARKER = "generativelanguage"

DEFAULT_TEMPERATURE = 0.8


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class ProviderKind(str, Enum):
    """Wire protocol spoken by a provider."""

    OPENAI = "openai"
    GEMINI = "gemini"

    @classmethod
    def from_base_url(cls, base_url: str) -> "ProviderKind":
        """Derive the protocol from a base URL (Gemini host marker or OpenAI-compatible)."""
        if GEMINI_HOST_MARKER in base_url:
            return cls.GEMINI
        return cls.OPENAI


class Role(str, Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"


class AttachmentKind(str, Enum):
    """Media type of an attachment."""

    IMAGE = "image"
    AUDIO = "audio"


@dataclass(frozen=True)
class ProviderConfig:
    """
    Per-call provider configuration.

    Attributes:
        api_key: Credential for the call (may be empty; callers guard).
        model: Model identifier.
        system_prompt: System prompt for the call (may be empty).
        base_url: Provider base URL without trailing slash.
        kind: Wire protocol. Derived from ``base_url`` when not given.
    """

    api_key: str
    model: str
    system_prompt: str
    base_url: str
    kind: Optional[ProviderKind] = None

    def __post_init__(self) -> None:
        """Validate and resolve the provider kind once."""
        if not self.model:
            raise ValueError("model is required")
        if not self.base_url:
            raise ValueError("base_url is required")
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))
        if self.kind is None:
            object.__setattr__(self, "kind", ProviderKind.from_base_url(self.base_url))

    @property
    def is_gemini(self) -> bool:
        return self.kind is ProviderKind.GEMINI

    def with_credentials(self, api_key: str, model: str) -> "ProviderConfig":
        """Return a copy using another key/model pair (used by key/model rotation)."""
        return replace(self, api_key=api_key, model=model)

    def with_system_prompt(self, system_prompt: str) -> "ProviderConfig":
        """Return a copy with a different system prompt."""
        return replace(self, system_prompt=system_prompt)


@dataclass
class Attachment:
    """
    Media attached to a message.

    Attributes:
        kind: Image or audio.
        data: Raw media bytes.
        mime_type: MIME type of ``data``.
        duration: Audio duration in seconds.
        transcription: Audio transcript, filled in by the orchestrator.
        is_listened: Whether an audio attachment has been played.
    """

    kind: AttachmentKind
    data: bytes
    mime_type: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    duration: Optional[float] = None
    transcription: Optional[str] = None
    is_listened: Optional[bool] = None


@dataclass
class Message:
    """
    A message in a conversation.

    Immutable once created except for ``read_at`` and text replacement
    while a streamed reply is completing.
    """

    role: Role
    text: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utc_now)
    attachments: list[Attachment] = field(default_factory=list)
    read_at: Optional[datetime] = None

    @property
    def images(self) -> list[Attachment]:
        return [a for a in self.attachments if a.kind is AttachmentKind.IMAGE]

    @property
    def audio(self) -> list[Attachment]:
        return [a for a in self.attachments if a.kind is AttachmentKind.AUDIO]

    def model_text(self) -> str:
        """Text sent to the model: the message text plus any audio transcripts."""
        pieces = [self.text.strip()] if self.text.strip() else []
        for attachment in self.audio:
            if attachment.transcription:
                pieces.append(attachment.transcription.strip())
        return "\n".join(pieces)


def encode_base64(data: bytes) -> str:
    """Encode raw bytes as a base64 ASCII string."""
    return base64.b64encode(data).decode("ascii")


def data_uri(data: bytes, mime_type: str) -> str:
    """Build a ``data:`` URI carrying base64 media."""
    return f"data:{mime_type};base64,{encode_base64(data)}"
