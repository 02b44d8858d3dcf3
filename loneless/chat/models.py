"""
Chat Data Models
================

Conversation state and the result of one conversational turn.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from loneless.llm.errors import LLMError
from loneless.llm.models import Attachment, Message, utc_now


class TurnStatus(str, Enum):
    """Outcome of a turn."""

    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class Conversation:
    """
    An ordered list of messages.

    ``has_error`` is set when the last turn failed; the next send then
    replaces the failed user message instead of appending a duplicate.
    """

    title: str = "Chat"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    messages: list[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    has_error: bool = False

    def touch(self) -> None:
        self.updated_at = utc_now()

    def find(self, message_id: str) -> Optional[Message]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None


@dataclass
class RestoredInput:
    """User content handed back after a failed turn so it can be resubmitted."""

    text: str
    attachments: list[Attachment] = field(default_factory=list)


@dataclass
class TurnResult:
    """
    Result of ``ChatOrchestrator.send_turn``.

    Attributes:
        status: success, failed or cancelled.
        reply: The stored assistant message (on success).
        error: The error that ended the turn (on failure).
        user_message: Fixed user-facing text describing the failure.
        restored_input: The user's original input (on failure).
        spoken: Whether the reply was sent to speech synthesis.
    """

    status: TurnStatus
    reply: Optional[Message] = None
    error: Optional[LLMError] = None
    user_message: Optional[str] = None
    restored_input: Optional[RestoredInput] = None
    spoken: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status is TurnStatus.SUCCESS

    @classmethod
    def cancelled(cls) -> "TurnResult":
        return cls(status=TurnStatus.CANCELLED)
