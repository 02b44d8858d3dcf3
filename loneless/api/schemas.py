"""
API Schemas
===========

Request/response models shared by the REST routes. Media travels as
base64 strings inside JSON bodies.
"""

import base64
import binascii
from datetime import datetime
from typing import Optional

from fastapi import HTTPException, status
from pydantic import BaseModel, Field

from loneless.chat.models import Conversation, TurnResult
from loneless.llm.models import Attachment, AttachmentKind, Message, encode_base64


def decode_media(data: str) -> bytes:
    """Decode a base64 payload, answering 400 on malformed input."""
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Media data is not valid base64",
        ) from None


class AttachmentIn(BaseModel):
    """Attachment uploaded with a turn."""

    kind: AttachmentKind
    data: str = Field(..., description="Base64-encoded media bytes")
    mime_type: str = Field(..., examples=["image/jpeg", "audio/m4a"])
    duration: Optional[float] = Field(default=None, ge=0, description="Audio duration in seconds")
    transcription: Optional[str] = None

    def to_attachment(self) -> Attachment:
        return Attachment(
            kind=self.kind,
            data=decode_media(self.data),
            mime_type=self.mime_type,
            duration=self.duration,
            transcription=self.transcription,
        )


class AttachmentOut(BaseModel):
    id: str
    kind: AttachmentKind
    mime_type: str
    data: Optional[str] = None
    duration: Optional[float] = None
    transcription: Optional[str] = None

    @classmethod
    def from_attachment(cls, attachment: Attachment, include_data: bool = False) -> "AttachmentOut":
        return cls(
            id=attachment.id,
            kind=attachment.kind,
            mime_type=attachment.mime_type,
            data=encode_base64(attachment.data) if include_data else None,
            duration=attachment.duration,
            transcription=attachment.transcription,
        )


class MessageOut(BaseModel):
    id: str
    role: str
    text: str
    created_at: datetime
    read_at: Optional[datetime] = None
    attachments: list[AttachmentOut] = Field(default_factory=list)

    @classmethod
    def from_message(cls, message: Message) -> "MessageOut":
        return cls(
            id=message.id,
            role=message.role.value,
            text=message.text,
            created_at=message.created_at,
            read_at=message.read_at,
            attachments=[AttachmentOut.from_attachment(a) for a in message.attachments],
        )


class ConversationOut(BaseModel):
    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    has_error: bool
    message_count: int

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "ConversationOut":
        return cls(
            id=conversation.id,
            title=conversation.title,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            has_error=conversation.has_error,
            message_count=len(conversation.messages),
        )


class RestoredInputOut(BaseModel):
    text: str
    attachments: list[AttachmentOut] = Field(default_factory=list)


class TurnResponse(BaseModel):
    """Outcome of a turn. Failures are reported here, not as HTTP errors."""

    status: str
    reply: Optional[MessageOut] = None
    error: Optional[str] = None
    message: Optional[str] = None
    restored_input: Optional[RestoredInputOut] = None
    spoken: bool = False

    @classmethod
    def from_result(cls, result: TurnResult) -> "TurnResponse":
        restored = None
        if result.restored_input is not None:
            restored = RestoredInputOut(
                text=result.restored_input.text,
                attachments=[
                    AttachmentOut.from_attachment(a, include_data=True)
                    for a in result.restored_input.attachments
                ],
            )
        return cls(
            status=result.status.value,
            reply=MessageOut.from_message(result.reply) if result.reply else None,
            error=type(result.error).__name__ if result.error else None,
            message=result.user_message,
            restored_input=restored,
            spoken=result.spoken,
        )
