"""
Conversation Store
==================

Ordered message storage per conversation.

The orchestrator depends only on the ``ConversationStore`` protocol. The
in-memory implementation below keeps everything in process (use a database
for production). It is not internally synchronized: every mutation happens
on the event loop, and turns for one conversation are serialized by the
orchestrator.
"""

from typing import Optional, Protocol, Sequence

from loneless.chat.models import Conversation
from loneless.llm.models import Attachment, Message, Role, utc_now
from loneless.utils.logger import get_logger

logger = get_logger(__name__)

GREETING_MESSAGE = "Hi! How are you doing?"


class ConversationNotFoundError(LookupError):
    """Raised when a conversation id is unknown."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class MessageNotFoundError(LookupError):
    """Raised when a message id is unknown within a conversation."""

    def __init__(self, conversation_id: str, message_id: str) -> None:
        super().__init__(f"Message {message_id} not found in conversation {conversation_id}")
        self.conversation_id = conversation_id
        self.message_id = message_id


class ConversationStore(Protocol):
    """Operations the orchestrator needs from a conversation store."""

    def create_conversation(self, title: str = "Chat") -> Conversation: ...

    def get_conversation(self, conversation_id: str) -> Conversation: ...

    def list_conversations(self) -> list[Conversation]: ...

    def append_message(self, conversation_id: str, message: Message) -> Message: ...

    def get_history(self, conversation_id: str, limit: Optional[int] = None) -> list[Message]: ...

    def mark_read(self, conversation_id: str, message_id: str) -> Message: ...

    def replace_message(self, conversation_id: str, message: Message) -> Message: ...

    def update_message_text(self, conversation_id: str, message_id: str, text: str) -> Message: ...

    def remove_message(self, conversation_id: str, message_id: str) -> None: ...

    def remove_error_messages(self, conversation_id: str, texts: Sequence[str]) -> int: ...

    def update_last_user_message(
        self,
        conversation_id: str,
        text: str,
        attachments: Optional[list[Attachment]] = None,
    ) -> Optional[Message]: ...

    def set_error(self, conversation_id: str, has_error: bool) -> None: ...


class InMemoryConversationStore:
    """Process-local ``ConversationStore``."""

    def __init__(self, greeting: Optional[str] = GREETING_MESSAGE) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._greeting = greeting

    def create_conversation(self, title: str = "Chat") -> Conversation:
        """Create a conversation, seeded with a greeting from the assistant."""
        conversation = Conversation(title=title)
        if self._greeting:
            conversation.messages.append(Message(role=Role.ASSISTANT, text=self._greeting))
        self._conversations[conversation.id] = conversation
        logger.info("Conversation created", conversation_id=conversation.id, title=title)
        return conversation

    def get_conversation(self, conversation_id: str) -> Conversation:
        try:
            return self._conversations[conversation_id]
        except KeyError:
            raise ConversationNotFoundError(conversation_id) from None

    def list_conversations(self) -> list[Conversation]:
        """Return conversations, most recently updated first."""
        return sorted(self._conversations.values(), key=lambda c: c.updated_at, reverse=True)

    def delete_conversation(self, conversation_id: str) -> None:
        self.get_conversation(conversation_id)
        del self._conversations[conversation_id]
        logger.info("Conversation deleted", conversation_id=conversation_id)

    def append_message(self, conversation_id: str, message: Message) -> Message:
        conversation = self.get_conversation(conversation_id)
        conversation.messages.append(message)
        conversation.touch()
        return message

    def get_history(self, conversation_id: str, limit: Optional[int] = None) -> list[Message]:
        """
        Return a copy of the message list in insertion order.

        Args:
            limit: Only return the last ``limit`` messages.
        """
        messages = list(self.get_conversation(conversation_id).messages)
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return messages

    def _get_message(self, conversation_id: str, message_id: str) -> Message:
        message = self.get_conversation(conversation_id).find(message_id)
        if message is None:
            raise MessageNotFoundError(conversation_id, message_id)
        return message

    def mark_read(self, conversation_id: str, message_id: str) -> Message:
        """Set the read timestamp. A message that is already read is left unchanged."""
        message = self._get_message(conversation_id, message_id)
        if message.read_at is None:
            message.read_at = utc_now()
        return message

    def replace_message(self, conversation_id: str, message: Message) -> Message:
        """Replace the stored message that has the same id."""
        conversation = self.get_conversation(conversation_id)
        for index, existing in enumerate(conversation.messages):
            if existing.id == message.id:
                conversation.messages[index] = message
                conversation.touch()
                return message
        raise MessageNotFoundError(conversation_id, message.id)

    def update_message_text(self, conversation_id: str, message_id: str, text: str) -> Message:
        message = self._get_message(conversation_id, message_id)
        message.text = text
        return message

    def remove_message(self, conversation_id: str, message_id: str) -> None:
        conversation = self.get_conversation(conversation_id)
        conversation.messages = [m for m in conversation.messages if m.id != message_id]

    def remove_error_messages(self, conversation_id: str, texts: Sequence[str]) -> int:
        """
        Remove trailing assistant messages whose text is one of ``texts``.

        Returns:
            Number of removed messages.
        """
        conversation = self.get_conversation(conversation_id)
        removed = 0
        while (
            conversation.messages
            and conversation.messages[-1].role is Role.ASSISTANT
            and conversation.messages[-1].text in texts
        ):
            conversation.messages.pop()
            removed += 1
        return removed

    def update_last_user_message(
        self,
        conversation_id: str,
        text: str,
        attachments: Optional[list[Attachment]] = None,
    ) -> Optional[Message]:
        """
        Replace text and attachments of the newest user message.

        Returns:
            The updated message, or None if the conversation has no user message.
        """
        conversation = self.get_conversation(conversation_id)
        for message in reversed(conversation.messages):
            if message.role is Role.USER:
                message.text = text
                message.attachments = list(attachments or [])
                message.read_at = None
                conversation.touch()
                return message
        return None

    def set_error(self, conversation_id: str, has_error: bool) -> None:
        self.get_conversation(conversation_id).has_error = has_error
