"""
Tests for the In-Memory Conversation Store
==========================================
"""

import pytest

from loneless.chat.store import (
    GREETING_MESSAGE,
    ConversationNotFoundError,
    InMemoryConversationStore,
    MessageNotFoundError,
)
from loneless.llm.models import Attachment, AttachmentKind, Message, Role


class TestConversations:
    def test_create_seeds_greeting(self, store):
        conversation = store.create_conversation("Anna")

        assert conversation.title == "Anna"
        assert len(conversation.messages) == 1
        assert conversation.messages[0].role is Role.ASSISTANT
        assert conversation.messages[0].text == GREETING_MESSAGE

    def test_no_greeting(self):
        store = InMemoryConversationStore(greeting=None)
        assert store.create_conversation().messages == []

    def test_unknown_conversation(self, store):
        with pytest.raises(ConversationNotFoundError):
            store.get_conversation("missing")

    def test_list_most_recent_first(self, store):
        first = store.create_conversation("first")
        second = store.create_conversation("second")
        store.append_message(first.id, Message(role=Role.USER, text="bump"))

        assert [c.id for c in store.list_conversations()] == [first.id, second.id]

    def test_delete(self, store):
        conversation = store.create_conversation()
        store.delete_conversation(conversation.id)
        assert store.list_conversations() == []


class TestMessages:
    @pytest.fixture
    def conversation(self, store):
        return store.create_conversation()

    def test_history_is_copy(self, store, conversation):
        history = store.get_history(conversation.id)
        history.append(Message(role=Role.USER, text="not stored"))

        assert len(store.get_history(conversation.id)) == 1

    def test_history_limit(self, store, conversation):
        for i in range(5):
            store.append_message(conversation.id, Message(role=Role.USER, text=str(i)))

        assert [m.text for m in store.get_history(conversation.id, limit=3)] == ["2", "3", "4"]
        assert store.get_history(conversation.id, limit=0) == []

    def test_mark_read_sets_timestamp(self, store, conversation):
        message = store.append_message(conversation.id, Message(role=Role.USER, text="hi"))

        store.mark_read(conversation.id, message.id)

        assert message.read_at is not None

    def test_mark_read_is_idempotent(self, store, conversation):
        message = store.append_message(conversation.id, Message(role=Role.USER, text="hi"))
        first = store.mark_read(conversation.id, message.id).read_at

        second = store.mark_read(conversation.id, message.id).read_at

        assert second == first

    def test_mark_read_unknown_message(self, store, conversation):
        with pytest.raises(MessageNotFoundError):
            store.mark_read(conversation.id, "missing")

    def test_replace_message(self, store, conversation):
        original = store.append_message(conversation.id, Message(role=Role.ASSISTANT, text="draft"))
        replacement = Message(role=Role.ASSISTANT, text="final", id=original.id)

        store.replace_message(conversation.id, replacement)

        assert store.get_history(conversation.id)[-1].text == "final"

    def test_update_and_remove(self, store, conversation):
        message = store.append_message(conversation.id, Message(role=Role.ASSISTANT, text="Hel"))

        store.update_message_text(conversation.id, message.id, "Hello")
        assert store.get_history(conversation.id)[-1].text == "Hello"

        store.remove_message(conversation.id, message.id)
        assert len(store.get_history(conversation.id)) == 1

    def test_remove_trailing_error_messages(self, store, conversation):
        store.append_message(conversation.id, Message(role=Role.USER, text="hi"))
        store.append_message(conversation.id, Message(role=Role.ASSISTANT, text="oops"))

        assert store.remove_error_messages(conversation.id, ["oops"]) == 1
        assert store.get_history(conversation.id)[-1].text == "hi"
        assert store.remove_error_messages(conversation.id, ["oops"]) == 0

    def test_update_last_user_message(self, store, conversation):
        store.append_message(conversation.id, Message(role=Role.USER, text="old"))
        store.append_message(conversation.id, Message(role=Role.ASSISTANT, text="reply"))
        image = Attachment(kind=AttachmentKind.IMAGE, data=b"img", mime_type="image/png")

        updated = store.update_last_user_message(conversation.id, "new", [image])

        assert updated.text == "new"
        assert updated.attachments == [image]
        assert [m.text for m in store.get_history(conversation.id)] == [GREETING_MESSAGE, "new", "reply"]

    def test_update_last_user_message_without_user_message(self, store, conversation):
        assert store.update_last_user_message(conversation.id, "new") is None

    def test_error_flag(self, store, conversation):
        store.set_error(conversation.id, True)
        assert store.get_conversation(conversation.id).has_error
