"""
Chat Module
===========

Conversation handling on top of the LLM layer.

This package contains:
    - models: conversations and turn results
    - store: conversation store protocol and in-memory implementation
    - orchestrator: runs conversational turns
    - scheduler: assistant-initiated random messages
    - prompts: fixed prompts and user-facing strings
    - collaborators: speech synthesis and notification interfaces
"""

from loneless.chat.collaborators import LoggingNotifier, LoggingSpeechSynthesizer, Notifier, SpeechSynthesizer
from loneless.chat.models import Conversation, RestoredInput, TurnResult, TurnStatus
from loneless.chat.orchestrator import ChatOrchestrator
from loneless.chat.scheduler import RandomMessageScheduler
from loneless.chat.store import (
    ConversationNotFoundError,
    ConversationStore,
    InMemoryConversationStore,
    MessageNotFoundError,
)

__all__ = [
    "ChatOrchestrator",
    "RandomMessageScheduler",
    "Conversation",
    "RestoredInput",
    "TurnResult",
    "TurnStatus",
    "ConversationStore",
    "InMemoryConversationStore",
    "ConversationNotFoundError",
    "MessageNotFoundError",
    "SpeechSynthesizer",
    "Notifier",
    "LoggingSpeechSynthesizer",
    "LoggingNotifier",
]
