"""
Output Collaborators
====================

Speech synthesis and notifications are delivered by the client app; the
backend only decides *when* they happen. The default implementations log
the request so the decision is visible in the server logs.
"""

from typing import Protocol

from loneless.utils.logger import get_logger

logger = get_logger(__name__)


class SpeechSynthesizer(Protocol):
    async def speak(self, conversation_id: str, text: str) -> None: ...


class Notifier(Protocol):
    async def notify(self, conversation_id: str, title: str, body: str) -> None: ...


class LoggingSpeechSynthesizer:
    """Speech synthesizer that only records the request."""

    async def speak(self, conversation_id: str, text: str) -> None:
        logger.info("Speech requested", conversation_id=conversation_id, chars=len(text))


class LoggingNotifier:
    """Notifier that only records the notification."""

    async def notify(self, conversation_id: str, title: str, body: str) -> None:
        logger.info("Notification requested", conversation_id=conversation_id, title=title, preview=body[:80])
