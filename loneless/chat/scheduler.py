"""
Random Message Scheduler
========================

Background loop that makes the assistant write first from time to time.

After an initial delay, and then every 60 to 180 minutes (configurable),
the most recently active conversation receives an assistant-initiated
message via ``ChatOrchestrator.send_random_message``.
"""

import asyncio
import random
from typing import Optional

from loneless.chat.orchestrator import ChatOrchestrator, SleepFunc
from loneless.chat.store import ConversationStore
from loneless.config import ChatSettings
from loneless.llm.models import Message
from loneless.utils.logger import get_logger

logger = get_logger(__name__)


class RandomMessageScheduler:
    """Runs ``send_random_message`` on a randomized timer."""

    def __init__(
        self,
        orchestrator: ChatOrchestrator,
        store: ConversationStore,
        chat_settings: Optional[ChatSettings] = None,
        sleep: SleepFunc = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._store = store
        self._chat = chat_settings or ChatSettings()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_interval(self) -> float:
        """Seconds until the next random message."""
        minutes = self._rng.randint(self._chat.random_message_min_minutes, self._chat.random_message_max_minutes)
        return minutes * 60.0

    def pick_conversation(self) -> Optional[str]:
        """Most recently updated conversation that already has messages."""
        for conversation in self._store.list_conversations():
            if conversation.messages:
                return conversation.id
        return None

    async def run_once(self) -> Optional[Message]:
        conversation_id = self.pick_conversation()
        if conversation_id is None:
            logger.debug("No conversation for a random message")
            return None
        return await self._orchestrator.send_random_message(conversation_id)

    async def _loop(self) -> None:
        await self._sleep(self._chat.random_message_initial_delay)
        while True:
            await self.run_once()
            interval = self.next_interval()
            logger.info("Next random message scheduled", in_minutes=round(interval / 60))
            await self._sleep(interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Random message scheduler started",
            initial_delay=self._chat.random_message_initial_delay,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Random message scheduler stopped")
