"""
Chat Orchestrator
=================

Sequences one user-visible conversational turn:

1. Check that an API key is configured (otherwise post the "add a key"
   notice, no network call).
2. Store the user message (or replace the failed one after an error) and
   mark it read.
3. Wait a random "thinking" delay.
4. Transcribe voice attachments, then ask the model through the rotation
   policy: vision for images, streaming or plain chat for text.
5. Wait a random "typing" delay, clean the reply and store it; speak it
   and notify when configured.
6. On failure post a fixed apology, flag the conversation's error state
   and hand the user's input back for resubmission.

Turns of one conversation run one at a time behind a per-conversation
lock. Starting a new interactive turn cancels the previous one if it is
still running; its caller receives a ``cancelled`` result.

Usage:
    orchestrator = ChatOrchestrator(store, adapter, rotation, provider_config, settings.chat)
    result = await orchestrator.send_turn(conversation.id, "Hi!")
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from loneless.chat.collaborators import LoggingNotifier, LoggingSpeechSynthesizer, Notifier, SpeechSynthesizer
from loneless.chat.models import RestoredInput, TurnResult, TurnStatus
from loneless.chat.prompts import (
    ADD_API_KEY_MESSAGE,
    CONNECTION_TROUBLE_MESSAGE,
    DEFAULT_IMAGE_REACTION_PROMPT,
    KEYS_EXHAUSTED_MESSAGE,
    MOOD_CONTEXTS,
    RANDOM_MESSAGE_PROMPTS,
    TRANSCRIPTION_PROMPT,
    TRANSCRIPTION_SYSTEM_PROMPT,
    VOICE_REQUEST_PHRASES,
)
from loneless.chat.store import ConversationNotFoundError, ConversationStore
from loneless.config import ChatSettings
from loneless.llm.base import AUDIO_UNSUPPORTED_MESSAGE, ProviderAdapter
from loneless.llm.errors import (
    CapabilityError,
    ConfigurationError,
    DecodeError,
    LLMError,
    QuotaExceededError,
    TransportError,
)
from loneless.llm.models import Attachment, Message, ProviderConfig, Role
from loneless.llm.response_parser import clean_response_text, prepare_speech_text
from loneless.llm.rotation import RotationPolicy
from loneless.utils.logger import LogContext, get_logger

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


def _join_prompt(*pieces: str) -> str:
    return "\n\n".join(p for p in pieces if p)


@dataclass
class _ReplyTarget:
    """The assistant message a streamed reply is written into, once created."""

    message: Optional[Message] = None


class ChatOrchestrator:
    """
    Runs conversational turns against the configured provider.

    Args:
        store: Conversation store.
        adapter: Provider protocol adapter.
        rotation: Key/model rotation policy shared by all calls.
        provider: Template config (base URL, kind, base system prompt).
            Key and model are filled in per attempt by the rotation policy.
        chat_settings: Delays, feature flags and random message settings.
        speech: Speech synthesis collaborator.
        notifier: Notification collaborator.
        sleep: Awaitable sleep, injectable for tests.
        rng: Random source for delays, moods and prompts.
    """

    def __init__(
        self,
        store: ConversationStore,
        adapter: ProviderAdapter,
        rotation: RotationPolicy,
        provider: ProviderConfig,
        chat_settings: Optional[ChatSettings] = None,
        speech: Optional[SpeechSynthesizer] = None,
        notifier: Optional[Notifier] = None,
        sleep: SleepFunc = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._store = store
        self._adapter = adapter
        self._rotation = rotation
        self._provider = provider
        self._chat = chat_settings or ChatSettings()
        self._speech = speech or LoggingSpeechSynthesizer()
        self._notifier = notifier or LoggingNotifier()
        self._sleep = sleep
        self._rng = rng or random.Random()

        self._locks: dict[str, asyncio.Lock] = {}
        self._active: dict[str, asyncio.Task] = {}
        self._superseded: set[asyncio.Task] = set()
        # Texts of notices posted in place of a reply; removed again on resend.
        self._error_texts: set[str] = {
            ADD_API_KEY_MESSAGE,
            CONNECTION_TROUBLE_MESSAGE,
            KEYS_EXHAUSTED_MESSAGE,
            AUDIO_UNSUPPORTED_MESSAGE,
        }

    # ------------------------------------------------------------------
    # Turn scheduling
    # ------------------------------------------------------------------

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        return lock

    def is_busy(self, conversation_id: str) -> bool:
        """Whether an interactive turn is running (or queued) for the conversation."""
        task = self._active.get(conversation_id)
        lock = self._locks.get(conversation_id)
        return (task is not None and not task.done()) or (lock is not None and lock.locked())

    def _cancel_stale_turn(self, conversation_id: str) -> None:
        stale = self._active.get(conversation_id)
        if stale is not None and not stale.done():
            logger.info("Cancelling stale turn", conversation_id=conversation_id)
            self._superseded.add(stale)
            stale.cancel()

    def forget_conversation(self, conversation_id: str) -> None:
        """Cancel a running turn of a deleted conversation and drop its lock."""
        self._cancel_stale_turn(conversation_id)
        self._locks.pop(conversation_id, None)

    async def send_turn(
        self,
        conversation_id: str,
        text: str,
        attachments: Optional[Sequence[Attachment]] = None,
        system_prompt: Optional[str] = None,
    ) -> TurnResult:
        """
        Run one turn and return its outcome.

        Provider failures never raise: they are reported in the returned
        ``TurnResult`` together with the user's input.

        Raises:
            ConversationNotFoundError: If the conversation does not exist.
        """
        self._store.get_conversation(conversation_id)
        self._cancel_stale_turn(conversation_id)

        turn = asyncio.create_task(
            self._run_turn(conversation_id, text.strip(), list(attachments or []), system_prompt)
        )
        self._active[conversation_id] = turn
        try:
            return await turn
        except asyncio.CancelledError:
            if turn in self._superseded:
                logger.info("Turn superseded by a newer one", conversation_id=conversation_id)
                return TurnResult.cancelled()
            raise
        finally:
            self._superseded.discard(turn)
            if self._active.get(conversation_id) is turn:
                del self._active[conversation_id]

    # ------------------------------------------------------------------
    # Turn execution
    # ------------------------------------------------------------------

    def _delay(self, low: float, high: float) -> float:
        return self._rng.uniform(low, high) if high > 0 else 0.0

    def _turn_system_prompt(self, system_prompt: Optional[str]) -> str:
        base = self._provider.system_prompt if system_prompt is None else system_prompt
        if not self._chat.enable_mood:
            return base
        return _join_prompt(base, self._rng.choice(MOOD_CONTEXTS))

    def _store_user_message(self, conversation_id: str, text: str, attachments: list[Attachment]) -> Message:
        """Append the user message, or replace the failed one when the conversation is in error state."""
        conversation = self._store.get_conversation(conversation_id)
        if conversation.has_error:
            self._store.remove_error_messages(conversation_id, tuple(self._error_texts))
            message = self._store.update_last_user_message(conversation_id, text, attachments)
            self._store.set_error(conversation_id, False)
            if message is not None:
                logger.debug("Replaced failed user message", conversation_id=conversation_id, message_id=message.id)
                return message
        return self._store.append_message(
            conversation_id,
            Message(role=Role.USER, text=text, attachments=attachments),
        )

    def _post_notice(self, conversation_id: str, text: str) -> None:
        self._error_texts.add(text)
        self._store.append_message(conversation_id, Message(role=Role.ASSISTANT, text=text))
        self._store.set_error(conversation_id, True)

    async def _run_turn(
        self,
        conversation_id: str,
        text: str,
        attachments: list[Attachment],
        system_prompt: Optional[str],
    ) -> TurnResult:
        async with self._lock_for(conversation_id):
            with LogContext(conversation_id=conversation_id):
                user_message = self._store_user_message(conversation_id, text, attachments)
                restored = RestoredInput(text=text, attachments=attachments)

                if not self._rotation.has_keys:
                    logger.warning("No API key configured, skipping provider call")
                    self._post_notice(conversation_id, ADD_API_KEY_MESSAGE)
                    return TurnResult(
                        status=TurnStatus.FAILED,
                        error=ConfigurationError("No API key configured"),
                        user_message=ADD_API_KEY_MESSAGE,
                        restored_input=restored,
                    )

                self._store.mark_read(conversation_id, user_message.id)
                target = _ReplyTarget()
                try:
                    reply = await self._produce_reply(conversation_id, user_message, system_prompt, target)
                except LLMError as e:
                    self._discard(conversation_id, target)
                    return self._fail(conversation_id, e, restored)
                except asyncio.CancelledError:
                    self._discard(conversation_id, target)
                    raise

                spoken = await self._deliver(conversation_id, reply, self._wants_speech(text))
                logger.info("Turn completed", reply_id=reply.id, chars=len(reply.text), spoken=spoken)
                return TurnResult(status=TurnStatus.SUCCESS, reply=reply, spoken=spoken)

    async def _produce_reply(
        self,
        conversation_id: str,
        user_message: Message,
        system_prompt: Optional[str],
        target: _ReplyTarget,
    ) -> Message:
        await self._sleep(self._delay(self._chat.thinking_delay_min, self._chat.thinking_delay_max))

        config = self._provider.with_system_prompt(self._turn_system_prompt(system_prompt))

        for attachment in user_message.audio:
            if not attachment.transcription:
                attachment.transcription = await self.transcribe(attachment.data, attachment.mime_type)

        images = user_message.images
        if images:
            if len(images) > 1:
                logger.info("Several images attached, reacting to the first", count=len(images))
            prompt = user_message.model_text() or DEFAULT_IMAGE_REACTION_PROMPT
            raw = await self._call_vision(images[0].data, images[0].mime_type, prompt, config)
        elif self._chat.use_streaming:
            history = self._store.get_history(conversation_id)
            raw = await self._call_streaming(conversation_id, history, config, target)
        else:
            history = self._store.get_history(conversation_id)
            raw = await self._rotation.execute(
                lambda key, model: self._adapter.send(history, config.with_credentials(key, model))
            )

        await self._sleep(self._delay(self._chat.typing_delay_min, self._chat.typing_delay_max))

        cleaned = clean_response_text(raw)
        if not cleaned:
            raise DecodeError("Provider returned an empty reply", raw_body=raw)
        if target.message is not None:
            return self._store.update_message_text(conversation_id, target.message.id, cleaned)
        return self._store.append_message(conversation_id, Message(role=Role.ASSISTANT, text=cleaned))

    async def _call_vision(self, image: bytes, mime_type: str, prompt: str, config: ProviderConfig) -> str:
        return await self._rotation.execute(
            lambda key, model: self._adapter.describe_image(
                image, mime_type, prompt, config.with_credentials(key, model)
            )
        )

    async def _call_streaming(
        self,
        conversation_id: str,
        history: list[Message],
        config: ProviderConfig,
        target: _ReplyTarget,
    ) -> str:
        """Stream a reply into one assistant message that grows with every delta."""

        async def attempt(key: str, model: str) -> str:
            # A retried attempt starts over with an empty reply.
            self._discard(conversation_id, target)
            received: list[str] = []

            def on_delta(delta: str) -> None:
                received.append(delta)
                partial = "".join(received)
                if target.message is None:
                    target.message = self._store.append_message(
                        conversation_id, Message(role=Role.ASSISTANT, text=partial)
                    )
                else:
                    self._store.update_message_text(conversation_id, target.message.id, partial)

            return await self._adapter.send_stream(history, config.with_credentials(key, model), on_delta)

        return await self._rotation.execute(attempt)

    def _discard(self, conversation_id: str, target: _ReplyTarget) -> None:
        if target.message is not None:
            try:
                self._store.remove_message(conversation_id, target.message.id)
            except ConversationNotFoundError:
                logger.debug("Conversation deleted with its partial reply", conversation_id=conversation_id)
            target.message = None

    def _wants_speech(self, user_text: str) -> bool:
        if self._chat.enable_voice_responses:
            return True
        lowered = user_text.lower()
        return any(phrase in lowered for phrase in VOICE_REQUEST_PHRASES)

    async def _deliver(self, conversation_id: str, reply: Message, speak: bool) -> bool:
        """Hand a stored reply to speech synthesis and notifications."""
        spoken = False
        if speak:
            speech_text = prepare_speech_text(reply.text)
            if speech_text:
                try:
                    await self._speech.speak(conversation_id, speech_text)
                    spoken = True
                except Exception as e:
                    logger.warning("Speech synthesis failed", error=str(e))

        if self._chat.enable_notifications:
            title = self._store.get_conversation(conversation_id).title
            try:
                await self._notifier.notify(conversation_id, title, reply.text)
            except Exception as e:
                logger.warning("Notification failed", error=str(e))
        return spoken

    def _fail(self, conversation_id: str, error: LLMError, restored: RestoredInput) -> TurnResult:
        if isinstance(error, QuotaExceededError):
            notice = KEYS_EXHAUSTED_MESSAGE
        elif isinstance(error, CapabilityError):
            notice = error.user_message
        else:
            notice = CONNECTION_TROUBLE_MESSAGE

        logger.error(
            "Turn failed",
            error_type=type(error).__name__,
            error=str(error),
            status_code=getattr(error, "status_code", None),
        )
        self._post_notice(conversation_id, notice)
        return TurnResult(
            status=TurnStatus.FAILED,
            error=error,
            user_message=notice,
            restored_input=restored,
        )

    # ------------------------------------------------------------------
    # Single calls
    # ------------------------------------------------------------------

    async def transcribe(self, audio: bytes, mime_type: str) -> str:
        """
        Transcribe a voice message.

        Raises:
            ConfigurationError: If no API key is configured.
            CapabilityError: If the provider/model cannot process audio.
            LLMError: For any other provider failure.
        """
        config = self._provider.with_system_prompt(TRANSCRIPTION_SYSTEM_PROMPT)
        transcript = await self._rotation.execute(
            lambda key, model: self._adapter.transcribe_audio(
                audio, mime_type, TRANSCRIPTION_PROMPT, config.with_credentials(key, model)
            )
        )
        logger.info("Audio transcribed", bytes=len(audio), chars=len(transcript))
        return transcript

    async def describe_image(self, image: bytes, mime_type: str, prompt: str = "") -> str:
        """
        Ask the model about an image, with the base system prompt.

        An empty prompt is sent as is.
        """
        return await self._call_vision(image, mime_type, prompt, self._provider)

    # ------------------------------------------------------------------
    # Assistant-initiated messages
    # ------------------------------------------------------------------

    async def send_random_message(self, conversation_id: str) -> Optional[Message]:
        """
        Let the assistant start the conversation on its own.

        Uses the last few messages as context and a random prompt. A
        transport failure is retried once after a short pause; other
        failures are logged and nothing is posted.

        Returns:
            The stored message, or None when skipped or failed.
        """
        if not self._rotation.has_keys:
            logger.warning("Random message skipped: no API key", conversation_id=conversation_id)
            return None
        if self.is_busy(conversation_id):
            logger.info("Random message skipped: turn in progress", conversation_id=conversation_id)
            return None

        async with self._lock_for(conversation_id):
            history = self._store.get_history(conversation_id, limit=self._chat.random_message_history)
            prompt = self._rng.choice(RANDOM_MESSAGE_PROMPTS)
            config = self._provider.with_system_prompt(_join_prompt(self._provider.system_prompt, prompt))

            async def request() -> str:
                return await self._rotation.execute(
                    lambda key, model: self._adapter.send(history, config.with_credentials(key, model))
                )

            try:
                try:
                    raw = await request()
                except TransportError as e:
                    logger.warning(
                        "Random message transport failure, retrying",
                        conversation_id=conversation_id,
                        error=str(e),
                        retry_in=self._chat.transport_retry_delay,
                    )
                    await self._sleep(self._chat.transport_retry_delay)
                    raw = await request()
            except LLMError as e:
                logger.error(
                    "Random message failed",
                    conversation_id=conversation_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                return None

            cleaned = clean_response_text(raw)
            if not cleaned:
                logger.warning("Random message was empty", conversation_id=conversation_id)
                return None
            message = self._store.append_message(conversation_id, Message(role=Role.ASSISTANT, text=cleaned))

        await self._deliver(conversation_id, message, speak=True)
        logger.info("Random message sent", conversation_id=conversation_id, message_id=message.id)
        return message
