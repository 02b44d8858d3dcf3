"""
Key/Model Rotation Policy
=========================

Thread-safe retry wrapper that rotates API keys and models on quota errors.

When a call fails with HTTP 429 (``QuotaExceededError``) the policy first
swaps the model and retries with the same key; if that also hits the quota
it swaps the key as well and retries one last time. Exhausted keys/models
are marked as failed and skipped by the round-robin selection until their
cooldown (5 minutes by default) expires. A pool whose entries are all
failed is cleared before the next selection so a candidate always remains.

Any other error is surfaced immediately: rotation is for quota exhaustion
only.

Usage:
    policy = RotationPolicy(["key1", "key2"], ["gemini-2.0-flash", "gemini-2.0-flash-lite"])

    async def call(key: str, model: str) -> str:
        return await adapter.send(history, config.with_credentials(key, model))

    reply = await policy.execute(call)
"""

import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from loneless.llm.errors import ConfigurationError, QuotaExceededError
from loneless.utils.logger import get_logger
from loneless.utils.security import mask_api_key

logger = get_logger(__name__)

T = TypeVar("T")

# Seconds a quota-exhausted key or model stays out of rotation.
DEFAULT_COOLDOWN = 300.0


@dataclass
class _PoolEntry:
    """Internal per-key / per-model tracking state."""

    value: str
    index: int
    total_calls: int = 0
    total_rate_limits: int = 0
    failed_until: Optional[float] = None  # clock value when the failure mark expires


class _Pool:
    """
    Round-robin pool with a failed set. Not locked: callers hold the policy lock.
    """

    def __init__(self, name: str, values: list[str], clock: Callable[[], float]) -> None:
        # De-duplicate while preserving order
        seen: set[str] = set()
        unique: list[str] = []
        for v in values:
            v = v.strip()
            if v and v not in seen:
                seen.add(v)
                unique.append(v)

        self.name = name
        self.entries = [_PoolEntry(value=v, index=i) for i, v in enumerate(unique)]
        self.current_index = 0
        self._clock = clock

    def __len__(self) -> int:
        return len(self.entries)

    def expire(self) -> None:
        """Un-mark entries whose cooldown has elapsed."""
        now = self._clock()
        for entry in self.entries:
            if entry.failed_until is not None and now >= entry.failed_until:
                entry.failed_until = None
                logger.info("Rotation entry recovered after cooldown", pool=self.name, index=entry.index)

    def is_failed(self, entry: _PoolEntry) -> bool:
        return entry.failed_until is not None

    def failed_values(self) -> set[str]:
        return {e.value for e in self.entries if self.is_failed(e)}

    def clear_if_exhausted(self) -> None:
        if self.entries and all(self.is_failed(e) for e in self.entries):
            logger.warning("Every entry of the pool failed, clearing failed set", pool=self.name)
            for e in self.entries:
                e.failed_until = None

    def current(self) -> str:
        """Return the current entry, moving forward if it is marked failed."""
        self.expire()
        self.clear_if_exhausted()
        if self.is_failed(self.entries[self.current_index]):
            return self.advance()
        return self.entries[self.current_index].value

    def advance(self) -> str:
        """Move round robin to the next entry that is not failed."""
        self.expire()
        self.clear_if_exhausted()
        size = len(self.entries)
        for step in range(1, size + 1):
            candidate = (self.current_index + step) % size
            if not self.is_failed(self.entries[candidate]):
                self.current_index = candidate
                break
        return self.entries[self.current_index].value

    def mark_failed(self, value: str, cooldown: float) -> None:
        for entry in self.entries:
            if entry.value == value:
                entry.failed_until = self._clock() + cooldown
                entry.total_rate_limits += 1

    def record_call(self, value: str) -> None:
        for entry in self.entries:
            if entry.value == value:
                entry.total_calls += 1


@dataclass(frozen=True)
class RotationSnapshot:
    """Point-in-time copy of the rotation state (for tests and diagnostics)."""

    current_key_index: int
    current_model_index: int
    failed_keys: frozenset[str]
    failed_models: frozenset[str]


class RotationPolicy:
    """
    Thread-safe key/model rotation with per-entry cooldown.

    Features:
    - Round-robin selection over both pools, skipping failed entries
    - Model swap first, then key swap, on quota errors (at most 3 attempts)
    - Failure marks expire after ``cooldown`` seconds
    - Exhausted pools are cleared before selection
    - Injectable clock for deterministic tests
    - Thread-safe via a reentrant lock; the wrapped call itself runs unlocked
    """

    def __init__(
        self,
        api_keys: list[str],
        models: list[str],
        cooldown: float = DEFAULT_COOLDOWN,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._keys = _Pool("keys", api_keys, clock)
        self._models = _Pool("models", models, clock)
        if not len(self._models):
            raise ValueError("At least one model is required")
        self._cooldown = cooldown
        self._lock = threading.RLock()

        logger.info(
            "RotationPolicy initialized",
            total_keys=len(self._keys),
            total_models=len(self._models),
            cooldown_seconds=cooldown,
        )

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def total_keys(self) -> int:
        return len(self._keys)

    @property
    def total_models(self) -> int:
        return len(self._models)

    @property
    def has_keys(self) -> bool:
        return len(self._keys) > 0

    def current(self) -> tuple[str, str]:
        """
        Return the current ``(key, model)`` pair.

        Raises:
            ConfigurationError: If the key pool is empty.
        """
        with self._lock:
            if not self.has_keys:
                raise ConfigurationError("No API key configured")
            return self._keys.current(), self._models.current()

    def snapshot(self) -> RotationSnapshot:
        with self._lock:
            self._keys.expire()
            self._models.expire()
            return RotationSnapshot(
                current_key_index=self._keys.current_index,
                current_model_index=self._models.current_index,
                failed_keys=frozenset(self._keys.failed_values()),
                failed_models=frozenset(self._models.failed_values()),
            )

    def get_stats(self) -> dict[str, list[dict]]:
        """Return per-key and per-model statistics (keys masked)."""
        with self._lock:
            self._keys.expire()
            self._models.expire()
            return {
                "keys": [
                    {
                        "index": e.index,
                        "key": mask_api_key(e.value),
                        "total_calls": e.total_calls,
                        "total_rate_limits": e.total_rate_limits,
                        "is_failed": self._keys.is_failed(e),
                    }
                    for e in self._keys.entries
                ],
                "models": [
                    {
                        "index": e.index,
                        "model": e.value,
                        "total_calls": e.total_calls,
                        "total_rate_limits": e.total_rate_limits,
                        "is_failed": self._models.is_failed(e),
                    }
                    for e in self._models.entries
                ],
            }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def mark_key_failed(self, key: str) -> None:
        with self._lock:
            self._keys.mark_failed(key, self._cooldown)
        logger.warning("API key marked as failed", key=mask_api_key(key), cooldown_seconds=self._cooldown)

    def mark_model_failed(self, model: str) -> None:
        with self._lock:
            self._models.mark_failed(model, self._cooldown)
        logger.warning("Model marked as failed", model=model, cooldown_seconds=self._cooldown)

    def advance_key(self) -> str:
        with self._lock:
            return self._keys.advance()

    def advance_model(self) -> str:
        with self._lock:
            return self._models.advance()

    def _record_call(self, key: str, model: str) -> None:
        with self._lock:
            self._keys.record_call(key)
            self._models.record_call(model)

    def reset(self) -> None:
        """Clear all failure marks, counters and positions."""
        with self._lock:
            for pool in (self._keys, self._models):
                pool.current_index = 0
                for e in pool.entries:
                    e.failed_until = None
                    e.total_calls = 0
                    e.total_rate_limits = 0

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _attempt(self, operation: Callable[[str, str], Awaitable[T]], key: str, model: str) -> T:
        self._record_call(key, model)
        return await operation(key, model)

    async def execute(self, operation: Callable[[str, str], Awaitable[T]]) -> T:
        """
        Run ``operation(key, model)`` with quota-driven rotation.

        Attempts:
            1. current key + current model
            2. on 429: same key + next model (previous model marked failed)
            3. on 429: next key + that model (previous key marked failed)

        A 429 on the last attempt marks its key and model failed and is
        re-raised. Non-quota errors are re-raised at once.

        Raises:
            ConfigurationError: If no API key is configured.
            QuotaExceededError: When every attempt hit the quota.
        """
        key, model = self.current()
        try:
            return await self._attempt(operation, key, model)
        except QuotaExceededError:
            logger.warning(
                "Quota exceeded, rotating model",
                key=mask_api_key(key),
                model=model,
            )

        self.mark_model_failed(model)
        model = self.advance_model()
        try:
            return await self._attempt(operation, key, model)
        except QuotaExceededError:
            logger.warning(
                "Quota exceeded after model rotation, rotating key",
                key=mask_api_key(key),
                model=model,
            )

        self.mark_key_failed(key)
        key = self.advance_key()
        try:
            return await self._attempt(operation, key, model)
        except QuotaExceededError:
            logger.error(
                "Quota exceeded on every rotation attempt",
                key=mask_api_key(key),
                model=model,
            )
            self.mark_model_failed(model)
            self.mark_key_failed(key)
            raise
