"""
Tests for the Key/Model Rotation Policy
=======================================

Comprehensive tests for:
- Pool initialization and de-duplication
- Model-then-key rotation on quota errors
- Immediate surfacing of non-quota errors
- Cooldown expiry with an injected clock
- Exhausted pool clearing, stats, snapshot and reset
"""

from unittest.mock import AsyncMock

import pytest

from loneless.llm.errors import ConfigurationError, ProviderError, QuotaExceededError, TransportError
from loneless.llm.rotation import RotationPolicy


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _policy(keys=("k0-abcdefgh", "k1-abcdefgh"), models=("m0", "m1"), **kwargs) -> RotationPolicy:
    return RotationPolicy(list(keys), list(models), **kwargs)


# ===================================================================
# Initialization
# ===================================================================


class TestRotationInit:
    def test_pools(self):
        policy = _policy()
        assert policy.total_keys == 2
        assert policy.total_models == 2
        assert policy.current() == ("k0-abcdefgh", "m0")

    def test_deduplication_and_whitespace(self):
        policy = _policy(keys=[" a ", "b", "a", ""], models=["m", "m"])
        assert policy.total_keys == 2
        assert policy.total_models == 1
        assert policy.current() == ("a", "m")

    def test_no_models_raises(self):
        with pytest.raises(ValueError, match="model"):
            _policy(models=[])

    def test_no_keys_allowed_but_unusable(self):
        policy = _policy(keys=[])
        assert not policy.has_keys
        with pytest.raises(ConfigurationError):
            policy.current()

    @pytest.mark.asyncio
    async def test_execute_without_keys(self):
        policy = _policy(keys=[])
        operation = AsyncMock()

        with pytest.raises(ConfigurationError):
            await policy.execute(operation)
        operation.assert_not_awaited()


# ===================================================================
# Execution
# ===================================================================


class TestRotationExecute:
    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        policy = _policy()
        operation = AsyncMock(return_value="ok")

        assert await policy.execute(operation) == "ok"
        operation.assert_awaited_once_with("k0-abcdefgh", "m0")
        snapshot = policy.snapshot()
        assert snapshot.failed_keys == frozenset()
        assert snapshot.failed_models == frozenset()

    @pytest.mark.asyncio
    async def test_quota_then_success_marks_only_model(self):
        policy = _policy()
        operation = AsyncMock(side_effect=[QuotaExceededError("quota"), "ok"])

        assert await policy.execute(operation) == "ok"

        assert [c.args for c in operation.await_args_list] == [
            ("k0-abcdefgh", "m0"),
            ("k0-abcdefgh", "m1"),
        ]
        snapshot = policy.snapshot()
        assert snapshot.failed_models == frozenset({"m0"})
        assert snapshot.failed_keys == frozenset()
        assert snapshot.current_model_index == 1

    @pytest.mark.asyncio
    async def test_second_quota_rotates_key_keeping_new_model(self):
        policy = _policy()
        operation = AsyncMock(side_effect=[QuotaExceededError(), QuotaExceededError(), "ok"])

        assert await policy.execute(operation) == "ok"

        assert operation.await_args_list[2].args == ("k1-abcdefgh", "m1")
        snapshot = policy.snapshot()
        assert snapshot.failed_keys == frozenset({"k0-abcdefgh"})
        assert snapshot.failed_models == frozenset({"m0"})

    @pytest.mark.asyncio
    async def test_all_combinations_exhausted(self):
        policy = _policy()
        operation = AsyncMock(side_effect=QuotaExceededError("quota"))

        with pytest.raises(QuotaExceededError):
            await policy.execute(operation)

        assert operation.await_count == 3
        snapshot = policy.snapshot()
        assert snapshot.failed_keys == frozenset({"k0-abcdefgh", "k1-abcdefgh"})
        assert snapshot.failed_models == frozenset({"m0", "m1"})

    @pytest.mark.asyncio
    async def test_non_quota_error_not_rotated(self):
        policy = _policy()
        operation = AsyncMock(side_effect=ProviderError(500, "boom"))

        with pytest.raises(ProviderError):
            await policy.execute(operation)

        operation.assert_awaited_once()
        assert policy.snapshot().failed_models == frozenset()

    @pytest.mark.asyncio
    async def test_transport_error_after_rotation_surfaces(self):
        policy = _policy()
        operation = AsyncMock(side_effect=[QuotaExceededError(), TransportError("timeout")])

        with pytest.raises(TransportError):
            await policy.execute(operation)

        assert operation.await_count == 2
        assert policy.snapshot().failed_keys == frozenset()

    @pytest.mark.asyncio
    async def test_single_key_single_model(self):
        policy = _policy(keys=["only-key-123"], models=["only-model"])
        operation = AsyncMock(side_effect=[QuotaExceededError(), QuotaExceededError(), "ok"])

        assert await policy.execute(operation) == "ok"
        assert {c.args for c in operation.await_args_list} == {("only-key-123", "only-model")}

    @pytest.mark.asyncio
    async def test_next_call_skips_failed_model(self):
        policy = _policy(models=["m0", "m1", "m2"])
        await policy.execute(AsyncMock(side_effect=[QuotaExceededError(), "ok"]))

        operation = AsyncMock(return_value="ok")
        await policy.execute(operation)

        operation.assert_awaited_once_with("k0-abcdefgh", "m1")


# ===================================================================
# Cooldown and pool exhaustion
# ===================================================================


class TestRotationCooldown:
    def test_failed_entry_expires(self):
        clock = FakeClock()
        policy = _policy(clock=clock, cooldown=300)

        policy.mark_model_failed("m0")
        assert policy.snapshot().failed_models == frozenset({"m0"})

        clock.now += 299
        assert policy.snapshot().failed_models == frozenset({"m0"})

        clock.now += 2
        assert policy.snapshot().failed_models == frozenset()

    def test_stats_report_recovery_after_cooldown(self):
        clock = FakeClock()
        policy = _policy(clock=clock, cooldown=300)
        policy.mark_key_failed("k0-abcdefgh")
        policy.mark_model_failed("m1")

        clock.now += 301
        stats = policy.get_stats()

        assert not any(k["is_failed"] for k in stats["keys"])
        assert not any(m["is_failed"] for m in stats["models"])

    def test_advance_skips_failed(self):
        policy = _policy(models=["m0", "m1", "m2"])
        policy.mark_model_failed("m1")

        assert policy.advance_model() == "m2"
        assert policy.advance_model() == "m0"

    def test_exhausted_pool_cleared_on_selection(self):
        policy = _policy()
        policy.mark_key_failed("k0-abcdefgh")
        policy.mark_key_failed("k1-abcdefgh")

        key, _ = policy.current()

        assert key in {"k0-abcdefgh", "k1-abcdefgh"}
        assert policy.snapshot().failed_keys == frozenset()

    @pytest.mark.asyncio
    async def test_recovers_after_total_exhaustion(self):
        policy = _policy()
        with pytest.raises(QuotaExceededError):
            await policy.execute(AsyncMock(side_effect=QuotaExceededError()))

        assert await policy.execute(AsyncMock(return_value="ok")) == "ok"


# ===================================================================
# Stats
# ===================================================================


class TestRotationStats:
    @pytest.mark.asyncio
    async def test_stats_counts_and_masking(self):
        policy = _policy(keys=["AIzaSyD-1234567890"], models=["m0", "m1"])
        await policy.execute(AsyncMock(side_effect=[QuotaExceededError(), "ok"]))

        stats = policy.get_stats()

        assert stats["keys"][0]["key"] == "AIzaSyD-..."
        assert stats["keys"][0]["total_calls"] == 2
        assert stats["models"][0]["total_rate_limits"] == 1
        assert stats["models"][0]["is_failed"] is True
        assert stats["models"][1]["total_calls"] == 1

    @pytest.mark.asyncio
    async def test_reset(self):
        policy = _policy()
        await policy.execute(AsyncMock(side_effect=[QuotaExceededError(), "ok"]))

        policy.reset()

        snapshot = policy.snapshot()
        assert snapshot.failed_models == frozenset()
        assert snapshot.current_model_index == 0
        assert all(m["total_calls"] == 0 for m in policy.get_stats()["models"])
