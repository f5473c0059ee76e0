"""Unit tests for the token-bucket limiter and its refill model."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from redis.crc import key_slot

from ratelimit_api.adapters.rate_limit.base import TokenBucketConfig, Verdict
from ratelimit_api.adapters.rate_limit.token_bucket import (
    TOKEN_BUCKET_SCRIPT,
    TokenBucketRateLimiter,
    compute_refill,
)
from ratelimit_api.adapters.store.base import AbstractAtomicStore
from ratelimit_api.core.errors import ScriptFailureError, StoreUnavailableError

T = 1_000

TOKENS_KEY = "token_bucket:tokens:{c1}"
TIMESTAMP_KEY = "token_bucket:timestamp:{c1}"


def _limiter(store, *, max_tokens=5, refill_rate=1.0, idle_ttl_seconds=60, clock=None):
    config = TokenBucketConfig(
        max_tokens=max_tokens, refill_rate=refill_rate, idle_ttl_seconds=idle_ttl_seconds
    )
    if clock is None:
        return TokenBucketRateLimiter(store, config)
    return TokenBucketRateLimiter(store, config, clock=clock)


class TestComputeRefill:

    def test_adds_elapsed_time_times_rate(self) -> None:
        assert compute_refill(0, T, T + 3, 5, 1.0) == 3

    def test_caps_at_capacity(self) -> None:
        assert compute_refill(4.5, T, T + 100, 5, 1.0) == 5

    def test_negative_elapsed_is_clamped(self) -> None:
        assert compute_refill(2.0, T, T - 30, 5, 1.0) == 2.0

    def test_never_below_zero(self) -> None:
        assert compute_refill(-3.0, T, T, 5, 1.0) == 0.0


class TestCheck:

    @pytest.mark.asyncio
    async def test_new_client_starts_full(self, store) -> None:
        decision = await _limiter(store).check("c1", now=T)

        assert decision.verdict is Verdict.ALLOW
        assert decision.observed == 5
        assert decision.remaining == 4
        assert decision.limit == 5
        assert float(store.get(TOKENS_KEY)) == 4
        assert int(store.get(TIMESTAMP_KEY)) == T

    @pytest.mark.asyncio
    async def test_refill_is_deterministic(self, store) -> None:
        store.set(TOKENS_KEY, 0)
        store.set(TIMESTAMP_KEY, T)

        decision = await _limiter(store, max_tokens=5, refill_rate=1).check("c1", now=T + 3)

        assert decision.verdict is Verdict.ALLOW
        assert decision.observed == 3
        assert float(store.get(TOKENS_KEY)) == 2
        assert int(store.get(TIMESTAMP_KEY)) == T + 3

    @pytest.mark.asyncio
    async def test_block_leaves_state_untouched(self, store) -> None:
        store.set(TOKENS_KEY, 0.4)
        store.set(TIMESTAMP_KEY, T)

        decision = await _limiter(store, max_tokens=5, refill_rate=0.1).check("c1", now=T + 1)

        assert decision.verdict is Verdict.BLOCK
        assert decision.observed == pytest.approx(0.5)
        assert decision.remaining == 0
        # Not overwritten with the refilled 0.5 or the new timestamp
        assert store.get(TOKENS_KEY) == "0.4"
        assert store.get(TIMESTAMP_KEY) == str(T)

    @pytest.mark.asyncio
    async def test_blocked_checks_do_not_erase_fractional_progress(self, store) -> None:
        store.set(TOKENS_KEY, 0.4)
        store.set(TIMESTAMP_KEY, T)
        limiter = _limiter(store, refill_rate=0.1)

        for offset in range(1, 6):
            assert (await limiter.check("c1", now=T + offset)).verdict is Verdict.BLOCK

        decision = await limiter.check("c1", now=T + 6)
        assert decision.verdict is Verdict.ALLOW
        assert decision.observed == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_retry_after_hint_on_block(self, store) -> None:
        store.set(TOKENS_KEY, 0.4)
        store.set(TIMESTAMP_KEY, T)

        decision = await _limiter(store, refill_rate=0.1).check("c1", now=T + 1)

        assert decision.retry_after_seconds == 5

    @pytest.mark.asyncio
    async def test_drains_then_blocks_without_refill(self, store) -> None:
        limiter = _limiter(store, max_tokens=3, refill_rate=0)

        decisions = [await limiter.check("c1", now=T) for _ in range(4)]

        assert [d.verdict for d in decisions] == [
            Verdict.ALLOW,
            Verdict.ALLOW,
            Verdict.ALLOW,
            Verdict.BLOCK,
        ]
        assert [d.observed for d in decisions] == [3, 2, 1, 0]
        assert decisions[-1].retry_after_seconds is None

    @pytest.mark.asyncio
    async def test_balance_stays_within_bounds(self, store) -> None:
        limiter = _limiter(store, max_tokens=4, refill_rate=0.7)
        offsets = [0, 0, 0, 1, 1, 2, 2, 2, 2, 9, 9, 9, 9, 9, 9, 10, 30, 30]

        for offset in offsets:
            decision = await limiter.check("c1", now=T + offset)
            assert 0 <= decision.observed <= 4
            assert 0 <= float(store.get(TOKENS_KEY)) <= 4

    @pytest.mark.asyncio
    async def test_clock_skew_does_not_move_timestamp_backwards(self, store) -> None:
        store.set(TOKENS_KEY, 3)
        store.set(TIMESTAMP_KEY, T + 10)

        decision = await _limiter(store).check("c1", now=T + 5)

        assert decision.verdict is Verdict.ALLOW
        assert decision.observed == 3
        assert int(store.get(TIMESTAMP_KEY)) == T + 10

    @pytest.mark.asyncio
    async def test_uses_clock_when_now_omitted(self, store, fake_time) -> None:
        limiter = _limiter(store, clock=fake_time.time)

        await limiter.check("c1")

        assert int(store.get(TIMESTAMP_KEY)) == int(fake_time.current)

    @pytest.mark.asyncio
    async def test_concurrent_checks_never_double_spend(self, store) -> None:
        limiter = _limiter(store, max_tokens=5, refill_rate=1)

        decisions = await asyncio.gather(*(limiter.check("c1", now=T) for _ in range(25)))

        assert sum(d.verdict is Verdict.ALLOW for d in decisions) == 5

    @pytest.mark.asyncio
    async def test_isolated_by_client(self, store) -> None:
        limiter = _limiter(store, max_tokens=1, refill_rate=0)

        await limiter.check("a", now=T)

        assert (await limiter.check("a", now=T)).verdict is Verdict.BLOCK
        assert (await limiter.check("b", now=T)).verdict is Verdict.ALLOW
        assert store.get("token_bucket:tokens:{b}") == "0.0"


class TestKeys:

    def test_keys_share_a_cluster_slot(self, store) -> None:
        tokens_key, timestamp_key = _limiter(store).keys_for("user:42")

        assert tokens_key == "token_bucket:tokens:{user:42}"
        assert timestamp_key == "token_bucket:timestamp:{user:42}"
        assert key_slot(tokens_key.encode()) == key_slot(timestamp_key.encode())


class TestIdleExpiry:

    def test_ttl_never_shorter_than_full_refill(self, store) -> None:
        assert _limiter(store, max_tokens=5, refill_rate=1, idle_ttl_seconds=60).state_ttl_seconds() == 60
        assert _limiter(store, max_tokens=5, refill_rate=0.01, idle_ttl_seconds=60).state_ttl_seconds() == 500

    @pytest.mark.asyncio
    async def test_consuming_write_applies_ttl_to_both_keys(self, store) -> None:
        await _limiter(store, idle_ttl_seconds=60).check("c1", now=T)

        assert store.ttl(TOKENS_KEY) == pytest.approx(60)
        assert store.ttl(TIMESTAMP_KEY) == pytest.approx(60)

    @pytest.mark.asyncio
    async def test_no_expiry_when_refill_disabled(self, store) -> None:
        limiter = _limiter(store, refill_rate=0)

        assert limiter.state_ttl_seconds() == 0
        await limiter.check("c1", now=T)
        assert store.ttl(TOKENS_KEY) is None

    @pytest.mark.asyncio
    async def test_expired_bucket_is_full_again(self, store, fake_time) -> None:
        limiter = _limiter(store, max_tokens=2, refill_rate=1, idle_ttl_seconds=30)
        await limiter.check("c1", now=T)
        await limiter.check("c1", now=T)

        fake_time.advance(30)
        assert store.get(TOKENS_KEY) is None

        decision = await limiter.check("c1", now=T + 30)
        assert decision.observed == 2


class TestFailures:

    @pytest.mark.asyncio
    async def test_store_outage_is_an_internal_error(self, unavailable_store) -> None:
        with pytest.raises(StoreUnavailableError):
            await _limiter(unavailable_store).check("c1", now=T)

        assert unavailable_store.calls == [TOKEN_BUCKET_SCRIPT.name]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("result", ["garbage", [1, "not-a-number"], None])
    async def test_malformed_script_result(self, result) -> None:
        store = AsyncMock(spec=AbstractAtomicStore)
        store.run_script.return_value = result

        with pytest.raises(ScriptFailureError):
            await _limiter(store).check("c1", now=T)

    @pytest.mark.asyncio
    async def test_script_arguments(self) -> None:
        store = AsyncMock(spec=AbstractAtomicStore)
        store.run_script.return_value = [1, "5"]

        await _limiter(store, max_tokens=5, refill_rate=0.5, idle_ttl_seconds=60).check("c1", now=T)

        store.run_script.assert_awaited_once_with(
            TOKEN_BUCKET_SCRIPT, [TOKENS_KEY, TIMESTAMP_KEY], [5, 0.5, T, 60]
        )

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_tokens": 0, "refill_rate": 1.0},
            {"max_tokens": 1, "refill_rate": -0.5},
            {"max_tokens": 1, "refill_rate": 1.0, "idle_ttl_seconds": 0},
        ],
    )
    def test_invalid_config(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            TokenBucketConfig(**kwargs)
