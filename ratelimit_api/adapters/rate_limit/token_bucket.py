"""Token-bucket rate limiter backed by the shared atomic store.

Each client owns two keys:

- ``token_bucket:tokens:{<client_id>}``: current balance (float),
- ``token_bucket:timestamp:{<client_id>}``: last refill time (unix seconds).

The braces are a Redis Cluster hash tag: both keys hash to the same slot, so
the script touching them is accepted by a cluster as well as a single node.

The balance is recomputed lazily on every check inside one atomic store
script: read both keys, refill by elapsed time, then either consume one token
and write both keys, or block without writing anything. Skipping the write on
block keeps fractional progress towards the next token.

A missing bucket is treated as full with ``last refill = now``. Idle buckets
expire after ``max(idle_ttl_seconds, ceil(max_tokens / refill_rate))``
seconds, which is never earlier than the bucket would have refilled to full;
with a refill rate of 0 the keys are kept indefinitely.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable, Sequence

from ratelimit_api.adapters.rate_limit.base import (
    AbstractRateLimiter,
    Algorithm,
    RateLimitDecision,
    TokenBucketConfig,
    Verdict,
)
from ratelimit_api.adapters.store.base import (
    AbstractAtomicStore,
    ScriptArg,
    ScriptContext,
    StoreScript,
)
from ratelimit_api.core.errors import ScriptFailureError

logger = logging.getLogger(__name__)


TOKEN_BUCKET_LUA = """
local tokens_key = KEYS[1]
local timestamp_key = KEYS[2]
local max_tokens = tonumber(ARGV[1])
local refill_rate = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local ttl = tonumber(ARGV[4])

local tokens = tonumber(redis.call('GET', tokens_key))
if tokens == nil then
    tokens = max_tokens
end
local last_refill = tonumber(redis.call('GET', timestamp_key))
if last_refill == nil then
    last_refill = now
end

local elapsed = now - last_refill
if elapsed < 0 then
    elapsed = 0
end

local refilled = math.min(max_tokens, math.max(0, tokens + elapsed * refill_rate))
if refilled < 1 then
    return {0, tostring(refilled)}
end

redis.call('SET', tokens_key, tostring(refilled - 1))
redis.call('SET', timestamp_key, tostring(math.max(now, last_refill)))
if ttl > 0 then
    redis.call('EXPIRE', tokens_key, ttl)
    redis.call('EXPIRE', timestamp_key, ttl)
end
return {1, tostring(refilled)}
"""


def compute_refill(
    tokens: float,
    last_refill: int,
    now: int,
    max_tokens: float,
    refill_rate: float,
) -> float:
    """Return the balance after refilling from ``last_refill`` to ``now``.

    Elapsed time is clamped at zero so clock skew between callers never
    drains a bucket; the result is clamped to ``[0, max_tokens]``.
    """
    elapsed = max(0, now - last_refill)
    return min(max_tokens, max(0.0, tokens + elapsed * refill_rate))


def _evaluate_token_bucket(
    ctx: ScriptContext, keys: Sequence[str], args: Sequence[ScriptArg]
) -> list:
    tokens_key, timestamp_key = keys
    max_tokens = float(args[0])
    refill_rate = float(args[1])
    now = int(args[2])
    ttl = int(args[3])

    raw_tokens = ctx.get(tokens_key)
    raw_timestamp = ctx.get(timestamp_key)
    tokens = float(raw_tokens) if raw_tokens is not None else max_tokens
    last_refill = int(float(raw_timestamp)) if raw_timestamp is not None else now

    refilled = compute_refill(tokens, last_refill, now, max_tokens, refill_rate)
    if refilled < 1:
        return [0, repr(refilled)]

    ctx.set(tokens_key, repr(refilled - 1))
    ctx.set(timestamp_key, str(max(now, last_refill)))
    if ttl > 0:
        ctx.expire(tokens_key, ttl)
        ctx.expire(timestamp_key, ttl)
    return [1, repr(refilled)]


TOKEN_BUCKET_SCRIPT = StoreScript(
    name="token_bucket_consume",
    lua=TOKEN_BUCKET_LUA,
    evaluate=_evaluate_token_bucket,
)


class TokenBucketRateLimiter(AbstractRateLimiter):
    """Continuously refilling token balance per client."""

    algorithm = Algorithm.TOKEN_BUCKET
    KEY_PREFIX = "token_bucket"

    def __init__(
        self,
        store: AbstractAtomicStore,
        config: TokenBucketConfig,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Shared atomic store holding bucket state.
            config: Bucket capacity, refill rate and idle TTL.
            clock: Time source used when ``check`` is called without ``now``.
        """
        self._store = store
        self._config = config
        self._clock = clock

    @property
    def config(self) -> TokenBucketConfig:
        return self._config

    def keys_for(self, client_id: str) -> tuple[str, str]:
        return (
            f"{self.KEY_PREFIX}:tokens:{{{client_id}}}",
            f"{self.KEY_PREFIX}:timestamp:{{{client_id}}}",
        )

    def state_ttl_seconds(self) -> int:
        """Expiration applied to bucket keys on every consuming write (0 = none)."""
        if self._config.refill_rate <= 0:
            return 0
        full_refill = math.ceil(self._config.max_tokens / self._config.refill_rate)
        return max(self._config.idle_ttl_seconds, full_refill)

    def _retry_after(self, refilled: float) -> int | None:
        if self._config.refill_rate <= 0:
            return None
        return max(1, math.ceil((1 - refilled) / self._config.refill_rate))

    @staticmethod
    def _parse_result(result: object) -> tuple[bool, float]:
        try:
            flag, raw_tokens = result  # type: ignore[misc]
            return int(flag) == 1, float(raw_tokens)
        except (TypeError, ValueError) as exc:
            raise ScriptFailureError(
                code="script_failure",
                message="Token-bucket script returned an unexpected result",
                details={"operation": TOKEN_BUCKET_SCRIPT.name},
            ) from exc

    async def check(self, client_id: str, now: int | None = None) -> RateLimitDecision:
        """Try to consume one token for ``client_id``.

        Args:
            client_id: Opaque client identity.
            now: Current unix time in whole seconds. Read from the clock when
                omitted; never read inside the store script.

        Returns:
            RateLimitDecision whose ``observed`` value is the balance after
            refill and before consumption.

        Raises:
            ValueError: If ``client_id`` is empty.
            StoreAppError: On any store or script failure.
        """
        if not client_id:
            raise ValueError("client_id must be a non-empty string")
        if now is None:
            now = int(self._clock())

        result = await self._store.run_script(
            TOKEN_BUCKET_SCRIPT,
            list(self.keys_for(client_id)),
            [
                self._config.max_tokens,
                self._config.refill_rate,
                now,
                self.state_ttl_seconds(),
            ],
        )
        allowed, refilled = self._parse_result(result)

        if not allowed:
            return RateLimitDecision(
                verdict=Verdict.BLOCK,
                algorithm=self.algorithm,
                observed=refilled,
                limit=self._config.max_tokens,
                remaining=0,
                retry_after_seconds=self._retry_after(refilled),
            )

        return RateLimitDecision(
            verdict=Verdict.ALLOW,
            algorithm=self.algorithm,
            observed=refilled,
            limit=self._config.max_tokens,
            remaining=int(refilled - 1),
        )
