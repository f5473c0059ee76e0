"""Fixed-window rate limiter backed by the shared atomic store.

One integer counter per client lives at ``fixed_window:<client_id>``. The
window starts with the first request (the increment that yields 1) and lasts
``window_seconds``; the store deletes the counter when it expires. Windows are
therefore fixed in size with a rolling start, not aligned to the calendar.

Two execution modes:

- atomic (default): increment and expire-if-absent run as one store script,
  so a counter can never exist without its expiration.
- two-step: increment, then a separate expire-if-absent call. If the second
  call fails the counter survives without a TTL; the failure is reported as
  ``PartialApplicationError`` and the next blocked request restores the TTL.
"""

from __future__ import annotations

import logging
from typing import Sequence

from ratelimit_api.adapters.rate_limit.base import (
    AbstractRateLimiter,
    Algorithm,
    FixedWindowConfig,
    RateLimitDecision,
    Verdict,
)
from ratelimit_api.adapters.store.base import (
    AbstractAtomicStore,
    ScriptArg,
    ScriptContext,
    StoreScript,
)
from ratelimit_api.core.errors import (
    PartialApplicationError,
    ScriptFailureError,
    StoreAppError,
)
from ratelimit_api.core.logging import hash_client_id

logger = logging.getLogger(__name__)


FIXED_WINDOW_LUA = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
    redis.call('EXPIRE', KEYS[1], ARGV[1], 'NX')
end
return count
"""


def _evaluate_fixed_window(
    ctx: ScriptContext, keys: Sequence[str], args: Sequence[ScriptArg]
) -> int:
    count = ctx.incr(keys[0])
    if count == 1:
        ctx.expire(keys[0], int(args[0]), nx=True)
    return count


FIXED_WINDOW_SCRIPT = StoreScript(
    name="fixed_window_incr",
    lua=FIXED_WINDOW_LUA,
    evaluate=_evaluate_fixed_window,
)


class FixedWindowRateLimiter(AbstractRateLimiter):
    """Counts requests per client within a fixed-size window."""

    algorithm = Algorithm.FIXED_WINDOW
    KEY_PREFIX = "fixed_window"

    def __init__(self, store: AbstractAtomicStore, config: FixedWindowConfig) -> None:
        self._store = store
        self._config = config

    @property
    def config(self) -> FixedWindowConfig:
        return self._config

    def key_for(self, client_id: str) -> str:
        return f"{self.KEY_PREFIX}:{client_id}"

    async def _increment_atomic(self, key: str) -> int:
        result = await self._store.run_script(
            FIXED_WINDOW_SCRIPT, [key], [self._config.window_seconds]
        )
        try:
            return int(result)
        except (TypeError, ValueError) as exc:
            raise ScriptFailureError(
                code="script_failure",
                message="Fixed-window script returned an unexpected result",
                details={"operation": FIXED_WINDOW_SCRIPT.name},
            ) from exc

    async def _increment_two_step(self, key: str, client_hash: str) -> int:
        count = await self._store.increment(key)
        if count == 1:
            try:
                await self._store.expire_if_absent(key, self._config.window_seconds)
            except StoreAppError as exc:
                logger.error(
                    "fixed_window.partial_application",
                    extra={"client_hash": client_hash, "count": count, "error_code": exc.code},
                )
                raise PartialApplicationError(
                    code="partial_application",
                    message="Counter was incremented but its window expiration was not set",
                    details={"algorithm": self.algorithm.value, "operation": "expire"},
                ) from exc
        return count

    async def _repair_missing_ttl(self, key: str, client_hash: str) -> None:
        # No-op when the TTL exists; restores it after an earlier partial application
        if await self._store.expire_if_absent(key, self._config.window_seconds):
            logger.warning(
                "fixed_window.ttl_repaired",
                extra={"client_hash": client_hash, "window_s": self._config.window_seconds},
            )

    async def check(self, client_id: str) -> RateLimitDecision:
        """Count one request for ``client_id`` and decide.

        Raises:
            ValueError: If ``client_id`` is empty.
            StoreAppError: On any store failure, including partial application
                in two-step mode.
        """
        if not client_id:
            raise ValueError("client_id must be a non-empty string")

        key = self.key_for(client_id)
        client_hash = hash_client_id(client_id)

        if self._config.atomic:
            count = await self._increment_atomic(key)
        else:
            count = await self._increment_two_step(key, client_hash)

        limit = self._config.max_requests
        if count > limit:
            if not self._config.atomic:
                await self._repair_missing_ttl(key, client_hash)
            return RateLimitDecision(
                verdict=Verdict.BLOCK,
                algorithm=self.algorithm,
                observed=count,
                limit=limit,
                remaining=0,
            )

        return RateLimitDecision(
            verdict=Verdict.ALLOW,
            algorithm=self.algorithm,
            observed=count,
            limit=limit,
            remaining=limit - count,
        )
