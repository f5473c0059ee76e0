"""Redis-backed atomic store adapter.

Uses the official ``redis`` package (``redis.asyncio``). Scripts are registered
once per client and invoked through EVALSHA, falling back to EVAL when the
server's script cache was flushed.

Bounded waits come from the client's socket timeouts; an exceeded wait is
reported as ``StoreUnavailableError`` like any other transport failure.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ratelimit_api.adapters.store.base import AbstractAtomicStore, ScriptArg, StoreScript
from ratelimit_api.core.errors import ScriptFailureError, StoreUnavailableError

logger = logging.getLogger(__name__)


class RedisAtomicStore(AbstractAtomicStore):
    """Atomic store backed by a Redis server (7.0+ for ``EXPIRE NX``)."""

    def __init__(self, client: aioredis.Redis) -> None:
        """Wrap an existing ``redis.asyncio`` client.

        Args:
            client: Configured client; ownership passes to this store.
        """
        self._client = client
        self._scripts: dict[str, Any] = {}

    @classmethod
    def from_settings(
        cls,
        *,
        host: str,
        port: int,
        password: str | None,
        db: int,
        socket_timeout: float,
        connect_timeout: float,
    ) -> "RedisAtomicStore":
        """Build a store with its own connection pool."""
        client = aioredis.Redis(
            host=host,
            port=port,
            password=password,
            db=db,
            socket_timeout=socket_timeout,
            socket_connect_timeout=connect_timeout,
            decode_responses=True,
        )
        return cls(client)

    def _unavailable(self, operation: str, exc: Exception) -> StoreUnavailableError:
        logger.error(
            "store.unavailable",
            extra={
                "operation": operation,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        return StoreUnavailableError(
            code="store_unavailable",
            message=f"State store unavailable during {operation}",
            details={"operation": operation, "error_type": type(exc).__name__},
        )

    async def increment(self, key: str) -> int:
        try:
            return int(await self._client.incr(key))
        except ResponseError as exc:
            raise ScriptFailureError(
                code="store_command_rejected",
                message=f"Store rejected INCR: {exc}",
                details={"operation": "incr", "error_type": type(exc).__name__},
            ) from exc
        except (RedisConnectionError, RedisTimeoutError, RedisError, OSError) as exc:
            raise self._unavailable("incr", exc) from exc

    async def expire_if_absent(self, key: str, ttl_seconds: int) -> bool:
        try:
            return bool(await self._client.expire(key, ttl_seconds, nx=True))
        except (RedisConnectionError, RedisTimeoutError, RedisError, OSError) as exc:
            raise self._unavailable("expire", exc) from exc

    def _registered(self, script: StoreScript) -> Any:
        registered = self._scripts.get(script.name)
        if registered is None:
            registered = self._client.register_script(script.lua)
            self._scripts[script.name] = registered
        return registered

    async def run_script(
        self,
        script: StoreScript,
        keys: Sequence[str],
        args: Sequence[ScriptArg],
    ) -> Any:
        registered = self._registered(script)
        try:
            return await registered(keys=list(keys), args=list(args))
        except ResponseError as exc:
            logger.error(
                "store.script_failed",
                extra={"script": script.name, "error_msg": str(exc)},
            )
            raise ScriptFailureError(
                code="script_failure",
                message=f"Script '{script.name}' failed in the store",
                details={"operation": script.name, "error_type": type(exc).__name__},
            ) from exc
        except (RedisConnectionError, RedisTimeoutError, RedisError, OSError) as exc:
            raise self._unavailable(script.name, exc) from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisConnectionError, RedisTimeoutError, RedisError, OSError) as exc:
            raise self._unavailable("ping", exc) from exc

    async def close(self) -> None:
        # aclose() replaced close() in redis-py 5.0.1
        await self._client.aclose()
