"""In-memory atomic store.

Notes:
- Per-process only: running multiple workers or instances gives each its own
  independent state, so limits are not shared across a fleet. Use the Redis
  store for that.
- Thread-safe: every primitive and every script evaluation runs under one
  lock, which gives scripts the same non-interleaving guarantee Redis does.
- Values are kept as strings, matching what Redis hands back to scripts.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from ratelimit_api.adapters.store.base import AbstractAtomicStore, ScriptArg, StoreScript
from ratelimit_api.core.errors import ScriptFailureError

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: str
    expires_at: float | None = None


class _LockedContext:
    """Script context bound to an ``InMemoryAtomicStore`` whose lock is held."""

    def __init__(self, store: "InMemoryAtomicStore") -> None:
        self._store = store

    def get(self, key: str) -> str | None:
        entry = self._store._live_entry(key)
        return entry.value if entry else None

    def set(self, key: str, value: str) -> None:
        # SET without options discards any existing TTL, as in Redis
        self._store._entries[key] = _Entry(value=str(value))

    def incr(self, key: str) -> int:
        return self._store._incr_locked(key)

    def expire(self, key: str, ttl_seconds: int, *, nx: bool = False) -> bool:
        return self._store._expire_locked(key, ttl_seconds, nx=nx)


class InMemoryAtomicStore(AbstractAtomicStore):
    """Dictionary-backed store implementing the atomic store contract.

    Expired keys are dropped lazily when touched, and swept in bulk at most
    once per ``sweep_interval_seconds`` so clients that never return do not
    accumulate.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: float = 60.0,
    ) -> None:
        """Initialize the store.

        Args:
            clock: Time source returning UNIX time in seconds; drives expiry.
            sweep_interval_seconds: Minimum time between full expiry sweeps.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}
        self._sweep_interval = sweep_interval_seconds
        self._next_sweep = clock() + sweep_interval_seconds

    def __len__(self) -> int:
        """Keys currently held, including expired ones not yet swept."""
        with self._lock:
            return len(self._entries)

    def _maybe_sweep_locked(self) -> None:
        now = self._clock()
        if now < self._next_sweep:
            return
        self._next_sweep = now + self._sweep_interval

        expired = [
            key
            for key, entry in self._entries.items()
            if entry.expires_at is not None and entry.expires_at <= now
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(
                "store.expired_swept",
                extra={"removed": len(expired), "held": len(self._entries)},
            )

    def _live_entry(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def _incr_locked(self, key: str) -> int:
        entry = self._live_entry(key)
        if entry is None:
            entry = _Entry(value="0")
            self._entries[key] = entry
        try:
            current = int(entry.value)
        except ValueError as exc:
            raise ScriptFailureError(
                code="store_wrong_type",
                message="value is not an integer or out of range",
                details={"operation": "incr"},
            ) from exc
        entry.value = str(current + 1)
        return current + 1

    def _expire_locked(self, key: str, ttl_seconds: int, *, nx: bool) -> bool:
        entry = self._live_entry(key)
        if entry is None:
            return False
        if nx and entry.expires_at is not None:
            return False
        entry.expires_at = self._clock() + ttl_seconds
        return True

    async def increment(self, key: str) -> int:
        with self._lock:
            self._maybe_sweep_locked()
            return self._incr_locked(key)

    async def expire_if_absent(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            self._maybe_sweep_locked()
            return self._expire_locked(key, ttl_seconds, nx=True)

    async def run_script(
        self,
        script: StoreScript,
        keys: Sequence[str],
        args: Sequence[ScriptArg],
    ) -> Any:
        with self._lock:
            self._maybe_sweep_locked()
            try:
                return script.evaluate(_LockedContext(self), list(keys), list(args))
            except ScriptFailureError:
                raise
            except (TypeError, ValueError) as exc:
                raise ScriptFailureError(
                    code="script_failure",
                    message=f"Script '{script.name}' failed: {exc}",
                    details={"operation": script.name, "error_type": type(exc).__name__},
                ) from exc

    async def ping(self) -> bool:
        return True

    def get(self, key: str) -> str | None:
        """Read a raw value. Diagnostics only; not part of the store contract."""
        with self._lock:
            entry = self._live_entry(key)
            return entry.value if entry else None

    def ttl(self, key: str) -> float | None:
        """Seconds until ``key`` expires, None when it has no expiration or is missing."""
        with self._lock:
            entry = self._live_entry(key)
            if entry is None or entry.expires_at is None:
                return None
            return entry.expires_at - self._clock()

    def set(self, key: str, value: str | int | float) -> None:
        """Write a raw value without expiration. Used to seed state."""
        with self._lock:
            self._entries[key] = _Entry(value=str(value))
