"""Atomic key-value store contract consumed by the limiters.

The limiters need three primitives from the shared store:

- atomic increment of an integer key,
- "set expiration only if the key has none",
- atomic, non-interleaved execution of a multi-key read-modify-write script.

A ``StoreScript`` carries two renditions of the same script: Lua source for
Redis (evaluated server-side) and a Python evaluator for stores that execute
scripts in-process. Both must implement identical semantics.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence


class ScriptContext(Protocol):
    """Key operations available to a Python script evaluator.

    All calls made through the context during one evaluation are applied as a
    single atomic unit.
    """

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def incr(self, key: str) -> int: ...

    def expire(self, key: str, ttl_seconds: int, *, nx: bool = False) -> bool: ...


ScriptArg = str | int | float


@dataclass(frozen=True)
class StoreScript:
    """A multi-key script with a Lua and a Python rendition.

    Attributes:
        name: Identifier used in logs and error details.
        lua: Lua source evaluated by Redis (KEYS/ARGV convention).
        evaluate: Python rendition, called as ``evaluate(ctx, keys, args)``.
    """

    name: str
    lua: str
    evaluate: Callable[[ScriptContext, Sequence[str], Sequence[ScriptArg]], Any]


class AbstractAtomicStore(ABC):
    """Interface for shared state stores.

    Implementations translate their client library failures into
    ``StoreUnavailableError`` (transport) or ``ScriptFailureError`` (script
    evaluation) so callers never see backend-specific exceptions.
    """

    @abstractmethod
    async def increment(self, key: str) -> int:
        """Atomically increment ``key`` by one and return the new value.

        Missing keys start at 0.
        """
        raise NotImplementedError

    @abstractmethod
    async def expire_if_absent(self, key: str, ttl_seconds: int) -> bool:
        """Set an expiration on ``key`` only if it has none.

        Returns:
            True when the expiration was applied, False when the key already
            had one (or does not exist).
        """
        raise NotImplementedError

    @abstractmethod
    async def run_script(
        self,
        script: StoreScript,
        keys: Sequence[str],
        args: Sequence[ScriptArg],
    ) -> Any:
        """Execute ``script`` atomically against ``keys``.

        No other operation touching the same keys may interleave with it.
        """
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> bool:
        """Round-trip a trivial command to check reachability."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release client resources. Default: nothing to release."""
        return None
