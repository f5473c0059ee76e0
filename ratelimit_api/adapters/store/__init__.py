"""Shared state store adapters.

The limiters only see ``AbstractAtomicStore``; Redis is the production
backend and the in-memory store serves single-process runs and tests.
"""

from ratelimit_api.adapters.store.base import AbstractAtomicStore, ScriptContext, StoreScript
from ratelimit_api.adapters.store.in_memory import InMemoryAtomicStore
from ratelimit_api.adapters.store.redis_store import RedisAtomicStore

__all__ = [
    "AbstractAtomicStore",
    "InMemoryAtomicStore",
    "RedisAtomicStore",
    "ScriptContext",
    "StoreScript",
]
