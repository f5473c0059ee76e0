"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the TESTING environment variable to prevent loading the .env file
and selects the in-memory store so no Redis server is required.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

# Set default env vars that all tests might need
os.environ.setdefault("APP_STORE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Any, Sequence

import pytest

from ratelimit_api.adapters.store.base import AbstractAtomicStore, ScriptArg, StoreScript
from ratelimit_api.adapters.store.in_memory import InMemoryAtomicStore
from ratelimit_api.core.errors import StoreUnavailableError


class FakeTime:
    """Deterministic clock used to test expiration and refill logic."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def time(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class UnavailableStore(AbstractAtomicStore):
    """Store whose every operation fails as if Redis were down."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def _fail(self, operation: str) -> StoreUnavailableError:
        self.calls.append(operation)
        return StoreUnavailableError(
            code="store_unavailable",
            message=f"State store unavailable during {operation}",
            details={"operation": operation},
        )

    async def increment(self, key: str) -> int:
        raise self._fail("incr")

    async def expire_if_absent(self, key: str, ttl_seconds: int) -> bool:
        raise self._fail("expire")

    async def run_script(
        self, script: StoreScript, keys: Sequence[str], args: Sequence[ScriptArg]
    ) -> Any:
        raise self._fail(script.name)

    async def ping(self) -> bool:
        raise self._fail("ping")


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def store(fake_time: FakeTime) -> InMemoryAtomicStore:
    return InMemoryAtomicStore(clock=fake_time.time)


@pytest.fixture
def unavailable_store() -> UnavailableStore:
    return UnavailableStore()
