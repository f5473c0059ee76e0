"""Factory for creating atomic store instances."""

from ratelimit_api.adapters.store.base import AbstractAtomicStore
from ratelimit_api.adapters.store.in_memory import InMemoryAtomicStore
from ratelimit_api.adapters.store.redis_store import RedisAtomicStore
from ratelimit_api.core.config import Settings, settings as default_settings
from ratelimit_api.core.errors import ValidationAppError


def create_store(config: Settings | None = None) -> AbstractAtomicStore:
    """Instantiate the state store selected by ``APP_STORE_BACKEND``.

    Args:
        config: Settings to read; defaults to the process-wide settings.

    Returns:
        AbstractAtomicStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    cfg = config or default_settings
    backend = cfg.app.store_backend.lower()

    if backend == "redis":
        return RedisAtomicStore.from_settings(
            host=cfg.redis.host,
            port=cfg.redis.port,
            password=cfg.redis.password,
            db=cfg.redis.db,
            socket_timeout=cfg.redis.socket_timeout_seconds,
            connect_timeout=cfg.redis.connect_timeout_seconds,
        )

    if backend == "memory":
        return InMemoryAtomicStore()

    raise ValidationAppError(
        code="unknown_store_backend",
        message=f"Unknown store backend: '{backend}'. Supported backends: redis, memory",
    )
