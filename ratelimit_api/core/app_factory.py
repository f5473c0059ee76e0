from __future__ import annotations

"""Application factory for the FastAPI app.

Centralizes app construction (store, limiters, middleware, handlers, routers)
and the process lifecycle: the store is pinged at startup and closed at
shutdown.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from ratelimit_api import __version__
from ratelimit_api.adapters.store.base import AbstractAtomicStore
from ratelimit_api.adapters.store.factory import create_store
from ratelimit_api.api.routes import decisions_router, health_router
from ratelimit_api.core.config import Settings, settings as default_settings
from ratelimit_api.core.errors import StoreAppError, StoreUnavailableError
from ratelimit_api.core.exception_handlers import setup_exception_handlers
from ratelimit_api.core.logging import configure_logging
from ratelimit_api.core.middleware import request_id_middleware
from ratelimit_api.core.openapi import apply_openapi_customizations
from ratelimit_api.core.rate_limit import build_limiters

logger = logging.getLogger(__name__)


async def _verify_store(store: AbstractAtomicStore, config: Settings) -> None:
    """Ping the store once at startup, bounded by the startup timeout.

    Raises:
        StoreUnavailableError: If the store is unreachable and fail-fast is on.
    """
    timeout = config.redis.startup_timeout_seconds
    backend = config.app.store_backend
    try:
        await asyncio.wait_for(store.ping(), timeout=timeout)
    except (StoreAppError, asyncio.TimeoutError) as exc:
        logger.error(
            "store.startup_check_failed",
            extra={"backend": backend, "timeout_s": timeout, "error_type": type(exc).__name__},
        )
        if config.app.fail_fast_on_startup:
            raise StoreUnavailableError(
                code="store_unavailable",
                message=f"Failed to connect to the {backend} store at startup",
                details={"operation": "ping"},
            ) from exc
        return
    logger.info("store.connected", extra={"backend": backend})


def create_app(
    store: AbstractAtomicStore | None = None,
    config: Settings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        store: Optional pre-built store (tests inject one); defaults to the
            backend selected by configuration.
        config: Optional settings; defaults to the process-wide settings.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    cfg = config or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log, debug=cfg.app.debug)

    app_store = store if store is not None else create_store(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await _verify_store(app.state.store, cfg)
        logger.info(
            "service.started",
            extra={
                "backend": cfg.app.store_backend,
                "fixed_window_max_requests": cfg.limiter.fixed_window_max_requests,
                "fixed_window_ttl_s": cfg.limiter.fixed_window_ttl_seconds,
                "fixed_window_atomic": cfg.limiter.fixed_window_atomic,
                "token_bucket_max_tokens": cfg.limiter.token_bucket_max_tokens,
                "token_bucket_refill_rate": cfg.limiter.token_bucket_refill_rate,
            },
        )
        try:
            yield
        finally:
            await app.state.store.close()
            logger.info("service.stopped")

    app = FastAPI(
        title="Rate Limit Decision API",
        description=(
            "Stateless rate limit decisions backed by a shared Redis store. "
            "Each endpoint answers whether the calling client may act now, "
            "using either a fixed window or a token bucket."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = cfg
    app.state.store = app_store
    app.state.limiters = build_limiters(app_store, cfg.limiter)

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(decisions_router)
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
