from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ratelimit_api.core.errors import StoreAppError
from ratelimit_api.schemas.health import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
)
async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint.

    Pings the state store with a short upper bound and reports whether it is
    reachable. Used by load balancers and monitoring systems.

    Returns:
        200 when the store answered, 503 otherwise.
    """

    store = request.app.state.store
    config = request.app.state.settings
    backend = config.app.store_backend
    timeout = config.redis.health_timeout_seconds

    try:
        await asyncio.wait_for(store.ping(), timeout=timeout)
    except (StoreAppError, asyncio.TimeoutError) as exc:
        detail = exc.message if isinstance(exc, StoreAppError) else f"ping timed out after {timeout}s"
        logger.warning("health.store_unreachable", extra={"backend": backend, "reason": detail})
        body = HealthResponse(status="unavailable", store="disconnected", backend=backend, detail=detail)
        return JSONResponse(status_code=503, content=body.model_dump())

    body = HealthResponse(status="ok", store="connected", backend=backend)
    return JSONResponse(status_code=200, content=body.model_dump())
