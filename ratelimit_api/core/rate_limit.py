"""Decision dispatch between the HTTP layer and the limiters.

This module wires the limiters into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency function only.
- One store, many limiters: both limiters share the store held by the app.
- Stateless per request: the client identity is resolved from the request,
  one limiter is consulted, and the verdict is translated to a response.

Client identity:
- Taken verbatim from the configured header (``X-Client-ID`` by default).
- If the header is missing or empty, fall back to the peer address.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request, status
from fastapi.responses import JSONResponse

from ratelimit_api.adapters.rate_limit.base import AbstractRateLimiter, RateLimitDecision
from ratelimit_api.adapters.rate_limit.fixed_window import FixedWindowRateLimiter
from ratelimit_api.adapters.rate_limit.token_bucket import TokenBucketRateLimiter
from ratelimit_api.adapters.store.base import AbstractAtomicStore
from ratelimit_api.core.config import LimiterSettings, Settings
from ratelimit_api.core.logging import hash_client_id
from ratelimit_api.schemas.decision import DecisionResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Limiters:
    """Limiters bound to the application's store."""

    fixed_window: FixedWindowRateLimiter
    token_bucket: TokenBucketRateLimiter


def build_limiters(store: AbstractAtomicStore, limiter_settings: LimiterSettings) -> Limiters:
    """Construct both limiters from immutable configuration values.

    Args:
        store: Shared atomic store.
        limiter_settings: Algorithm parameters read at startup.

    Returns:
        Limiters: Ready-to-use limiter pair.
    """

    return Limiters(
        fixed_window=FixedWindowRateLimiter(store, limiter_settings.fixed_window_config()),
        token_bucket=TokenBucketRateLimiter(store, limiter_settings.token_bucket_config()),
    )


def get_limiters(request: Request) -> Limiters:
    """FastAPI dependency returning the limiters created at startup."""

    return request.app.state.limiters


def get_app_settings(request: Request) -> Settings:
    """Return the settings the running app was created with."""

    return request.app.state.settings


def resolve_client_id(request: Request) -> tuple[str, str]:
    """Resolve the client identity for the current request.

    Args:
        request: FastAPI request.

    Returns:
        Tuple of (client_id, source) where source is ``header`` or ``peer``.
    """

    header_name = get_app_settings(request).app.client_id_header
    header_value = request.headers.get(header_name)
    if header_value:
        return header_value, "header"

    client_host = request.client.host if request.client else "unknown"
    return client_host, "peer"


def _decision_headers(decision: RateLimitDecision, include: bool) -> dict[str, str]:
    if not include:
        return {}

    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
    }
    if decision.retry_after_seconds is not None:
        headers["Retry-After"] = str(decision.retry_after_seconds)
    return headers


async def dispatch_decision(request: Request, limiter: AbstractRateLimiter) -> JSONResponse:
    """Run one limiter for the requesting client and build the HTTP response.

    ALLOW maps to 200 and BLOCK to 429, both carrying the observed value.
    Store failures are not caught here: they propagate as ``StoreAppError``
    and the exception handlers turn them into a 500.

    Args:
        request: FastAPI request.
        limiter: Limiter selected by the route.

    Returns:
        JSONResponse with the serialized decision.
    """

    client_id, source = resolve_client_id(request)
    decision = await limiter.check(client_id)

    log_fields = {
        "algorithm": decision.algorithm.value,
        "client_hash": hash_client_id(client_id),
        "client_source": source,
        "observed": decision.observed,
        "limit": decision.limit,
        "remaining": decision.remaining,
    }

    if decision.allowed:
        logger.info("rate_limit.allowed", extra=log_fields)
        status_code = status.HTTP_200_OK
    else:
        logger.warning(
            "rate_limit.blocked",
            extra={**log_fields, "retry_after_s": decision.retry_after_seconds},
        )
        status_code = status.HTTP_429_TOO_MANY_REQUESTS

    body = DecisionResponse.from_decision(decision)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json"),
        headers=_decision_headers(decision, get_app_settings(request).app.include_headers) or None,
    )
