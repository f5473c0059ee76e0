from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ratelimit_api.core.rate_limit import Limiters, dispatch_decision, get_limiters
from ratelimit_api.schemas.decision import DecisionResponse

router = APIRouter(tags=["Decisions"])

_DECISION_RESPONSES = {
    429: {"model": DecisionResponse, "description": "Client is over its limit (BLOCK)."},
    500: {"description": "The state store could not complete the check."},
}


@router.api_route(
    "/fixed-window",
    methods=["GET", "POST"],
    response_model=DecisionResponse,
    responses=_DECISION_RESPONSES,
)
async def fixed_window_decision(
    request: Request,
    limiters: Annotated[Limiters, Depends(get_limiters)],
) -> JSONResponse:
    """Count this request against the client's fixed window.

    Returns:
        200 with verdict ALLOW and the window counter, or 429 with BLOCK.
    """
    return await dispatch_decision(request, limiters.fixed_window)


@router.api_route(
    "/token-bucket",
    methods=["GET", "POST"],
    response_model=DecisionResponse,
    responses=_DECISION_RESPONSES,
)
async def token_bucket_decision(
    request: Request,
    limiters: Annotated[Limiters, Depends(get_limiters)],
) -> JSONResponse:
    """Consume one token from the client's bucket.

    Returns:
        200 with verdict ALLOW and the pre-consumption balance, or 429 with BLOCK.
    """
    return await dispatch_decision(request, limiters.token_bucket)
