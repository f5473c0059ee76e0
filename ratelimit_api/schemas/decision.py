"""Pydantic schemas for rate limit decision responses."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ratelimit_api.adapters.rate_limit.base import Algorithm, RateLimitDecision, Verdict


class DecisionResponse(BaseModel):
    """Verdict of a single rate limit check."""

    verdict: Verdict = Field(..., description="ALLOW or BLOCK.")
    algorithm: Algorithm = Field(..., description="Algorithm that produced the verdict.")
    observed: int | float = Field(
        ...,
        description=(
            "Fixed window: counter value after this request. Token bucket: "
            "balance after refill, before consuming a token."
        ),
    )
    limit: int = Field(..., description="Configured ceiling (requests per window or bucket capacity).")
    remaining: int = Field(..., description="Actions still available right after this check.")
    retry_after_seconds: int | None = Field(
        default=None,
        description="Suggested wait before retrying, when known.",
    )

    @classmethod
    def from_decision(cls, decision: RateLimitDecision) -> "DecisionResponse":
        return cls(
            verdict=decision.verdict,
            algorithm=decision.algorithm,
            observed=decision.observed,
            limit=decision.limit,
            remaining=decision.remaining,
            retry_after_seconds=decision.retry_after_seconds,
        )
