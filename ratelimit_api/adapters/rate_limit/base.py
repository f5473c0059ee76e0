"""Rate limiter interfaces and value types.

The HTTP layer depends on this abstraction (not the concrete algorithms), and
the algorithms depend only on the abstract atomic store, so any store backend
can be swapped in without touching either side.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass


class Verdict(str, enum.Enum):
    """Outcome of a rate limit check."""

    ALLOW = "ALLOW"
    BLOCK = "BLOCK"


class Algorithm(str, enum.Enum):
    FIXED_WINDOW = "fixed_window"
    TOKEN_BUCKET = "token_bucket"


@dataclass(frozen=True)
class FixedWindowConfig:
    """Immutable parameters for the fixed-window limiter.

    Attributes:
        max_requests: Requests allowed per window.
        window_seconds: Window length, counted from the first request.
        atomic: Run increment and expiration as one store-side script.
    """

    max_requests: int
    window_seconds: int
    atomic: bool = True

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")


@dataclass(frozen=True)
class TokenBucketConfig:
    """Immutable parameters for the token-bucket limiter.

    Attributes:
        max_tokens: Bucket capacity.
        refill_rate: Tokens added per second (0 disables refill).
        idle_ttl_seconds: Minimum lifetime of idle per-client state.
    """

    max_tokens: int
    refill_rate: float
    idle_ttl_seconds: int = 60

    def __post_init__(self) -> None:
        if self.max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        if self.refill_rate < 0:
            raise ValueError("refill_rate must be >= 0")
        if self.idle_ttl_seconds < 1:
            raise ValueError("idle_ttl_seconds must be >= 1")


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a rate limit check.

    Attributes:
        verdict: ALLOW or BLOCK.
        algorithm: Algorithm that produced the verdict.
        observed: Counter value (fixed window) or token balance before
            consumption (token bucket).
        limit: Configured ceiling (max requests or bucket capacity).
        remaining: Actions still available right after this check.
        retry_after_seconds: Suggested wait when blocked, if known.
    """

    verdict: Verdict
    algorithm: Algorithm
    observed: int | float
    limit: int
    remaining: int
    retry_after_seconds: int | None = None

    @property
    def allowed(self) -> bool:
        return self.verdict is Verdict.ALLOW


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    algorithm: Algorithm

    @abstractmethod
    async def check(self, client_id: str) -> RateLimitDecision:
        """Decide whether ``client_id`` may act now, consuming budget if so.

        Args:
            client_id: Opaque client identity, used verbatim in store keys.

        Returns:
            RateLimitDecision describing the verdict.

        Raises:
            StoreAppError: When the store cannot complete the check. Store
                failures are never reported as ALLOW or BLOCK.
        """
        raise NotImplementedError
