"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

The ``StoreAppError`` family is the internal-error outcome of a rate limit
check: it is never translated into an ALLOW or BLOCK decision.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    algorithm: str
    operation: str
    key: str
    error_type: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class StoreAppError(AppError):
    """Raised when the shared state store cannot complete an operation."""


class StoreUnavailableError(StoreAppError):
    """Connection, timeout or protocol failure while talking to the store."""


class ScriptFailureError(StoreAppError):
    """The store rejected or failed to evaluate an atomic script.

    No state mutation is assumed to have happened.
    """


class PartialApplicationError(StoreAppError):
    """A counter was incremented but its expiration could not be set."""
