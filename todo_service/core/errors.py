"""Application-level exception types.

This module defines domain errors used across the pipeline, adapters and
routes, enabling consistent error handling, logging, and API responses.

Quota rejection is deliberately absent: the rate limit stage answers with a
terminal 429 response instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    field: str
    value: Any
    backend: str
    policy: str
    stage: str
    todo_id: int
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
    """Raised when request input validation fails."""


class ConfigurationAppError(AppError):
    """Raised at startup when a policy or pipeline is misconfigured."""


class StoreUnavailableError(AppError):
    """Raised when the counter store backend cannot serve a request."""


class AuthenticationAppError(AppError):
    """Raised when authentication fails."""


class NotFoundAppError(AppError):
    """Raised when a requested resource does not exist."""
