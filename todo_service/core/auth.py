"""Bearer token validation.

The service ships with a static token list (``AUTH_TOKENS``). This is a
placeholder for a real identity provider, not a security boundary: tokens
are compared as plain strings and carry no claims.

Design principles:
- Pure validation logic, no HTTP types, so it is trivially testable
- The pipeline's auth stage turns failures into 401 responses
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Collection

from todo_service.core.config import split_csv
from todo_service.core.errors import AuthenticationAppError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity attached to ``request.state.user`` after authentication."""

    id: str
    role: str = "user"


def parse_tokens(tokens_string: str | None) -> frozenset[str]:
    """Parse comma-separated bearer tokens into a set.

    Examples:
        >>> sorted(parse_tokens("t1, t2 ,t1"))
        ['t1', 't2']
        >>> parse_tokens(None)
        frozenset()
    """
    return frozenset(split_csv(tokens_string))


def _token_fingerprint(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()[:16]


def validate_bearer_token(authorization: str | None, valid_tokens: Collection[str]) -> AuthenticatedUser:
    """Validate an Authorization header against the accepted tokens.

    Args:
        authorization: Raw Authorization header value, if any.
        valid_tokens: Accepted bearer tokens.

    Returns:
        AuthenticatedUser derived from the token.

    Raises:
        AuthenticationAppError: ``missing_token`` when the header is absent or
            not a Bearer credential, ``invalid_token`` when it is unknown.
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise AuthenticationAppError(
            code="missing_token",
            message="Missing or invalid Authorization header",
            details={"hint": "Please provide a valid Bearer token"},
        )

    token = authorization[len(BEARER_PREFIX):].strip()
    fingerprint = _token_fingerprint(token)

    if token not in valid_tokens:
        logger.warning(
            "auth.invalid_token",
            extra={"token_hash": fingerprint, "token_length": len(token)},
        )
        raise AuthenticationAppError(
            code="invalid_token",
            message="Invalid token",
            details={"hint": "The provided token is invalid or expired"},
        )

    return AuthenticatedUser(id=f"user-{fingerprint[:8]}")
