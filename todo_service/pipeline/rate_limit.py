"""Rate limiting stage (fixed window admission control).

Algorithm, once per request the route scope lets through:
1. Derive the admission key with the policy's key generator.
2. Count the request in the store *before* the business handler runs, so a
   slow or crashing handler cannot be used to bypass the limit.
3. Queue RateLimit-* (and optionally X-RateLimit-*) headers.
4. If the count exceeds ``max_requests``, answer 429 with Retry-After and end
   the pipeline.
5. Otherwise continue. Once the final status is known, requests exempted by
   ``skip_successful_requests``, ``skip_failed_requests`` or
   ``skip_authenticated_requests`` are given back with a compensating
   decrement.

The 429 triggers strictly when the count *exceeds* the maximum: the request
that reaches it is still admitted with ``RateLimit-Remaining: 0``.

Store failures (``StoreUnavailableError``) propagate and are rendered as 503
unless the policy explicitly opts into ``fail_open``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import status
from fastapi.responses import JSONResponse

from todo_service.adapters.rate_limit.base import AbstractCounterStore, CounterResult
from todo_service.adapters.rate_limit.in_memory import InMemoryCounterStore
from todo_service.core.errors import ConfigurationAppError, StoreUnavailableError
from todo_service.core.logging import hash_key
from todo_service.pipeline.keys import KeyGenerator, client_address_key
from todo_service.pipeline.orchestrator import RequestContext, Stage
from todo_service.pipeline.routes import ALWAYS, RouteScope

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Too many requests, please try again later"
WRITE_METHODS = ("POST", "PUT", "PATCH", "DELETE")


@dataclass(frozen=True)
class RateLimitPolicy:
    """Immutable, validated rate limit configuration for one stage.

    Attributes:
        name: Policy name; namespaces the store keys and names the stage.
        window_ms: Fixed window duration in milliseconds.
        max_requests: Requests admitted per key and window.
        key_generator: Maps a request context to its admission key.
        skip_successful_requests: Give back 2xx requests once answered.
        skip_failed_requests: Give back requests answered with status >= 400.
        skip_authenticated_requests: Give back requests that passed bearer
            auth, whatever their final status.
        scope: Routes/methods the stage applies to.
        message: Human-readable message of the 429 body.
        standard_headers: Emit RateLimit-* headers.
        legacy_headers: Emit X-RateLimit-* headers.
        allow_zero_quota: Required to accept ``max_requests == 0`` (reject all).
        fail_open: Admit requests when the store is unavailable instead of
            failing them with 503.
    """

    name: str = "default"
    window_ms: int = 15 * 60 * 1000
    max_requests: int = 100
    key_generator: KeyGenerator = client_address_key
    skip_successful_requests: bool = False
    skip_failed_requests: bool = False
    skip_authenticated_requests: bool = False
    scope: RouteScope = ALWAYS
    message: str = DEFAULT_MESSAGE
    standard_headers: bool = True
    legacy_headers: bool = False
    allow_zero_quota: bool = False
    fail_open: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            self._invalid("invalid_policy_name", "name must be a non-empty string", self.name)
        if self.window_ms < 1:
            self._invalid("invalid_window", "window_ms must be >= 1", self.window_ms)
        if self.max_requests < 0:
            self._invalid("invalid_max_requests", "max_requests must be >= 0", self.max_requests)
        if self.max_requests == 0 and not self.allow_zero_quota:
            self._invalid(
                "zero_quota_not_allowed",
                "max_requests=0 rejects every request; set allow_zero_quota=True to confirm",
                self.max_requests,
            )
        if not callable(self.key_generator):
            self._invalid("invalid_key_generator", "key_generator must be callable", None)

    def _invalid(self, code: str, message: str, value: object) -> None:
        raise ConfigurationAppError(
            code=code,
            message=f"Rate limit policy '{self.name}': {message}",
            details={"policy": self.name, "value": value},
        )


DEFAULT_POLICY = RateLimitPolicy()

# Short window, low max, for sensitive write endpoints
STRICT_POLICY = RateLimitPolicy(
    name="strict",
    window_ms=5 * 60 * 1000,
    max_requests=10,
    scope=RouteScope(only_methods=WRITE_METHODS),
    message="Too many requests to this sensitive endpoint",
)

# Only rejected credentials consume quota
AUTH_ATTEMPT_POLICY = RateLimitPolicy(
    name="auth_attempt",
    window_ms=15 * 60 * 1000,
    max_requests=5,
    skip_successful_requests=True,
    skip_authenticated_requests=True,
    message="Too many authentication attempts",
)


def format_reset_iso(reset_at: float) -> str:
    """Render an epoch timestamp as ISO-8601 UTC with milliseconds.

    Example:
        >>> format_reset_iso(1060.0)
        '1970-01-01T00:17:40.000Z'
    """
    moment = datetime.fromtimestamp(reset_at, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def should_give_back(policy: RateLimitPolicy, status_code: int, authenticated: bool = False) -> bool:
    """Whether a forwarded request is exempt from quota given its outcome."""
    if policy.skip_authenticated_requests and authenticated:
        return True
    if policy.skip_successful_requests and 200 <= status_code < 300:
        return True
    if policy.skip_failed_requests and status_code >= 400:
        return True
    return False


class RateLimitStage:
    """Pipeline stage enforcing one ``RateLimitPolicy``."""

    def __init__(
        self,
        policy: RateLimitPolicy = DEFAULT_POLICY,
        store: AbstractCounterStore | None = None,
    ) -> None:
        """Bind a policy to a counter store.

        Args:
            policy: Validated policy.
            store: Counter store; defaults to an in-memory store using the
                policy's window.

        Raises:
            ConfigurationAppError: If the store window differs from the policy's.
        """
        if store is None:
            store = InMemoryCounterStore(window_ms=policy.window_ms)
        elif store.window_ms != policy.window_ms:
            raise ConfigurationAppError(
                code="window_mismatch",
                message=(
                    f"Rate limit policy '{policy.name}' uses a {policy.window_ms} ms window "
                    f"but its store uses {store.window_ms} ms"
                ),
                details={"policy": policy.name, "value": store.window_ms},
            )

        self.policy = policy
        self.store = store

    @property
    def stage_name(self) -> str:
        return f"rate_limit.{self.policy.name}"

    def as_stage(self) -> Stage:
        return Stage(name=self.stage_name, handler=self, scope=self.policy.scope)

    def store_key(self, ctx: RequestContext) -> str:
        return f"{self.policy.name}:{self.policy.key_generator(ctx)}"

    def _queue_headers(self, ctx: RequestContext, result: CounterResult) -> None:
        limit = str(self.policy.max_requests)
        remaining = str(max(0, self.policy.max_requests - result.total_hits))

        if self.policy.standard_headers:
            ctx.set_header("RateLimit-Limit", limit)
            ctx.set_header("RateLimit-Remaining", remaining)
            ctx.set_header("RateLimit-Reset", format_reset_iso(result.reset_at))

        if self.policy.legacy_headers:
            ctx.set_header("X-RateLimit-Limit", limit)
            ctx.set_header("X-RateLimit-Remaining", remaining)
            ctx.set_header("X-RateLimit-Reset", str(math.ceil(result.reset_at)))

    def _reject(self, ctx: RequestContext, result: CounterResult, key_hash: str) -> JSONResponse:
        retry_after = math.ceil(result.ms_until_reset / 1000)
        ctx.set_header("Retry-After", str(retry_after))

        logger.warning(
            "rate_limit.exceeded",
            extra={
                "policy": self.policy.name,
                "key_hash": key_hash,
                "route": ctx.route,
                "limit": self.policy.max_requests,
                "total_hits": result.total_hits,
                "retry_after_s": retry_after,
            },
        )

        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "error": "Too Many Requests",
                "message": self.policy.message,
                "retryAfter": retry_after,
            },
        )

    async def __call__(self, ctx: RequestContext) -> JSONResponse | None:
        key = self.store_key(ctx)
        key_hash = hash_key(key)

        try:
            result = await self.store.increment(key)
        except StoreUnavailableError as exc:
            if not self.policy.fail_open:
                raise
            logger.warning(
                "rate_limit.store_failed",
                extra={
                    "policy": self.policy.name,
                    "key_hash": key_hash,
                    "error_code": exc.code,
                    "decision": "admit",
                },
            )
            return None

        self._queue_headers(ctx, result)

        if result.total_hits > self.policy.max_requests:
            return self._reject(ctx, result, key_hash)

        logger.debug(
            "rate_limit.allowed",
            extra={
                "policy": self.policy.name,
                "key_hash": key_hash,
                "total_hits": result.total_hits,
                "limit": self.policy.max_requests,
            },
        )

        policy = self.policy
        if (
            policy.skip_successful_requests
            or policy.skip_failed_requests
            or policy.skip_authenticated_requests
        ):

            async def give_back(status_code: int) -> None:
                # Set by the auth stage, which runs after this one
                authenticated = getattr(ctx.request.state, "user", None) is not None
                if should_give_back(policy, status_code, authenticated):
                    await self.store.decrement(key)

            ctx.on_complete(give_back)

        return None
