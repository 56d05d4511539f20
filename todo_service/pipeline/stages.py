"""Supporting pipeline stages: CORS, request logging and bearer auth.

Each stage is a callable taking the ``RequestContext`` and returning either
a terminal ``Response`` or None to let the pipeline continue.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Collection

from fastapi import Response, status
from fastapi.responses import JSONResponse

from todo_service.core.auth import validate_bearer_token
from todo_service.core.errors import AuthenticationAppError, ConfigurationAppError
from todo_service.pipeline.orchestrator import RequestContext

logger = logging.getLogger(__name__)

ANY_ORIGIN = "*"


@dataclass(frozen=True)
class CorsOptions:
    """Cross-origin policy."""

    allow_origins: tuple[str, ...] = (ANY_ORIGIN,)
    allow_credentials: bool = True
    allow_methods: tuple[str, ...] = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")
    allow_headers: tuple[str, ...] = ("Content-Type", "Authorization", "X-Requested-With")
    expose_headers: tuple[str, ...] = ("X-Total-Count",)
    max_age: int = 86400

    @property
    def allows_any_origin(self) -> bool:
        return ANY_ORIGIN in self.allow_origins


class CorsStage:
    """Set CORS headers and answer preflight requests."""

    name = "cors"

    def __init__(self, options: CorsOptions | None = None) -> None:
        self.options = options or CorsOptions()

    def _allowed_origin(self, origin: str | None) -> str | None:
        if self.options.allows_any_origin:
            # A wildcard is not honoured by browsers for credentialed requests
            if origin and self.options.allow_credentials:
                return origin
            return ANY_ORIGIN
        if origin and origin in self.options.allow_origins:
            return origin
        return None

    async def __call__(self, ctx: RequestContext) -> Response | None:
        opts = self.options
        allowed = self._allowed_origin(ctx.request.headers.get("origin"))

        if allowed is not None:
            ctx.set_header("Access-Control-Allow-Origin", allowed)
            if allowed != ANY_ORIGIN:
                ctx.set_header("Vary", "Origin")
            if opts.allow_credentials:
                ctx.set_header("Access-Control-Allow-Credentials", "true")
            if opts.allow_methods:
                ctx.set_header("Access-Control-Allow-Methods", ", ".join(opts.allow_methods))
            if opts.allow_headers:
                ctx.set_header("Access-Control-Allow-Headers", ", ".join(opts.allow_headers))
            if opts.expose_headers:
                ctx.set_header("Access-Control-Expose-Headers", ", ".join(opts.expose_headers))
            if opts.max_age:
                ctx.set_header("Access-Control-Max-Age", str(opts.max_age))

        if ctx.method == "OPTIONS":
            return Response(status_code=status.HTTP_204_NO_CONTENT)
        return None


class RequestLoggingStage:
    """Log request start and completion, flagging slow requests."""

    name = "logging"

    def __init__(
        self,
        *,
        slow_request_ms: int = 1000,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.slow_request_ms = slow_request_ms
        self._clock = clock

    async def __call__(self, ctx: RequestContext) -> None:
        start = self._clock()
        request = ctx.request

        logger.info(
            "request.started",
            extra={
                "method": ctx.method,
                "route": ctx.route,
                "path": request.url.path,
                "client_ip": ctx.client_host,
                "user_agent": request.headers.get("user-agent"),
                "content_type": request.headers.get("content-type"),
            },
        )

        async def log_completion(status_code: int) -> None:
            duration_ms = (self._clock() - start) * 1000
            user = getattr(request.state, "user", None)
            payload = {
                "method": ctx.method,
                "route": ctx.route,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
                "terminated_by": ctx.terminated_by,
                "user_id": user.id if user else "anonymous",
            }
            if duration_ms > self.slow_request_ms:
                logger.warning("request.slow", extra=payload)
            logger.info("request.completed", extra=payload)

        ctx.on_complete(log_completion)
        return None


class BearerAuthStage:
    """Require ``Authorization: Bearer <token>`` from a static token set."""

    name = "auth"

    def __init__(self, tokens: Collection[str]) -> None:
        """Configure accepted tokens.

        Raises:
            ConfigurationAppError: If no token is configured.
        """
        tokens = frozenset(tokens)
        if not tokens:
            raise ConfigurationAppError(
                code="auth_tokens_not_configured",
                message="Bearer auth is enabled but no tokens are configured",
                details={"hint": "Set AUTH_TOKENS or disable auth with AUTH_ENABLED=false"},
            )
        self._tokens = tokens

    async def __call__(self, ctx: RequestContext) -> Response | None:
        try:
            user = validate_bearer_token(ctx.request.headers.get("authorization"), self._tokens)
        except AuthenticationAppError as exc:
            logger.info(
                "auth.rejected",
                extra={"reason": exc.code, "route": ctx.route, "client_ip": ctx.client_host},
            )
            hint = exc.details.get("hint") if exc.details else None
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": exc.message, "message": hint},
                headers={"WWW-Authenticate": "Bearer"},
            )

        ctx.request.state.user = user
        return None
