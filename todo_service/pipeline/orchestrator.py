"""Ordered request admission pipeline.

The pipeline replaces a pile of framework hooks with one explicit list of
stages executed by a single loop, installed as one HTTP middleware:

    security (CORS) → logging → rate limit → auth → business handler

Contract:
- Stages run strictly in registration order; each is fully awaited before the
  next one starts.
- A stage whose route scope does not apply to the request is skipped.
- A stage that returns a ``Response`` ends the pipeline (terminal); no later
  stage and no business handler run for that request.
- Headers queued by stages are applied to whichever response is produced.
- Completion callbacks run once the final status code is known.

Usage:
    pipeline = Pipeline([Stage("cors", cors_stage), Stage("rate_limit", limiter)])
    app.middleware("http")(pipeline)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Iterable

from fastapi import Request, Response
from starlette.routing import Match

from todo_service.core.errors import AppError, ConfigurationAppError
from todo_service.core.exception_handlers import app_error_handler
from todo_service.pipeline.routes import ALWAYS, RouteScope, applies

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    TERMINAL = "terminal"
    COMPLETED = "completed"


CompletionCallback = Callable[[int], Awaitable[None]]


@dataclass
class RequestContext:
    """Per-request state shared by the stages of one pipeline run.

    Attributes:
        request: The incoming request.
        route: Registered route template used for scoping.
        state: Current pipeline state.
        stage_index: Index of the stage currently (or last) executed.
        terminated_by: Name of the stage that produced a terminal response.
        response_headers: Headers applied to the final response.
    """

    request: Request
    route: str
    state: PipelineState = PipelineState.IDLE
    stage_index: int = 0
    terminated_by: str | None = None
    response_headers: dict[str, str] = field(default_factory=dict)
    _completion_callbacks: list[CompletionCallback] = field(default_factory=list, repr=False)

    @property
    def method(self) -> str:
        return self.request.method

    @property
    def client_host(self) -> str:
        return self.request.client.host if self.request.client else "unknown"

    def set_header(self, name: str, value: str) -> None:
        self.response_headers[name] = value

    def on_complete(self, callback: CompletionCallback) -> None:
        """Run ``callback(status_code)`` after the final response is known."""
        self._completion_callbacks.append(callback)

    def apply_headers(self, response: Response) -> None:
        for name, value in self.response_headers.items():
            response.headers[name] = value

    async def complete(self, status_code: int) -> None:
        # The response is already decided; a failing callback must not change it.
        for callback in self._completion_callbacks:
            try:
                await callback(status_code)
            except Exception:
                logger.exception(
                    "pipeline.completion_failed",
                    extra={"route": self.route, "status_code": status_code},
                )


StageHandler = Callable[[RequestContext], Awaitable[Response | None]]
ErrorHandler = Callable[[Request, AppError], Awaitable[Response]]


@dataclass(frozen=True)
class Stage:
    """A named unit of the pipeline.

    Attributes:
        name: Unique stage name (used in logs).
        handler: Coroutine returning a terminal Response or None to continue.
        scope: Routes/methods the stage applies to.
    """

    name: str
    handler: StageHandler
    scope: RouteScope = ALWAYS


def resolve_route_template(request: Request) -> str:
    """Return the registered route template matching the request.

    Falls back to a route that matched on path only (method mismatch), then to
    the raw URL path for unknown routes.
    """
    app = request.scope.get("app")
    partial: str | None = None
    for route in getattr(app, "routes", ()):
        path = getattr(route, "path", None)
        if path is None:
            continue
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return path
        if match == Match.PARTIAL and partial is None:
            partial = path
    return partial or request.url.path


class Pipeline:
    """Immutable ordered list of stages, executed once per request."""

    def __init__(
        self,
        stages: Iterable[Stage],
        *,
        error_handler: ErrorHandler = app_error_handler,
        route_resolver: Callable[[Request], str] = resolve_route_template,
    ) -> None:
        """Build the pipeline.

        Args:
            stages: Stages in execution order.
            error_handler: Converts domain errors raised by stages to responses.
            route_resolver: Maps a request to its route template.

        Raises:
            ConfigurationAppError: If two stages share a name.
        """
        stages = tuple(stages)
        seen: set[str] = set()
        for stage in stages:
            if stage.name in seen:
                raise ConfigurationAppError(
                    code="duplicate_stage",
                    message=f"Stage '{stage.name}' is registered more than once",
                    details={"stage": stage.name},
                )
            seen.add(stage.name)

        self._stages = stages
        self._error_handler = error_handler
        self._route_resolver = route_resolver

    @property
    def stages(self) -> tuple[Stage, ...]:
        return self._stages

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self._stages]

    async def _dispatch(self, ctx: RequestContext, call_next) -> Response:
        ctx.state = PipelineState.RUNNING
        for index, stage in enumerate(self._stages):
            ctx.stage_index = index
            if not applies(stage.scope, ctx.route, ctx.method):
                continue

            response = await stage.handler(ctx)
            if response is not None:
                ctx.state = PipelineState.TERMINAL
                ctx.terminated_by = stage.name
                logger.debug(
                    "pipeline.stage_terminal",
                    extra={
                        "stage": stage.name,
                        "route": ctx.route,
                        "status_code": response.status_code,
                    },
                )
                return response

        response = await call_next(ctx.request)
        ctx.state = PipelineState.COMPLETED
        return response

    async def run(self, request: Request, call_next) -> Response:
        """Execute the stages for one request, then the business handler.

        Args:
            request: The incoming request.
            call_next: Downstream ASGI handler (routes).

        Returns:
            The terminal response of a stage or the downstream response, with
            queued headers applied.
        """
        ctx = RequestContext(request=request, route=self._route_resolver(request))
        request.state.pipeline = ctx

        try:
            response = await self._dispatch(ctx, call_next)
        except AppError as exc:
            ctx.state = PipelineState.TERMINAL
            response = await self._error_handler(request, exc)
        except Exception:
            await ctx.complete(500)
            raise

        ctx.apply_headers(response)
        await ctx.complete(response.status_code)
        return response

    async def __call__(self, request: Request, call_next) -> Response:
        return await self.run(request, call_next)
