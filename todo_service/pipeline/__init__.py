"""Request admission pipeline: ordered stages, route scoping and rate limiting."""

from todo_service.pipeline.orchestrator import Pipeline, PipelineState, RequestContext, Stage
from todo_service.pipeline.rate_limit import (
    AUTH_ATTEMPT_POLICY,
    DEFAULT_POLICY,
    STRICT_POLICY,
    RateLimitPolicy,
    RateLimitStage,
)
from todo_service.pipeline.routes import RouteScope, applies

__all__ = [
    "AUTH_ATTEMPT_POLICY",
    "DEFAULT_POLICY",
    "STRICT_POLICY",
    "Pipeline",
    "PipelineState",
    "RateLimitPolicy",
    "RateLimitStage",
    "RequestContext",
    "RouteScope",
    "Stage",
    "applies",
]
