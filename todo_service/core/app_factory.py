from __future__ import annotations

"""Application factory for the FastAPI app.

Centralizes app construction (logging, admission pipeline, handlers,
routers) so tests can build isolated apps with their own pipeline.
"""

from fastapi import FastAPI

from todo_service.api.routes import health_router, todos_router
from todo_service.core.config import settings
from todo_service.core.exception_handlers import setup_exception_handlers
from todo_service.core.logging import configure_logging
from todo_service.core.middleware import request_id_middleware
from todo_service.pipeline.factory import build_pipeline
from todo_service.pipeline.orchestrator import Pipeline


def create_app(pipeline: Pipeline | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        pipeline: Admission pipeline to install; built from settings when
            omitted. Configuration errors surface here, at startup.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    if pipeline is None:
        pipeline = build_pipeline(settings)

    app = FastAPI(
        title=settings.app.title,
        description=(
            "TODO CRUD service guarded by an ordered admission pipeline: "
            "CORS, request logging, fixed-window rate limiting and bearer auth."
        ),
        version="0.1.0",
        debug=settings.app.debug,
    )

    # The last registered middleware is the outermost: request ids wrap the pipeline
    app.middleware("http")(pipeline)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(todos_router, prefix="/api/v1")
    app.include_router(health_router)

    app.state.pipeline = pipeline
    return app
