from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

from todo_service.core.config import settings

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Health check endpoint.

    Used by load balancers and monitoring systems; exempt from rate limiting
    and auth by default.

    Returns:
        dict: Status, current UTC timestamp and environment name.
    """

    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.app_env,
    }
