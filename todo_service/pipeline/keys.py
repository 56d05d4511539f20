"""Admission key generators.

A key generator maps a request to the identity its quota is tracked
against. The default is the client address; behind a trusted proxy use
``forwarded_for_key``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from todo_service.pipeline.orchestrator import RequestContext

KeyGenerator = Callable[["RequestContext"], str]


def client_address_key(ctx: RequestContext) -> str:
    """Key by the socket peer address."""
    return ctx.client_host


def forwarded_for_key(ctx: RequestContext) -> str:
    """Key by the first X-Forwarded-For hop, falling back to the peer address."""
    forwarded = ctx.request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    return first_hop or ctx.client_host


def address_and_route_key(ctx: RequestContext) -> str:
    """Key by client address and route template (separate quota per endpoint)."""
    return f"{ctx.client_host}|{ctx.method} {ctx.route}"
