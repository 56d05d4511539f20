"""Route scoping for pipeline stages.

A stage applies to a request depending on the *registered route template*
(``/api/v1/todos/{todo_id}``, not the interpolated URL) and, optionally, the
HTTP method.

Pattern syntax:
- ``/health`` matches exactly ``/health``.
- ``/docs/*`` matches ``/docs`` and everything below it (``/docs/oauth2``),
  but not ``/docsx``.
- ``POST /api/v1/todos`` matches that route only for the given method.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

WILDCARD_SUFFIX = "/*"


def route_matches(pattern: str, route: str) -> bool:
    """Check a single pattern against a route template.

    Examples:
        >>> route_matches("/docs/*", "/docs")
        True
        >>> route_matches("/docs/*", "/docs/oauth2-redirect")
        True
        >>> route_matches("/docs/*", "/docsx")
        False
        >>> route_matches("/health", "/health/live")
        False
    """
    if pattern.endswith(WILDCARD_SUFFIX):
        prefix = pattern[: -len(WILDCARD_SUFFIX)]
        return route == prefix or route.startswith(prefix + "/")
    return route == pattern


def _entry_matches(entry: str, route: str, method: str | None) -> bool:
    """Match a scope entry, optionally qualified with a method (``"DELETE /x"``)."""
    entry_method, _, pattern = entry.rpartition(" ")
    if entry_method and entry_method.strip().upper() != (method or "").upper():
        return False
    return route_matches(pattern, route)


def _normalize(values: Iterable[str] | None) -> tuple[str, ...]:
    return tuple(values or ())


@dataclass(frozen=True)
class RouteScope:
    """Where a stage applies.

    Attributes:
        only_routes: When non-empty, the stage applies only to these routes.
            Entries may be prefixed with a method (``"POST /api/v1/todos"``).
        skip_routes: Routes the stage never applies to (ignored when
            ``only_routes`` is set).
        only_methods: When non-empty, restricts the stage to these methods.
    """

    only_routes: tuple[str, ...] = ()
    skip_routes: tuple[str, ...] = ()
    only_methods: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "only_routes", _normalize(self.only_routes))
        object.__setattr__(self, "skip_routes", _normalize(self.skip_routes))
        object.__setattr__(
            self, "only_methods", tuple(m.upper() for m in _normalize(self.only_methods))
        )

    @property
    def is_global(self) -> bool:
        return not (self.only_routes or self.skip_routes or self.only_methods)


ALWAYS = RouteScope()


def applies(scope: RouteScope | None, route: str, method: str | None = None) -> bool:
    """Decide whether a stage with ``scope`` handles a request.

    Args:
        scope: Stage scope; None means the stage always applies.
        route: Registered route template of the request.
        method: HTTP method, checked by ``only_methods`` and method-qualified
            entries.

    Returns:
        True when the stage must run for this request.
    """
    if scope is None:
        return True

    if scope.only_methods and (method or "").upper() not in scope.only_methods:
        return False

    if scope.only_routes:
        return any(_entry_matches(entry, route, method) for entry in scope.only_routes)

    if scope.skip_routes and any(
        _entry_matches(entry, route, method) for entry in scope.skip_routes
    ):
        return False

    return True
