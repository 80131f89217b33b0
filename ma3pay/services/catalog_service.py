"""Read-only route catalog."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from ma3pay.schemas.catalog import Route
from ma3pay.utils.errors import RouteNotFoundError


class RouteCatalog:
    """Priced routes keyed by id, loaded once and never mutated."""

    def __init__(self, routes: Iterable[Route]) -> None:
        by_id: dict[str, Route] = {}
        for route in routes:
            if route.id in by_id:
                raise ValueError(f"Duplicate route id {route.id!r} in catalog")
            by_id[route.id] = route
        self._routes = by_id

    @classmethod
    def from_config(cls, entries: Iterable[Any]) -> "RouteCatalog":
        """Build a catalog from configuration entries (models or plain dicts)."""
        routes = []
        for entry in entries:
            payload = entry.model_dump() if hasattr(entry, "model_dump") else dict(entry)
            routes.append(Route(**payload))
        return cls(routes)

    def get(self, route_id: str) -> Route | None:
        """Return the route for ``route_id`` or None when absent."""
        return self._routes.get(route_id)

    def require(self, route_id: str) -> Route:
        """Return the route for ``route_id`` or raise RouteNotFoundError."""
        route = self.get(route_id)
        if route is None:
            raise RouteNotFoundError(route_id)
        return route

    def all(self) -> list[Route]:
        """Return every route in configuration order."""
        return list(self._routes.values())

    def __contains__(self, route_id: object) -> bool:
        return route_id in self._routes

    def __len__(self) -> int:
        return len(self._routes)
