"""Fare resolution against the route catalog."""

from __future__ import annotations

from datetime import datetime, time, tzinfo

from ma3pay.schemas.catalog import FareContext, FareQuote, Route
from ma3pay.services.catalog_service import RouteCatalog
from ma3pay.utils.errors import RouteNotFoundError
from ma3pay.utils.time import in_time_windows


def build_context(
    at: datetime,
    peak_windows: list[tuple[time, time]] | None = None,
    tz: tzinfo | str = "UTC",
    high_demand: bool = False,
) -> FareContext:
    """Derive the peak flag from the clock and an explicit demand signal."""
    peak = high_demand or bool(peak_windows and in_time_windows(at, peak_windows, tz))
    return FareContext(at=at, peak=peak)


class FareResolver:
    """Pure pricing policy: standard price, or peak price when the peak flag is set."""

    def __init__(self, catalog: RouteCatalog) -> None:
        self.catalog = catalog

    def resolve(self, route: Route | str, context: FareContext) -> FareQuote:
        """Return the fare owed for ``route`` under ``context``.

        Raises:
            RouteNotFoundError: if the route is not in the catalog.
        """
        route_id = route if isinstance(route, str) else route.id
        known = self.catalog.get(route_id)
        if known is None:
            raise RouteNotFoundError(route_id)

        price = known.peak_price if context.peak else known.standard_price
        return FareQuote(route=known, price=price, peak=context.peak, computed_at=context.at)
