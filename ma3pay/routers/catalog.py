"""Route catalog endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ma3pay.context import CoreContext
from ma3pay.dependencies import get_core
from ma3pay.schemas.catalog import FareContext
from ma3pay.services.fare_service import build_context
from ma3pay.utils.time import parse_time_windows

router = APIRouter()


@router.get("")
def list_routes(core: CoreContext = Depends(get_core)) -> dict:
    """Return every priced route."""
    return {"routes": core.catalog.all()}


@router.get("/{route_id}")
def get_route(route_id: str, core: CoreContext = Depends(get_core)) -> dict:
    """Return one route."""
    return {"route": core.catalog.require(route_id)}


@router.get("/{route_id}/quote")
def quote_route(
    route_id: str,
    peak: bool | None = Query(default=None),
    high_demand: bool = Query(default=False),
    core: CoreContext = Depends(get_core),
) -> dict:
    """Price a route now, or for a forced tier when ``peak`` is given."""
    at = core.clock.now()
    if peak is None:
        context = build_context(
            at,
            parse_time_windows(core.config.peak_hours),
            core.config.timezone,
            high_demand=high_demand,
        )
    else:
        context = FareContext(at=at, peak=peak)
    return {"quote": core.resolver.resolve(route_id, context), "currency": core.config.currency}
