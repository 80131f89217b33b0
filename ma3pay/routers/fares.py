"""Fare payment endpoints."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, status

from ma3pay.context import CoreContext
from ma3pay.dependencies import get_core, get_fare_session
from ma3pay.schemas.fare import FarePaymentCreate, FareQuoteRequest, FareTopUpRequest
from ma3pay.services.fare_payment_service import FarePaymentSession

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def start_fare_payment(payload: FarePaymentCreate, core: CoreContext = Depends(get_core)) -> dict:
    """Open a fare payment for a vehicle on a route."""
    session = core.fares.start_fare_payment(payload.route_id, payload.identifier)
    core.fare_sessions.add(session)
    return {"fare": session.to_response()}


@router.get("/{fare_id}")
def get_fare_payment(session: FarePaymentSession = Depends(get_fare_session)) -> dict:
    """Return the current phase of a fare payment."""
    return {"fare": session.to_response()}


@router.post("/{fare_id}/quote")
def quote_fare(
    payload: FareQuoteRequest | None = None,
    session: FarePaymentSession = Depends(get_fare_session),
) -> dict:
    """Price the fare for this payment."""
    payload = payload or FareQuoteRequest()
    session.quote_fare(peak=payload.peak, high_demand=payload.high_demand)
    return {"fare": session.to_response()}


@router.post("/{fare_id}/afford")
def check_affordability(session: FarePaymentSession = Depends(get_fare_session)) -> dict:
    """Compare the wallet balance with the quoted fare."""
    session.check_affordability()
    return {"fare": session.to_response()}


@router.post("/{fare_id}/top-up", status_code=status.HTTP_202_ACCEPTED)
async def top_up_fare(
    payload: FareTopUpRequest,
    background_tasks: BackgroundTasks,
    session: FarePaymentSession = Depends(get_fare_session),
    core: CoreContext = Depends(get_core),
) -> dict:
    """Send an STK push for the shortfall; confirmation is polled in the background."""
    top_up = session.begin_top_up(payload.phone, payload.amount)
    core.top_up_sessions.add(top_up)
    background_tasks.add_task(session.complete_top_up, top_up)
    return {"fare": session.to_response()}


@router.post("/{fare_id}/finalize")
def finalize_fare(session: FarePaymentSession = Depends(get_fare_session)) -> dict:
    """Debit the fare from the wallet."""
    record = session.finalize()
    return {"fare": session.to_response(), "transaction": record}


@router.delete("/{fare_id}")
async def cancel_fare(session: FarePaymentSession = Depends(get_fare_session)) -> dict:
    """Abandon the payment and stop any top-up it started."""
    session.cancel()
    return {"fare": session.to_response()}
