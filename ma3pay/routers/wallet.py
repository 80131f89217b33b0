"""Wallet balance, history and transfer endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ma3pay.context import CoreContext
from ma3pay.dependencies import get_core
from ma3pay.schemas.wallet import TransferCreate

router = APIRouter()


@router.get("/balance")
def get_balance(core: CoreContext = Depends(get_core)) -> dict:
    """Return the last known (tentative) wallet balance."""
    return {"balance": core.ledger.get_balance(), "currency": core.config.currency}


@router.get("/history")
def get_history(
    limit: int = Query(default=50, ge=1, le=200),
    summary: bool = Query(default=False),
    core: CoreContext = Depends(get_core),
) -> dict:
    """Return transactions newest first, optionally with the weekly fare spend."""
    payload: dict = {"transactions": core.ledger.history(limit=limit)}
    if summary:
        payload["summary"] = core.ledger.fare_spend_by_day(days=7, tz=core.config.timezone)
    return payload


@router.post("/refresh")
async def refresh_wallet(
    strict: bool = Query(default=False),
    core: CoreContext = Depends(get_core),
) -> dict:
    """Reconcile the local ledger with the wallet service."""
    report = await core.refresh(strict=strict)
    return {"report": report}


@router.post("/transfer")
async def send_transfer(payload: TransferCreate, core: CoreContext = Depends(get_core)) -> dict:
    """Send money to another wallet."""
    record = await core.transfers.send(payload.recipient_phone, payload.amount)
    return {"transaction": record, "balance": core.ledger.get_balance()}
