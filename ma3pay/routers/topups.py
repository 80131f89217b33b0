"""Standalone wallet top-up endpoints."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, status

from ma3pay.context import CoreContext
from ma3pay.dependencies import get_core, get_top_up_session
from ma3pay.schemas.topup import TopUpCreate
from ma3pay.services.topup_service import TopUpSession

router = APIRouter()


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def start_top_up(
    payload: TopUpCreate,
    background_tasks: BackgroundTasks,
    core: CoreContext = Depends(get_core),
) -> dict:
    """Send an STK push; poll ``GET /topups/{id}`` for the outcome."""
    session = core.top_ups.start_top_up(payload.amount, payload.phone)
    core.top_up_sessions.add(session)
    background_tasks.add_task(core.top_ups.run, session)
    return {"top_up": session.to_response()}


@router.get("/{top_up_id}")
def get_top_up(session: TopUpSession = Depends(get_top_up_session)) -> dict:
    """Return the progress of a top-up."""
    return {"top_up": session.to_response()}


@router.delete("/{top_up_id}")
async def cancel_top_up(session: TopUpSession = Depends(get_top_up_session)) -> dict:
    """Stop polling for a top-up; an in-flight balance check still completes."""
    session.cancel()
    return {"top_up": session.to_response()}
