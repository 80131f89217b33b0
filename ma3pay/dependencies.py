"""FastAPI dependency injection helpers."""

from __future__ import annotations

from fastapi import Depends

from ma3pay.context import CoreContext, get_context
from ma3pay.services.fare_payment_service import FarePaymentSession
from ma3pay.services.topup_service import TopUpSession


def get_core() -> CoreContext:
    """Return the core context; tests override this dependency."""
    return get_context()


def get_fare_session(fare_id: str, core: CoreContext = Depends(get_core)) -> FarePaymentSession:
    """Resolve a fare payment session from the path.

    Raises:
        NotFoundError: 404 if the session is unknown or was evicted.
    """
    return core.fare_sessions.get(fare_id)


def get_top_up_session(top_up_id: str, core: CoreContext = Depends(get_core)) -> TopUpSession:
    """Resolve a standalone top-up session from the path."""
    return core.top_up_sessions.get(top_up_id)
