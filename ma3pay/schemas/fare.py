"""Fare payment session schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from ma3pay.schemas.catalog import FareQuote, Route
from ma3pay.schemas.topup import TopUpSessionResponse
from ma3pay.schemas.wallet import TransactionRecord


class FarePhase(str, Enum):
    IDENTIFYING = "IDENTIFYING"
    QUOTED = "QUOTED"
    AFFORDING = "AFFORDING"
    AWAITING_TOP_UP = "AWAITING_TOP_UP"
    FINALIZING = "FINALIZING"
    DONE = "DONE"
    ABORTED = "ABORTED"


class FarePaymentCreate(BaseModel):
    """Request body for starting a fare payment."""

    route_id: str = Field(..., min_length=1)
    identifier: str = Field(..., min_length=1)


class FareQuoteRequest(BaseModel):
    """Request body for pricing a session; omit ``peak`` to use the clock."""

    peak: bool | None = None
    high_demand: bool = False


class FareTopUpRequest(BaseModel):
    """Request body for topping up a session; amount defaults to the shortfall."""

    phone: str = Field(..., min_length=1)
    amount: Decimal | None = Field(default=None, gt=0)


class FarePaymentSessionResponse(BaseModel):
    """Fare payment progress as rendered by the UI."""

    id: str
    phase: FarePhase
    identifier: str
    route: Route | None = None
    quote: FareQuote | None = None
    shortfall: Decimal = Decimal("0")
    record: TransactionRecord | None = None
    top_up: TopUpSessionResponse | None = None
    error: dict[str, str] | None = None
    created_at: datetime
