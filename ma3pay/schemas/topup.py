"""Mobile-money top-up schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class TopUpOutcome(str, Enum):
    """Where a top-up attempt ended up.

    ``TIMED_OUT`` is not a failure of the deposit: the money may still arrive.
    """

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    TIMED_OUT = "TIMED_OUT"
    FAILED = "FAILED"
    ABORTED = "ABORTED"


class TopUpCreate(BaseModel):
    """Request body for starting a top-up."""

    amount: Decimal = Field(..., gt=0)
    phone: str = Field(..., min_length=1)


class TopUpSessionResponse(BaseModel):
    """Top-up progress as rendered by the UI."""

    id: str
    target_amount: Decimal
    phone: str
    starting_balance: Decimal
    attempts: int
    outcome: TopUpOutcome
    message: str = ""
    created_at: datetime
    finished_at: datetime | None = None
