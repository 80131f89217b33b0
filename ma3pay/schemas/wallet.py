"""Wallet balance, transaction and transfer schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class TransactionKind(str, Enum):
    """What a transaction did to the wallet; the sign lives here, not in the amount."""

    DEPOSIT = "DEPOSIT"
    FARE_PAYMENT = "FARE_PAYMENT"
    TRANSFER_OUT = "TRANSFER"
    TRANSFER_IN = "TRANSFER_IN"
    REVERSAL = "REVERSAL"

    @property
    def is_credit(self) -> bool:
        return self in (TransactionKind.DEPOSIT, TransactionKind.TRANSFER_IN, TransactionKind.REVERSAL)


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class TransactionRecord(BaseModel):
    """A single wallet transaction, local or server-side."""

    id: str
    kind: TransactionKind
    amount: Decimal = Field(..., ge=0)
    occurred_at: datetime
    description: str = ""
    status: PaymentStatus = PaymentStatus.PENDING
    route: str | None = None

    @property
    def signed_amount(self) -> Decimal:
        """Return the balance delta this record represents."""
        return self.amount if self.kind.is_credit else -self.amount


class WalletBalance(BaseModel):
    """Last known wallet balance; tentative until reconciled."""

    amount: Decimal
    as_of: datetime


class ReconciliationReport(BaseModel):
    """Outcome of replacing the local ledger view with the server's."""

    balance: WalletBalance
    confirmed: list[str] = []
    failed: list[str] = []
    reversals: list[str] = []
    pending: list[str] = []
    mismatched: list[str] = []


class TransferCreate(BaseModel):
    """Request body for sending money to another wallet."""

    recipient_phone: str = Field(..., min_length=9)
    amount: Decimal = Field(..., gt=0)


class DailySpend(BaseModel):
    """Fare spend for one weekday."""

    name: str
    amount: Decimal = Decimal("0")
