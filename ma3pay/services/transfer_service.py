"""Peer-to-peer wallet transfers."""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import uuid4

from ma3pay.schemas.wallet import PaymentStatus, TransactionKind, TransactionRecord
from ma3pay.services.ledger_cache import WalletLedgerCache
from ma3pay.services.wallet_client import WalletService
from ma3pay.utils.errors import (
    GatewayRejectedError,
    InsufficientFundsError,
    InvalidInputError,
    UncertainOutcomeError,
    WalletServiceError,
)
from ma3pay.utils.phone import normalise_phone
from ma3pay.utils.time import Clock, SystemClock

logger = logging.getLogger(__name__)


class TransferService:
    """Send money to another wallet, debiting the local ledger optimistically."""

    def __init__(
        self,
        ledger: WalletLedgerCache,
        wallet: WalletService,
        clock: Clock | None = None,
    ) -> None:
        self.ledger = ledger
        self.wallet = wallet
        self.clock = clock or SystemClock()

    async def send(self, recipient_phone: str, amount: Decimal) -> TransactionRecord:
        """Transfer ``amount`` to ``recipient_phone``.

        The local record id doubles as the idempotency key, and the request is
        sent exactly once.

        Raises:
            InvalidInputError: for a short phone number or non-positive amount.
            InsufficientFundsError: if the local balance cannot cover the amount.
            GatewayRejectedError: if the wallet service refused; the debit is reversed.
            UncertainOutcomeError: if the request timed out; the record stays pending.
        """
        phone = (recipient_phone or "").strip()
        if len(phone) < 9:
            raise InvalidInputError("Please enter a valid phone number")
        amount = Decimal(amount)
        if amount <= 0:
            raise InvalidInputError("Amount must be greater than zero")

        balance = self.ledger.get_balance().amount
        if amount > balance:
            raise InsufficientFundsError(required=amount, available=balance)

        phone = normalise_phone(phone)
        record = TransactionRecord(
            id=f"TX-{uuid4().hex[:12]}",
            kind=TransactionKind.TRANSFER_OUT,
            amount=amount,
            occurred_at=self.clock.now(),
            description=f"Transfer to {phone}",
            status=PaymentStatus.PENDING,
        )
        self.ledger.apply_optimistic(-amount, record)

        try:
            await self.wallet.transfer(phone, amount, idempotency_key=record.id)
        except WalletServiceError as exc:
            if exc.timed_out:
                logger.warning("Transfer %s timed out; leaving it pending for reconciliation", record.id)
                raise UncertainOutcomeError(record.id) from exc
            self.ledger.reverse(record.id, exc.message)
            logger.warning("Transfer %s rejected: %s", record.id, exc.message)
            raise GatewayRejectedError(exc.message) from exc

        logger.info("Transfer %s of %s to %s submitted", record.id, amount, phone)
        return self.ledger.get_record(record.id)
