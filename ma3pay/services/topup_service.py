"""Mobile-money top-up: STK push submission and balance polling."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from ma3pay.schemas.topup import TopUpOutcome, TopUpSessionResponse
from ma3pay.schemas.wallet import PaymentStatus, TransactionKind, TransactionRecord
from ma3pay.services.ledger_cache import WalletLedgerCache
from ma3pay.services.wallet_client import WalletService
from ma3pay.utils.errors import (
    AlreadyInProgressError,
    AppError,
    ConfirmationTimeoutError,
    GatewayRejectedError,
    InvalidInputError,
    WalletServiceError,
)
from ma3pay.utils.phone import validate_mobile_money_phone
from ma3pay.utils.time import Clock, SystemClock

logger = logging.getLogger(__name__)

TOP_UP_DESCRIPTION = "M-Pesa Top Up"


class TopUpSession:
    """State of one top-up attempt. Never reused across attempts."""

    def __init__(self, target_amount: Decimal, phone: str, created_at: datetime) -> None:
        self.id = f"TU-{uuid4().hex[:12]}"
        self.target_amount = Decimal(target_amount)
        self.phone = phone
        self.starting_balance = Decimal("0")
        self.attempts = 0
        self.outcome = TopUpOutcome.PENDING
        self.message = ""
        self.created_at = created_at
        self.finished_at: datetime | None = None
        self.started = False
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def done(self) -> bool:
        return self.outcome != TopUpOutcome.PENDING

    def cancel(self) -> None:
        """Abandon the session; polling stops after any in-flight balance check."""
        if not self.done:
            self._cancelled.set()

    async def wait_cancelled(self) -> None:
        await self._cancelled.wait()

    def error(self) -> AppError | None:
        """Return the taxonomy error for a failed or timed-out session."""
        if self.outcome == TopUpOutcome.FAILED:
            return GatewayRejectedError(self.message)
        if self.outcome == TopUpOutcome.TIMED_OUT:
            return ConfirmationTimeoutError(self.message)
        return None

    def to_response(self) -> TopUpSessionResponse:
        return TopUpSessionResponse(
            id=self.id,
            target_amount=self.target_amount,
            phone=self.phone,
            starting_balance=self.starting_balance,
            attempts=self.attempts,
            outcome=self.outcome,
            message=self.message,
            created_at=self.created_at,
            finished_at=self.finished_at,
        )


class TopUpOrchestrator:
    """Drive a deposit request and confirm it by polling the wallet balance.

    ``starting_balance`` is the wallet service balance read just before the
    deposit, so it and every polled reading are server figures. Confirmation
    is the first poll where the server balance reaches
    ``starting_balance + target_amount - epsilon``; the deposit is then
    credited to the ledger as a pending record for reconcile to settle.
    Polling runs at a fixed interval for a fixed number of attempts with no
    backoff.
    """

    def __init__(
        self,
        ledger: WalletLedgerCache,
        wallet: WalletService,
        clock: Clock | None = None,
        poll_interval_seconds: float = 3.0,
        max_attempts: int = 10,
        epsilon: Decimal = Decimal("0.01"),
    ) -> None:
        self.ledger = ledger
        self.wallet = wallet
        self.clock = clock or SystemClock()
        self.poll_interval_seconds = poll_interval_seconds
        self.max_attempts = max_attempts
        self.epsilon = epsilon

    def start_top_up(self, amount: Decimal, phone: str) -> TopUpSession:
        """Create a fresh, not yet running session."""
        return TopUpSession(target_amount=amount, phone=phone, created_at=self.clock.now())

    async def request_top_up(self, amount: Decimal, phone: str) -> TopUpSession:
        """Create a session and run it to an outcome."""
        session = self.start_top_up(amount, phone)
        return await self.run(session)

    async def run(self, session: TopUpSession) -> TopUpSession:
        """Submit the deposit for ``session`` and poll until it reaches an outcome."""
        if session.started:
            raise AlreadyInProgressError("Top-up already started")
        session.started = True

        if session.target_amount <= 0:
            return self._finish(session, TopUpOutcome.FAILED, "Amount must be greater than zero")
        try:
            phone = validate_mobile_money_phone(session.phone)
        except InvalidInputError as exc:
            return self._finish(session, TopUpOutcome.FAILED, exc.message)
        if session.cancelled:
            return self._finish(session, TopUpOutcome.ABORTED)

        try:
            session.starting_balance = (await self.wallet.get_balance()).amount
        except WalletServiceError as exc:
            logger.warning("Top-up %s could not read the starting balance: %s", session.id, exc.message)
            return self._finish(session, TopUpOutcome.FAILED, exc.message)
        if session.cancelled:
            return self._finish(session, TopUpOutcome.ABORTED)

        try:
            await self.wallet.deposit(session.target_amount, phone)
        except WalletServiceError as exc:
            logger.warning("Top-up %s rejected: %s", session.id, exc.message)
            return self._finish(session, TopUpOutcome.FAILED, exc.message)

        session.message = "STK push sent. Please enter your PIN on your phone."
        logger.info("Top-up %s: STK push sent for %s to %s", session.id, session.target_amount, phone)
        return await self._poll(session)

    async def _poll(self, session: TopUpSession) -> TopUpSession:
        threshold = session.starting_balance + session.target_amount - self.epsilon

        while session.attempts < self.max_attempts:
            if session.cancelled:
                return self._finish(session, TopUpOutcome.ABORTED)
            await self._pause(session)
            if session.cancelled:
                return self._finish(session, TopUpOutcome.ABORTED)

            session.attempts += 1
            try:
                latest = await self.wallet.get_balance()
            except WalletServiceError as exc:
                logger.warning(
                    "Top-up %s balance check %s failed, retrying: %s",
                    session.id,
                    session.attempts,
                    exc.message,
                )
                continue

            if session.cancelled:
                return self._finish(session, TopUpOutcome.ABORTED)
            if latest.amount >= threshold:
                self._record_confirmation(session)
                return self._finish(session, TopUpOutcome.CONFIRMED, "Top-up confirmed")

        return self._finish(session, TopUpOutcome.TIMED_OUT, ConfirmationTimeoutError().message)

    async def _pause(self, session: TopUpSession) -> None:
        """Sleep one interval, waking early if the session is cancelled."""
        sleeper = asyncio.ensure_future(self.clock.sleep(self.poll_interval_seconds))
        watcher = asyncio.ensure_future(session.wait_cancelled())
        try:
            await asyncio.wait({sleeper, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [task for task in (sleeper, watcher) if not task.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    def _record_confirmation(self, session: TopUpSession) -> None:
        deposit = TransactionRecord(
            id=f"DP-{session.id}",
            kind=TransactionKind.DEPOSIT,
            amount=session.target_amount,
            occurred_at=self.clock.now(),
            description=TOP_UP_DESCRIPTION,
            status=PaymentStatus.PENDING,
        )
        self.ledger.apply_optimistic(session.target_amount, deposit)

    def _finish(self, session: TopUpSession, outcome: TopUpOutcome, message: str = "") -> TopUpSession:
        session.outcome = outcome
        if message:
            session.message = message
        elif outcome == TopUpOutcome.ABORTED:
            session.message = "Top-up cancelled"
        session.finished_at = self.clock.now()
        logger.info(
            "Top-up %s finished: %s after %s attempt(s)",
            session.id,
            outcome.value,
            session.attempts,
        )
        return session
