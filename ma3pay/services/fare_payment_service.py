"""Fare payment state machine.

A session moves through::

    IDENTIFYING -> QUOTED -> AFFORDING -> FINALIZING -> DONE
                                  |  ^
                                  v  | (top-up confirmed, balance re-read)
                           AWAITING_TOP_UP

and can be cancelled into ABORTED from any phase before DONE. FINALIZING is
the only phase that touches the ledger, and the debit happens at most once.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, time
from decimal import Decimal
from uuid import uuid4

from ma3pay.schemas.catalog import FareContext, FareQuote, Route
from ma3pay.schemas.fare import FarePaymentSessionResponse, FarePhase
from ma3pay.schemas.topup import TopUpOutcome
from ma3pay.schemas.wallet import PaymentStatus, TransactionKind, TransactionRecord
from ma3pay.services.catalog_service import RouteCatalog
from ma3pay.services.fare_service import FareResolver, build_context
from ma3pay.services.ledger_cache import WalletLedgerCache
from ma3pay.services.topup_service import TopUpOrchestrator, TopUpSession
from ma3pay.utils.errors import (
    AlreadyInProgressError,
    AppError,
    ConflictError,
    InsufficientFundsError,
    InvalidInputError,
)
from ma3pay.utils.time import Clock, SystemClock

logger = logging.getLogger(__name__)


def normalise_identifier(identifier: str) -> str:
    """Number plates and tag ids are compared trimmed and upper-cased."""
    return (identifier or "").strip().upper()


class FarePaymentSession:
    """One fare payment attempt, owned by a single caller."""

    def __init__(
        self,
        catalog: RouteCatalog,
        resolver: FareResolver,
        ledger: WalletLedgerCache,
        top_ups: TopUpOrchestrator,
        clock: Clock,
        peak_windows: list[tuple[time, time]] | None = None,
        tz: str = "UTC",
    ) -> None:
        self.id = f"FP-{uuid4().hex[:12]}"
        self.catalog = catalog
        self.resolver = resolver
        self.ledger = ledger
        self.top_ups = top_ups
        self.clock = clock
        self.peak_windows = peak_windows or []
        self.tz = tz

        self.phase = FarePhase.IDENTIFYING
        self.identifier = ""
        self.route: Route | None = None
        self.quote: FareQuote | None = None
        self.shortfall = Decimal("0")
        self.record: TransactionRecord | None = None
        self.top_up_session: TopUpSession | None = None
        self.error: AppError | None = None
        self.created_at: datetime = clock.now()
        self._finalize_lock = threading.Lock()
        self._debited = False

    def identify(self, route_id: str, identifier: str) -> FarePhase:
        """Capture the vehicle identifier and route (IDENTIFYING -> QUOTED)."""
        self._require(FarePhase.IDENTIFYING, action="identify the vehicle")
        normalised = normalise_identifier(identifier)
        if not normalised or not route_id:
            raise InvalidInputError("Please enter numberplate and select a route")

        self.route = self.catalog.require(route_id)
        self.identifier = normalised
        self.phase = FarePhase.QUOTED
        return self.phase

    def quote_fare(self, peak: bool | None = None, high_demand: bool = False) -> FareQuote:
        """Price the route (QUOTED -> AFFORDING).

        ``peak`` forces a tier; otherwise the tier comes from the configured
        peak-hour windows and the ``high_demand`` flag.
        """
        self._require(FarePhase.QUOTED, action="quote the fare")
        at = self.clock.now()
        if peak is None:
            context = build_context(at, self.peak_windows, self.tz, high_demand=high_demand)
        else:
            context = FareContext(at=at, peak=peak)

        self.quote = self.resolver.resolve(self.route, context)
        self.phase = FarePhase.AFFORDING
        return self.quote

    def check_affordability(self) -> FarePhase:
        """Compare the current ledger balance with the quote (AFFORDING -> FINALIZING | AWAITING_TOP_UP)."""
        self._require(FarePhase.AFFORDING, action="check the balance")
        price = self.quote.price
        balance = self.ledger.get_balance().amount
        if balance >= price:
            self.shortfall = Decimal("0")
            self.error = None
            self.phase = FarePhase.FINALIZING
        else:
            self.shortfall = price - balance
            self.error = InsufficientFundsError(required=price, available=balance)
            self.phase = FarePhase.AWAITING_TOP_UP
            logger.info("Fare %s short by %s; awaiting top-up", self.id, self.shortfall)
        return self.phase

    def begin_top_up(self, phone: str, amount: Decimal | None = None) -> TopUpSession:
        """Create the top-up session for this payment; run it with ``complete_top_up``."""
        self._require(FarePhase.AWAITING_TOP_UP, action="top up")
        if self.top_up_session is not None and not self.top_up_session.done:
            raise AlreadyInProgressError("A top-up is already in progress for this payment")

        target = amount if amount is not None else max(self.shortfall, Decimal("0"))
        if target <= 0:
            target = self.quote.price
        self.top_up_session = self.top_ups.start_top_up(target, phone)
        return self.top_up_session

    async def complete_top_up(self, session: TopUpSession) -> FarePhase:
        """Run ``session`` and re-check affordability when it is confirmed."""
        await self.top_ups.run(session)
        if self.phase != FarePhase.AWAITING_TOP_UP or session is not self.top_up_session:
            return self.phase

        if session.outcome == TopUpOutcome.CONFIRMED:
            self.error = None
            self.phase = FarePhase.AFFORDING
            return self.check_affordability()

        self.error = session.error()
        return self.phase

    async def top_up(self, phone: str, amount: Decimal | None = None) -> FarePhase:
        """Top up and wait for the outcome."""
        session = self.begin_top_up(phone, amount)
        return await self.complete_top_up(session)

    def finalize(self) -> TransactionRecord:
        """Debit the fare once (FINALIZING -> DONE).

        Raises:
            AlreadyInProgressError: if a debit for this session is running or done.
            InsufficientFundsError: if the balance dropped since the check; the
                session goes back to AWAITING_TOP_UP with nothing debited.
        """
        if self._debited or not self._finalize_lock.acquire(blocking=False):
            raise AlreadyInProgressError()
        try:
            if self._debited:
                raise AlreadyInProgressError()
            self._require(FarePhase.FINALIZING, action="pay")

            price = self.quote.price
            record = TransactionRecord(
                id=f"TR-{uuid4().hex[:12]}",
                kind=TransactionKind.FARE_PAYMENT,
                amount=price,
                occurred_at=self.clock.now(),
                description=f"Trip {self.route.name}",
                status=PaymentStatus.PENDING,
                route=self.route.name,
            )
            try:
                self.ledger.apply_optimistic(-price, record)
            except InsufficientFundsError as exc:
                self.shortfall = price - exc.available
                self.error = exc
                self.phase = FarePhase.AWAITING_TOP_UP
                raise

            self._debited = True
            self.record = record
            self.error = None
            self.phase = FarePhase.DONE
            logger.info("Fare %s paid: %s on %s (%s)", self.id, price, self.route.id, record.id)
            return record
        finally:
            self._finalize_lock.release()

    def cancel(self) -> FarePhase:
        """Abandon the payment (any phase before DONE -> ABORTED)."""
        if self.phase == FarePhase.ABORTED:
            return self.phase
        if self._finalize_lock.locked():
            raise AlreadyInProgressError()
        if self.phase == FarePhase.DONE:
            raise ConflictError("Payment already completed", code="INVALID_TRANSITION")

        if self.top_up_session is not None:
            self.top_up_session.cancel()
        self.phase = FarePhase.ABORTED
        logger.info("Fare %s cancelled", self.id)
        return self.phase

    def to_response(self) -> FarePaymentSessionResponse:
        return FarePaymentSessionResponse(
            id=self.id,
            phase=self.phase,
            identifier=self.identifier,
            route=self.route,
            quote=self.quote,
            shortfall=self.shortfall,
            record=self.record,
            top_up=self.top_up_session.to_response() if self.top_up_session else None,
            error=self.error.to_dict() if self.error else None,
            created_at=self.created_at,
        )

    def _require(self, phase: FarePhase, action: str) -> None:
        if self.phase != phase:
            raise ConflictError(
                f"Cannot {action} while payment is {self.phase.value}",
                code="INVALID_TRANSITION",
            )


class FarePaymentService:
    """Entry point for fare payments; every attempt gets a new session."""

    def __init__(
        self,
        catalog: RouteCatalog,
        resolver: FareResolver,
        ledger: WalletLedgerCache,
        top_ups: TopUpOrchestrator,
        clock: Clock | None = None,
        peak_windows: list[tuple[time, time]] | None = None,
        tz: str = "UTC",
    ) -> None:
        self.catalog = catalog
        self.resolver = resolver
        self.ledger = ledger
        self.top_ups = top_ups
        self.clock = clock or SystemClock()
        self.peak_windows = peak_windows or []
        self.tz = tz

    def start_fare_payment(self, route_id: str, identifier: str) -> FarePaymentSession:
        """Open a session for ``route_id`` and the vehicle ``identifier``.

        Raises:
            RouteNotFoundError: if the route is unknown; no session is created.
            InvalidInputError: if the identifier is empty.
        """
        self.catalog.require(route_id)
        session = FarePaymentSession(
            catalog=self.catalog,
            resolver=self.resolver,
            ledger=self.ledger,
            top_ups=self.top_ups,
            clock=self.clock,
            peak_windows=self.peak_windows,
            tz=self.tz,
        )
        session.identify(route_id, identifier)
        logger.info("Fare %s started for route %s", session.id, route_id)
        return session
