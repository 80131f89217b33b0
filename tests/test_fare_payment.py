"""Fare payment state machine tests."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from ma3pay.config import DEFAULT_ROUTES
from ma3pay.schemas.fare import FarePhase
from ma3pay.schemas.topup import TopUpOutcome
from ma3pay.schemas.wallet import PaymentStatus, TransactionKind
from ma3pay.services.catalog_service import RouteCatalog
from ma3pay.services.fare_payment_service import FarePaymentService
from ma3pay.services.fare_service import FareResolver
from ma3pay.services.ledger_cache import WalletLedgerCache
from ma3pay.services.topup_service import TopUpOrchestrator
from ma3pay.utils.errors import (
    AlreadyInProgressError,
    ConflictError,
    InsufficientFundsError,
    InvalidInputError,
    RouteNotFoundError,
)
from tests.conftest import FakeClock, FakeWalletService

PHONE = "0712345678"


def _service(balance: str, clock: FakeClock, wallet: FakeWalletService) -> FarePaymentService:
    ledger = WalletLedgerCache(initial_balance=Decimal(balance), clock=clock)
    catalog = RouteCatalog.from_config(DEFAULT_ROUTES)
    return FarePaymentService(
        catalog=catalog,
        resolver=FareResolver(catalog),
        ledger=ledger,
        top_ups=TopUpOrchestrator(ledger=ledger, wallet=wallet, clock=clock),
        clock=clock,
    )


def test_affordable_fare_goes_straight_to_done(clock: FakeClock, wallet: FakeWalletService) -> None:
    """Balance 200, Iten standard fare 150: one debit, balance 50."""
    service = _service("200", clock, wallet)
    session = service.start_fare_payment("R6", " kdg 123a ")
    assert session.phase == FarePhase.QUOTED
    assert session.identifier == "KDG 123A"

    quote = session.quote_fare()
    assert quote.price == Decimal("150")
    assert session.phase == FarePhase.AFFORDING
    assert session.check_affordability() == FarePhase.FINALIZING

    record = session.finalize()

    assert session.phase == FarePhase.DONE
    assert service.ledger.get_balance().amount == Decimal("50")
    fares = [r for r in service.ledger.history() if r.kind == TransactionKind.FARE_PAYMENT]
    assert len(fares) == 1
    assert fares[0].amount == Decimal("150")
    assert fares[0].status == PaymentStatus.PENDING
    assert record.route == "Town - Iten"
    assert wallet.network_calls == 0


def test_shortfall_tops_up_then_finalizes(clock: FakeClock, wallet: FakeWalletService) -> None:
    """Balance 50, Moi University fare 80: a deposit of 80 brings it to 130, then 50 after the fare."""
    service = _service("50", clock, wallet)
    session = service.start_fare_payment("R3", "KBZ 001X")
    session.quote_fare(peak=False)

    assert session.check_affordability() == FarePhase.AWAITING_TOP_UP
    assert session.shortfall == Decimal("30")
    assert isinstance(session.error, InsufficientFundsError)

    wallet.balances = ["50", "130"]
    phase = asyncio.run(session.top_up(PHONE, amount=Decimal("80")))

    assert phase == FarePhase.FINALIZING
    assert wallet.deposits == [(Decimal("80"), "254712345678")]
    assert session.top_up_session.outcome == TopUpOutcome.CONFIRMED
    assert service.ledger.get_balance().amount == Decimal("130")

    session.finalize()
    assert service.ledger.get_balance().amount == Decimal("50")
    assert session.phase == FarePhase.DONE


def test_failed_top_up_stays_awaiting(clock: FakeClock, wallet: FakeWalletService) -> None:
    service = _service("10", clock, wallet)
    session = service.start_fare_payment("R1", "KAA 111A")
    session.quote_fare(peak=True)
    session.check_affordability()
    wallet.balances = ["10"]

    phase = asyncio.run(session.top_up(PHONE, amount=Decimal("100")))

    assert phase == FarePhase.AWAITING_TOP_UP
    assert session.top_up_session.outcome == TopUpOutcome.TIMED_OUT
    assert session.error.code == "TIMEOUT"
    assert service.ledger.get_balance().amount == Decimal("10")

    # A fresh attempt gets a fresh top-up session.
    previous = session.top_up_session
    wallet.balances = ["10", "110"]
    wallet.balance_calls = 0
    assert asyncio.run(session.top_up(PHONE, amount=Decimal("100"))) == FarePhase.FINALIZING
    assert session.top_up_session is not previous


def test_double_finalize_debits_once(clock: FakeClock, wallet: FakeWalletService) -> None:
    service = _service("200", clock, wallet)
    session = service.start_fare_payment("R1", "KAA 111A")
    session.quote_fare(peak=False)
    session.check_affordability()

    session.finalize()
    with pytest.raises(AlreadyInProgressError):
        session.finalize()

    assert service.ledger.get_balance().amount == Decimal("150")
    assert len(service.ledger.history()) == 1


def test_balance_drop_before_finalize_returns_to_awaiting(clock: FakeClock, wallet: FakeWalletService) -> None:
    """A refresh that lowers the balance after the check makes finalize roll back to AWAITING_TOP_UP."""
    service = _service("100", clock, wallet)
    session = service.start_fare_payment("R3", "KBZ 001X")
    session.quote_fare(peak=False)
    assert session.check_affordability() == FarePhase.FINALIZING

    service.ledger.reconcile(Decimal("20"), [])

    with pytest.raises(InsufficientFundsError):
        session.finalize()
    assert session.phase == FarePhase.AWAITING_TOP_UP
    assert session.shortfall == Decimal("60")
    assert service.ledger.get_balance().amount == Decimal("20")
    assert service.ledger.history() == []


def test_unknown_route_creates_no_session(clock: FakeClock, wallet: FakeWalletService) -> None:
    service = _service("100", clock, wallet)

    with pytest.raises(RouteNotFoundError):
        service.start_fare_payment("R99", "KAA 111A")

    assert service.ledger.get_balance().amount == Decimal("100")
    assert service.ledger.history() == []


def test_empty_identifier_rejected(clock: FakeClock, wallet: FakeWalletService) -> None:
    service = _service("100", clock, wallet)
    with pytest.raises(InvalidInputError):
        service.start_fare_payment("R1", "   ")


def test_out_of_order_transitions_rejected(clock: FakeClock, wallet: FakeWalletService) -> None:
    service = _service("100", clock, wallet)
    session = service.start_fare_payment("R1", "KAA 111A")

    with pytest.raises(ConflictError):
        session.check_affordability()
    with pytest.raises(ConflictError):
        session.finalize()
    with pytest.raises(ConflictError):
        session.begin_top_up(PHONE)
    assert session.phase == FarePhase.QUOTED


def test_cancel_aborts_and_stops_top_up(clock: FakeClock, wallet: FakeWalletService) -> None:
    service = _service("0", clock, wallet)
    session = service.start_fare_payment("R1", "KAA 111A")
    session.quote_fare(peak=False)
    session.check_affordability()
    top_up = session.begin_top_up(PHONE)

    assert session.cancel() == FarePhase.ABORTED
    asyncio.run(session.complete_top_up(top_up))

    assert top_up.outcome == TopUpOutcome.ABORTED
    assert session.phase == FarePhase.ABORTED
    assert wallet.network_calls == 0
    with pytest.raises(ConflictError):
        session.quote_fare()


def test_cancel_after_done_rejected(clock: FakeClock, wallet: FakeWalletService) -> None:
    service = _service("100", clock, wallet)
    session = service.start_fare_payment("R1", "KAA 111A")
    session.quote_fare(peak=False)
    session.check_affordability()
    session.finalize()

    with pytest.raises(ConflictError):
        session.cancel()
    assert session.phase == FarePhase.DONE


def test_session_response_shape(clock: FakeClock, wallet: FakeWalletService) -> None:
    service = _service("10", clock, wallet)
    session = service.start_fare_payment("R2", "KCA 222B")
    session.quote_fare(peak=False)
    session.check_affordability()

    response = session.to_response()

    assert response.phase == FarePhase.AWAITING_TOP_UP
    assert response.shortfall == Decimal("50")
    assert response.error["code"] == "INSUFFICIENT_FUNDS"
    assert response.top_up is None


def test_top_up_defaults_to_shortfall(clock: FakeClock, wallet: FakeWalletService) -> None:
    service = _service("50", clock, wallet)
    session = service.start_fare_payment("R3", "KBZ 001X")
    session.quote_fare(peak=False)
    session.check_affordability()
    wallet.balances = ["50", "80"]

    assert asyncio.run(session.top_up(PHONE)) == FarePhase.FINALIZING
    assert wallet.deposits == [(Decimal("30"), "254712345678")]
    assert service.ledger.get_balance().amount == Decimal("80")


def test_second_fare_not_confirmed_by_unreconciled_first_fare(clock: FakeClock, wallet: FakeWalletService) -> None:
    """Server stays at 100 while the first fare is still pending locally; the top-up never lands."""
    service = _service("0", clock, wallet)
    service.ledger.reconcile(Decimal("100"), [])
    wallet.balances = ["100"]

    first = service.start_fare_payment("R3", "KBZ 001X")
    first.quote_fare(peak=False)
    first.check_affordability()
    first.finalize()
    assert service.ledger.get_balance().amount == Decimal("20")

    second = service.start_fare_payment("R3", "KBZ 001X")
    second.quote_fare(peak=False)
    assert second.check_affordability() == FarePhase.AWAITING_TOP_UP
    assert second.shortfall == Decimal("60")

    phase = asyncio.run(second.top_up(PHONE))

    assert phase == FarePhase.AWAITING_TOP_UP
    assert second.top_up_session.outcome == TopUpOutcome.TIMED_OUT
    assert second.top_up_session.starting_balance == Decimal("100")
    assert service.ledger.get_balance().amount == Decimal("20")
    kinds = [record.kind for record in service.ledger.history()]
    assert kinds == [TransactionKind.FARE_PAYMENT]
