"""Peer transfer tests."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from ma3pay.schemas.wallet import PaymentStatus, TransactionKind
from ma3pay.services.ledger_cache import WalletLedgerCache
from ma3pay.services.transfer_service import TransferService
from ma3pay.utils.errors import (
    GatewayRejectedError,
    InsufficientFundsError,
    InvalidInputError,
    UncertainOutcomeError,
    WalletServiceError,
)
from tests.conftest import FakeClock, FakeWalletService


@pytest.fixture()
def ledger(clock: FakeClock) -> WalletLedgerCache:
    return WalletLedgerCache(initial_balance=Decimal("500"), clock=clock)


@pytest.fixture()
def service(ledger: WalletLedgerCache, wallet: FakeWalletService, clock: FakeClock) -> TransferService:
    return TransferService(ledger=ledger, wallet=wallet, clock=clock)


def test_transfer_debits_and_sends_idempotency_key(
    service: TransferService,
    ledger: WalletLedgerCache,
    wallet: FakeWalletService,
) -> None:
    record = asyncio.run(service.send("0798 765 432", Decimal("200")))

    assert record.kind == TransactionKind.TRANSFER_OUT
    assert record.status == PaymentStatus.PENDING
    assert ledger.get_balance().amount == Decimal("300")
    assert wallet.transfers == [("254798765432", Decimal("200"), record.id)]


def test_rejected_transfer_is_reversed(
    service: TransferService,
    ledger: WalletLedgerCache,
    wallet: FakeWalletService,
) -> None:
    wallet.transfer_error = WalletServiceError("Recipient not found", upstream_status=404)

    with pytest.raises(GatewayRejectedError) as exc_info:
        asyncio.run(service.send("0798765432", Decimal("200")))

    assert exc_info.value.message == "Recipient not found"
    assert ledger.get_balance().amount == Decimal("500")
    kinds = [(r.kind, r.status) for r in ledger.history()]
    assert (TransactionKind.REVERSAL, PaymentStatus.SUCCESS) in kinds
    assert (TransactionKind.TRANSFER_OUT, PaymentStatus.FAILED) in kinds


def test_timed_out_transfer_is_uncertain_and_not_retried(
    service: TransferService,
    ledger: WalletLedgerCache,
    wallet: FakeWalletService,
) -> None:
    wallet.transfer_error = WalletServiceError("Wallet service timed out", timed_out=True)

    with pytest.raises(UncertainOutcomeError) as exc_info:
        asyncio.run(service.send("0798765432", Decimal("200")))

    assert len(wallet.transfers) == 1
    assert ledger.get_balance().amount == Decimal("300")
    assert ledger.get_record(exc_info.value.record_id).status == PaymentStatus.PENDING


def test_transfer_checks_funds_before_calling_service(
    service: TransferService,
    wallet: FakeWalletService,
) -> None:
    with pytest.raises(InsufficientFundsError):
        asyncio.run(service.send("0798765432", Decimal("501")))
    assert wallet.transfers == []


@pytest.mark.parametrize(("phone", "amount"), [("0798", Decimal("10")), ("0798765432", Decimal("0"))])
def test_transfer_validates_input(
    service: TransferService,
    wallet: FakeWalletService,
    phone: str,
    amount: Decimal,
) -> None:
    with pytest.raises(InvalidInputError):
        asyncio.run(service.send(phone, amount))
    assert wallet.transfers == []
