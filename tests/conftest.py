"""Pytest fixtures for core tests."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import pytest
from fastapi.testclient import TestClient

from ma3pay.schemas.wallet import TransactionRecord, WalletBalance
from ma3pay.utils.errors import WalletServiceError


def _set_default_env() -> None:
    os.environ.setdefault("WALLET_API_URL", "http://wallet.test")
    os.environ.setdefault("ENABLE_SCHEDULER", "false")
    os.environ.setdefault("TIMEZONE", "UTC")
    os.environ.setdefault("PEAK_HOURS", "")


_set_default_env()

# Tuesday, outside any peak window.
START = datetime(2026, 3, 3, 12, 0, tzinfo=UTC)


class FakeClock:
    """Manually driven clock; ``sleep`` advances time instead of waiting."""

    def __init__(self, start: datetime = START) -> None:
        self._now = start
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)


class FakeWalletService:
    """Scripted wallet service that records every call.

    ``balances`` is consumed one entry per ``get_balance`` call and the last
    entry repeats; an exception instance in the script is raised instead.
    """

    def __init__(self, clock: FakeClock, balances: list[Any] | None = None) -> None:
        self.clock = clock
        self.balances: list[Any] = list(balances or [Decimal("0")])
        self.activity: list[TransactionRecord] = []
        self.deposit_error: WalletServiceError | None = None
        self.transfer_error: WalletServiceError | None = None
        self.on_balance: Callable[[int], None] | None = None
        self.balance_calls = 0
        self.activity_calls = 0
        self.deposits: list[tuple[Decimal, str]] = []
        self.transfers: list[tuple[str, Decimal, str | None]] = []

    async def get_balance(self) -> WalletBalance:
        self.balance_calls += 1
        index = min(self.balance_calls - 1, len(self.balances) - 1)
        value = self.balances[index]
        if self.on_balance is not None:
            self.on_balance(self.balance_calls)
        if isinstance(value, Exception):
            raise value
        return WalletBalance(amount=Decimal(value), as_of=self.clock.now())

    async def get_activity(self) -> list[TransactionRecord]:
        self.activity_calls += 1
        return list(self.activity)

    async def deposit(self, amount: Decimal, phone: str) -> dict[str, Any]:
        self.deposits.append((amount, phone))
        if self.deposit_error is not None:
            raise self.deposit_error
        return {"message": "STK push sent"}

    async def transfer(
        self,
        recipient_phone: str,
        amount: Decimal,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        self.transfers.append((recipient_phone, amount, idempotency_key))
        if self.transfer_error is not None:
            raise self.transfer_error
        return {"message": "Transfer successful"}

    @property
    def network_calls(self) -> int:
        return self.balance_calls + self.activity_calls + len(self.deposits) + len(self.transfers)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def wallet(clock: FakeClock) -> FakeWalletService:
    return FakeWalletService(clock)


@pytest.fixture()
def core(clock: FakeClock, wallet: FakeWalletService):
    """Core context wired to the fake wallet service and clock."""
    from ma3pay.config import Settings
    from ma3pay.context import build_context

    return build_context(Settings(), wallet=wallet, clock=clock)


@pytest.fixture()
def client(core) -> Iterator[TestClient]:
    """Create a FastAPI test client bound to the ``core`` fixture."""
    from ma3pay.dependencies import get_core
    from ma3pay.main import app

    app.dependency_overrides[get_core] = lambda: core
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
