"""Core object graph: one place that wires services to a wallet service and clock."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache
from typing import Any, Generic, TypeVar

import httpx

from ma3pay.config import Settings, settings
from ma3pay.schemas.wallet import ReconciliationReport
from ma3pay.services.catalog_service import RouteCatalog
from ma3pay.services.fare_payment_service import FarePaymentService, FarePaymentSession
from ma3pay.services.fare_service import FareResolver
from ma3pay.services.ledger_cache import WalletLedgerCache
from ma3pay.services.topup_service import TopUpOrchestrator, TopUpSession
from ma3pay.services.transfer_service import TransferService
from ma3pay.services.wallet_client import WalletService, WalletServiceClient
from ma3pay.utils.errors import NotFoundError, ReconciliationMismatchError
from ma3pay.utils.time import Clock, SystemClock, parse_time_windows

logger = logging.getLogger(__name__)

SessionT = TypeVar("SessionT", FarePaymentSession, TopUpSession)


class SessionRegistry(Generic[SessionT]):
    """Bounded in-memory lookup of live sessions by id; the oldest is evicted first."""

    def __init__(self, label: str, max_entries: int = 256) -> None:
        self.label = label
        self.max_entries = max(1, max_entries)
        self._sessions: dict[str, SessionT] = {}
        self._lock = threading.Lock()

    def add(self, session: SessionT) -> SessionT:
        with self._lock:
            if len(self._sessions) >= self.max_entries:
                oldest_id = next(iter(self._sessions))
                self._sessions.pop(oldest_id, None)
            self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> SessionT:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"{self.label} {session_id!r}")
        return session

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


@dataclass
class CoreContext:
    """Everything the HTTP layer and jobs need, built once per process."""

    config: Settings
    clock: Clock
    wallet: WalletService
    ledger: WalletLedgerCache
    catalog: RouteCatalog
    resolver: FareResolver
    top_ups: TopUpOrchestrator
    fares: FarePaymentService
    transfers: TransferService
    fare_sessions: SessionRegistry[FarePaymentSession] = field(
        default_factory=lambda: SessionRegistry("Fare payment")
    )
    top_up_sessions: SessionRegistry[TopUpSession] = field(
        default_factory=lambda: SessionRegistry("Top-up")
    )

    async def refresh(self, strict: bool = False) -> ReconciliationReport:
        """Pull balance and activity from the wallet service and reconcile the ledger.

        With ``strict`` set, stale unconfirmed records raise
        ``ReconciliationMismatchError`` after the reconcile has been applied.
        """
        balance = await self.wallet.get_balance()
        activity = await self.wallet.get_activity()
        report = self.ledger.reconcile(balance.amount, activity)
        if strict and report.mismatched:
            raise ReconciliationMismatchError(report.mismatched)
        return report

    async def aclose(self) -> None:
        close = getattr(self.wallet, "aclose", None)
        if close is not None:
            await close()


def build_context(
    config: Settings,
    wallet: WalletService | None = None,
    clock: Clock | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> CoreContext:
    """Wire the core from ``config``; ``wallet``, ``clock`` and ``transport`` are injectable."""
    clock = clock or SystemClock()
    if wallet is None:
        wallet = WalletServiceClient(
            base_url=config.wallet_api_url,
            token=config.wallet_api_token,
            timeout_seconds=config.wallet_http_timeout_seconds,
            clock=clock,
            transport=transport,
        )

    ledger = WalletLedgerCache(
        clock=clock,
        match_window=timedelta(seconds=config.reconciliation_match_window_seconds),
        grace_period=timedelta(seconds=config.reconciliation_grace_seconds),
    )
    catalog = RouteCatalog.from_config(config.routes)
    resolver = FareResolver(catalog)
    top_ups = TopUpOrchestrator(
        ledger=ledger,
        wallet=wallet,
        clock=clock,
        poll_interval_seconds=config.topup_poll_interval_seconds,
        max_attempts=config.topup_max_attempts,
        epsilon=config.topup_confirmation_epsilon,
    )
    fares = FarePaymentService(
        catalog=catalog,
        resolver=resolver,
        ledger=ledger,
        top_ups=top_ups,
        clock=clock,
        peak_windows=parse_time_windows(config.peak_hours),
        tz=config.timezone,
    )
    transfers = TransferService(ledger=ledger, wallet=wallet, clock=clock)

    logger.info("Core context built: %s routes, wallet service %s", len(catalog), config.wallet_api_url)
    return CoreContext(
        config=config,
        clock=clock,
        wallet=wallet,
        ledger=ledger,
        catalog=catalog,
        resolver=resolver,
        top_ups=top_ups,
        fares=fares,
        transfers=transfers,
    )


@lru_cache(maxsize=1)
def get_context() -> CoreContext:
    """Return the process-wide core context built from environment settings."""
    return build_context(settings)


def describe(context: CoreContext) -> dict[str, Any]:
    """Summarise a context for the health endpoint."""
    return {
        "routes": len(context.catalog),
        "fare_sessions": len(context.fare_sessions),
        "top_up_sessions": len(context.top_up_sessions),
        "currency": context.config.currency,
    }
