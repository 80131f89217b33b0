"""Local, optimistic mirror of the authoritative wallet ledger."""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Iterable
from datetime import timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from ma3pay.schemas.wallet import (
    DailySpend,
    PaymentStatus,
    ReconciliationReport,
    TransactionKind,
    TransactionRecord,
    WalletBalance,
)
from ma3pay.utils.errors import ConflictError, InsufficientFundsError, InvalidInputError, NotFoundError
from ma3pay.utils.time import Clock, SystemClock, last_n_days

logger = logging.getLogger(__name__)

WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


class WalletLedgerCache:
    """Tentative wallet balance plus transaction history.

    Every read-modify-write of the balance happens under one re-entrant lock,
    so a background refresh and an in-flight fare debit never interleave.
    The balance never goes negative: offending mutations are rejected whole.

    Records created here (optimistic debits, credits and reversals) are
    tracked separately from records copied in from the server, because only
    local records can still be waiting for server confirmation.
    """

    def __init__(
        self,
        initial_balance: Decimal = Decimal("0"),
        clock: Clock | None = None,
        match_window: timedelta = timedelta(minutes=10),
        grace_period: timedelta = timedelta(minutes=5),
    ) -> None:
        if initial_balance < 0:
            raise InvalidInputError("Initial balance cannot be negative")
        self.clock = clock or SystemClock()
        self.match_window = match_window
        self.grace_period = grace_period
        self._lock = threading.RLock()
        self._seq = itertools.count()
        self._amount = Decimal(initial_balance)
        self._as_of = self.clock.now()
        self._entries: dict[str, tuple[int, TransactionRecord]] = {}
        self._local_ids: set[str] = set()

    def get_balance(self) -> WalletBalance:
        """Return the last known balance without any I/O."""
        with self._lock:
            return WalletBalance(amount=self._amount, as_of=self._as_of)

    def history(self, limit: int | None = None) -> list[TransactionRecord]:
        """Return records newest first; equal timestamps keep latest insertion first."""
        with self._lock:
            ordered = sorted(
                self._entries.values(),
                key=lambda item: (item[1].occurred_at, item[0]),
                reverse=True,
            )
            records = [record.model_copy() for _, record in ordered]
        return records[:limit] if limit else records

    def get_record(self, record_id: str) -> TransactionRecord:
        """Return one record by id or raise NotFoundError."""
        with self._lock:
            entry = self._entries.get(record_id)
            if entry is None:
                raise NotFoundError(f"Transaction {record_id!r}")
            return entry[1].model_copy()

    def apply_optimistic(self, delta: Decimal, record: TransactionRecord) -> WalletBalance:
        """Adjust the balance by ``delta`` and prepend ``record`` atomically.

        Raises:
            InsufficientFundsError: if a debit would take the balance below zero.
                Nothing is changed in that case.
            ConflictError: if a record with the same id was already applied.
            InvalidInputError: if ``record`` does not describe ``delta``.
        """
        delta = Decimal(delta)
        if record.amount != abs(delta) or (delta != 0 and record.signed_amount != delta):
            raise InvalidInputError(
                f"Record {record.id} ({record.kind.value} {record.amount}) does not match delta {delta}"
            )

        with self._lock:
            if record.id in self._entries:
                raise ConflictError(f"Transaction {record.id} already applied", code="DUPLICATE_TRANSACTION")

            updated = self._amount + delta
            if updated < 0 and delta < 0:
                raise InsufficientFundsError(required=-delta, available=self._amount)

            self._amount = updated
            self._as_of = self.clock.now()
            self._insert_local(record)
            logger.debug("Applied %s %s (%s), balance now %s", record.kind.value, delta, record.id, updated)
            return WalletBalance(amount=self._amount, as_of=self._as_of)

    def reverse(self, record_id: str, reason: str) -> TransactionRecord:
        """Fail a debit and credit it back with an explicit reversal record."""
        with self._lock:
            entry = self._entries.get(record_id)
            if entry is None:
                raise NotFoundError(f"Transaction {record_id!r}")
            seq, original = entry
            if original.kind.is_credit:
                raise InvalidInputError("Only debits can be reversed")
            if original.status == PaymentStatus.FAILED:
                raise ConflictError(f"Transaction {record_id} already reversed", code="ALREADY_REVERSED")

            self._entries[record_id] = (seq, original.model_copy(update={"status": PaymentStatus.FAILED}))
            self._local_ids.add(record_id)
            reversal = self._reversal_for(original, reason)
            self._amount += reversal.amount
            self._as_of = self.clock.now()
            self._insert_local(reversal)
            logger.info("Reversed %s (%s): %s", record_id, original.amount, reason)
            return reversal.model_copy()

    def reconcile(
        self,
        server_balance: Decimal,
        server_history: Iterable[TransactionRecord],
    ) -> ReconciliationReport:
        """Replace the tentative view with the server's authoritative one.

        Local pending records are matched to server records by id, then by
        kind and amount within ``match_window``:

        * matched and successful: the server's copy replaces the local one;
        * matched and failed: the local record is marked failed and a
          compensating reversal entry is added for the audit trail;
        * unmatched, or still pending on the server: the local record stays
          pending and its delta stays applied on top of the server balance.
          Those older than ``grace_period`` are reported as mismatched.
        """
        server_balance = Decimal(server_balance)
        if server_balance < 0:
            raise InvalidInputError(f"Server balance cannot be negative: {server_balance}")
        server_records = list(server_history)
        server_ids = {record.id for record in server_records}

        with self._lock:
            now = self.clock.now()
            local = [
                record
                for _, record in sorted(self._entries.values(), key=lambda item: item[0])
                if record.id in self._local_ids
            ]
            matches = self._match_pending(
                [record for record in local if record.status == PaymentStatus.PENDING],
                server_records,
            )

            report = ReconciliationReport(balance=WalletBalance(amount=server_balance, as_of=now))
            kept: list[TransactionRecord] = []
            hidden: set[str] = set()
            overlay = Decimal("0")
            unmatched_debits: list[str] = []

            for record in local:
                if record.status != PaymentStatus.PENDING:
                    if record.id not in server_ids:
                        kept.append(record)
                    continue

                match = matches.get(record.id)
                if match is None or match.status == PaymentStatus.PENDING:
                    kept.append(record)
                    report.pending.append(record.id)
                    overlay += record.signed_amount
                    if match is None and not record.kind.is_credit:
                        unmatched_debits.append(record.id)
                    if match is not None:
                        hidden.add(match.id)
                    if match is None and now - record.occurred_at > self.grace_period:
                        report.mismatched.append(record.id)
                    continue

                if match.status == PaymentStatus.FAILED:
                    hidden.add(match.id)
                    kept.append(record.model_copy(update={"status": PaymentStatus.FAILED}))
                    reversal = self._reversal_for(record, "rejected by server")
                    if (
                        not record.kind.is_credit
                        and reversal.id not in server_ids
                        and reversal.id not in self._entries
                    ):
                        kept.append(reversal)
                        report.reversals.append(reversal.id)
                    report.failed.append(record.id)
                else:
                    report.confirmed.append(record.id)

            effective = server_balance + overlay
            if effective < 0:
                logger.warning(
                    "Pending debits exceed server balance %s; trusting server balance", server_balance
                )
                effective = server_balance
                report.mismatched.extend(rid for rid in unmatched_debits if rid not in report.mismatched)

            kept_ids = {record.id for record in kept}
            entries: dict[str, tuple[int, TransactionRecord]] = {}
            for record in reversed(server_records):
                if record.id in hidden or record.id in kept_ids:
                    continue
                entries[record.id] = (next(self._seq), record.model_copy())
            for record in kept:
                entries[record.id] = (next(self._seq), record.model_copy())

            self._entries = entries
            self._local_ids = kept_ids
            self._amount = effective
            self._as_of = now
            report.balance = WalletBalance(amount=effective, as_of=now)

        if report.mismatched:
            logger.warning(
                "Reconciliation left %s unconfirmed record(s): %s",
                len(report.mismatched),
                report.mismatched,
            )
        if report.failed:
            logger.warning("Server rejected %s local record(s): %s", len(report.failed), report.failed)
        logger.info(
            "Reconciled ledger: balance=%s confirmed=%s pending=%s",
            effective,
            len(report.confirmed),
            len(report.pending),
        )
        return report

    def fare_spend_by_day(self, days: int = 7, tz: str = "UTC") -> list[DailySpend]:
        """Sum successful fare payments per weekday over the last ``days`` days."""
        zone = ZoneInfo(tz)
        start, end = last_n_days(self.clock.now(), days)
        totals = {name: Decimal("0") for name in WEEKDAYS}
        for record in self.history():
            if record.kind != TransactionKind.FARE_PAYMENT or record.status != PaymentStatus.SUCCESS:
                continue
            if start <= record.occurred_at <= end:
                totals[WEEKDAYS[record.occurred_at.astimezone(zone).weekday()]] += record.amount
        return [DailySpend(name=name, amount=amount) for name, amount in totals.items()]

    def _insert_local(self, record: TransactionRecord) -> None:
        self._entries[record.id] = (next(self._seq), record.model_copy())
        self._local_ids.add(record.id)

    def _match_pending(
        self,
        pending: list[TransactionRecord],
        server_records: list[TransactionRecord],
    ) -> dict[str, TransactionRecord]:
        matches: dict[str, TransactionRecord] = {}
        claimed: set[str] = set()
        by_id = {record.id: record for record in server_records}

        for record in pending:
            server = by_id.get(record.id)
            if server is not None:
                matches[record.id] = server
                claimed.add(server.id)

        # Server rows already mirrored by an earlier reconcile belong to older activity.
        for record in pending:
            if record.id in matches:
                continue
            for server in server_records:
                if server.id in claimed or server.id in self._entries:
                    continue
                if server.kind != record.kind or server.amount != record.amount:
                    continue
                if abs(server.occurred_at - record.occurred_at) <= self.match_window:
                    matches[record.id] = server
                    claimed.add(server.id)
                    break
        return matches

    def _reversal_for(self, original: TransactionRecord, reason: str) -> TransactionRecord:
        return TransactionRecord(
            id=f"RV-{original.id}",
            kind=TransactionKind.REVERSAL,
            amount=original.amount,
            occurred_at=self.clock.now(),
            description=f"Reversal of {original.id}: {reason}",
            status=PaymentStatus.SUCCESS,
            route=original.route,
        )
