"""HTTP client for the remote wallet service."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import httpx

from ma3pay.schemas.wallet import PaymentStatus, TransactionKind, TransactionRecord, WalletBalance
from ma3pay.utils.errors import WalletServiceError
from ma3pay.utils.time import Clock, SystemClock, parse_iso_datetime

logger = logging.getLogger(__name__)


class WalletService(Protocol):
    """Contract of the remote wallet service consumed by the core."""

    async def get_balance(self) -> WalletBalance: ...

    async def get_activity(self) -> list[TransactionRecord]: ...

    async def deposit(self, amount: Decimal, phone: str) -> dict[str, Any]: ...

    async def transfer(
        self,
        recipient_phone: str,
        amount: Decimal,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]: ...


def _json_amount(amount: Decimal) -> int | float:
    value = Decimal(amount)
    return int(value) if value == value.to_integral_value() else float(value)


def _error_message(response: httpx.Response, payload: Any) -> str:
    if isinstance(payload, dict):
        message = payload.get("error") or payload.get("message") or payload.get("error_message")
        if message:
            return str(message)
    return f"Wallet service returned HTTP {response.status_code}"


class WalletServiceClient:
    """Async wallet service client.

    httpx errors never leave this class: every failure is raised as
    ``WalletServiceError`` with ``timed_out`` set for timeouts.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout_seconds: float = 15.0,
        clock: Clock | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.clock = clock or SystemClock()
        self._client = httpx.AsyncClient(
            base_url=base_url.strip(),
            headers=headers,
            timeout=httpx.Timeout(max(1.0, timeout_seconds)),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning("Wallet service %s %s timed out", method, path)
            raise WalletServiceError("Wallet service timed out", timed_out=True) from exc
        except httpx.HTTPError as exc:
            logger.warning("Wallet service %s %s failed: %s", method, path, exc)
            raise WalletServiceError("Connection Error. Please try again.") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.is_error:
            raise WalletServiceError(_error_message(response, payload), upstream_status=response.status_code)
        return payload

    async def get_balance(self) -> WalletBalance:
        """Fetch the authoritative balance."""
        payload = await self._request("GET", "/wallet/balance")
        try:
            amount = Decimal(str(payload["balance"]))
        except (TypeError, KeyError, InvalidOperation) as exc:
            raise WalletServiceError("Invalid balance response from wallet service") from exc
        return WalletBalance(amount=amount, as_of=self.clock.now())

    async def get_activity(self) -> list[TransactionRecord]:
        """Fetch the authoritative transaction list, newest first."""
        payload = await self._request("GET", "/wallet/activity")
        if not isinstance(payload, list):
            logger.error("Invalid activity response: %r", payload)
            return []

        records = []
        for row in payload:
            record = self._to_record(row)
            if record is not None:
                records.append(record)
        return records

    async def deposit(self, amount: Decimal, phone: str) -> dict[str, Any]:
        """Ask the wallet service to start an STK push; success only means "push initiated"."""
        payload = await self._request(
            "POST",
            "/wallet/deposit",
            json={"amount": _json_amount(amount), "phone": phone},
        )
        return payload if isinstance(payload, dict) else {}

    async def transfer(
        self,
        recipient_phone: str,
        amount: Decimal,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        """Send money to another wallet. The idempotency key lets the server drop duplicates."""
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        payload = await self._request(
            "POST",
            "/wallet/transfer",
            json={"recipientPhone": recipient_phone, "amount": _json_amount(amount)},
            headers=headers,
        )
        return payload if isinstance(payload, dict) else {}

    def _to_record(self, row: Any) -> TransactionRecord | None:
        """Map one backend activity row; TRANSFER direction comes from the amount sign."""
        try:
            raw_amount = Decimal(str(row["amount"]))
            raw_type = str(row["type"])
            record_id = str(row["id"])
        except (TypeError, KeyError, InvalidOperation):
            logger.warning("Skipping malformed activity row: %r", row)
            return None

        if raw_type == "TRANSFER":
            kind = TransactionKind.TRANSFER_OUT if raw_amount < 0 else TransactionKind.TRANSFER_IN
        else:
            try:
                kind = TransactionKind(raw_type)
            except ValueError:
                logger.warning("Skipping activity row %s with unknown type %s", record_id, raw_type)
                return None

        try:
            status = PaymentStatus(str(row.get("status") or PaymentStatus.SUCCESS.value).upper())
        except ValueError:
            status = PaymentStatus.SUCCESS

        return TransactionRecord(
            id=record_id,
            kind=kind,
            amount=abs(raw_amount),
            occurred_at=parse_iso_datetime(row.get("createdAt"), default=self.clock.now()),
            description=row.get("description") or "",
            status=status,
            route=row.get("route"),
        )
