"""Custom exception hierarchy for the fare-payment core."""

from __future__ import annotations

from decimal import Decimal


class AppError(Exception):
    """Base application error with a stable machine-readable code."""

    def __init__(self, message: str, code: str, status_code: int = 400) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        """Serialize the error in the API standard shape."""
        return {"error": self.message, "code": self.code}


class NotFoundError(AppError):
    """Raised when a requested resource does not exist."""

    def __init__(self, resource: str, code: str = "NOT_FOUND") -> None:
        super().__init__(message=f"{resource} not found", code=code, status_code=404)


class RouteNotFoundError(NotFoundError):
    """Raised when a route id has no catalog entry."""

    def __init__(self, route_id: str) -> None:
        super().__init__(resource=f"Route {route_id!r}", code="ROUTE_NOT_FOUND")
        self.route_id = route_id


class InsufficientFundsError(AppError):
    """Raised when a debit would take the wallet balance below zero."""

    def __init__(self, required: Decimal, available: Decimal) -> None:
        super().__init__(
            message=f"Insufficient funds: need {required}, have {available}",
            code="INSUFFICIENT_FUNDS",
        )
        self.required = required
        self.available = available


class GatewayRejectedError(AppError):
    """Raised when the wallet service or payment gateway refuses a request.

    The message is the service's own text so the UI can show it verbatim.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="GATEWAY_REJECTED", status_code=502)


class ConfirmationTimeoutError(AppError):
    """Raised when a deposit was not observed within the polling budget.

    This is not a failure of the deposit: money may still arrive later.
    """

    def __init__(
        self,
        reason: str = (
            "Payment not confirmed yet. If you completed the STK prompt, "
            "wait a minute and refresh your balance."
        ),
    ) -> None:
        super().__init__(message=reason, code="TIMEOUT", status_code=504)


class UncertainOutcomeError(AppError):
    """Raised when a money-moving request timed out and its outcome is unknown.

    Callers must not retry; the pending record is settled by reconciliation.
    """

    def __init__(self, record_id: str) -> None:
        super().__init__(
            message=f"Outcome of {record_id} is unknown; check your history before retrying",
            code="UNCERTAIN",
            status_code=409,
        )
        self.record_id = record_id


class AlreadyInProgressError(AppError):
    """Raised when a one-shot step is invoked a second time."""

    def __init__(self, reason: str = "Payment is already being processed") -> None:
        super().__init__(message=reason, code="ALREADY_IN_PROGRESS", status_code=409)


class ReconciliationMismatchError(AppError):
    """Raised when local pending records are not confirmed by the server in time."""

    def __init__(self, record_ids: list[str]) -> None:
        super().__init__(
            message=f"Verify your history: {len(record_ids)} transaction(s) still unconfirmed",
            code="RECONCILIATION_MISMATCH",
            status_code=409,
        )
        self.record_ids = list(record_ids)


class ConflictError(AppError):
    """Raised on duplicate/conflicting operations."""

    def __init__(self, reason: str, code: str = "CONFLICT") -> None:
        super().__init__(message=reason, code=code, status_code=409)


class InvalidInputError(AppError):
    """Raised for request payload or parameter validation issues."""

    def __init__(self, reason: str) -> None:
        super().__init__(message=reason, code="INVALID_INPUT", status_code=422)


class WalletServiceError(AppError):
    """Raised by the wallet client when a call fails at the transport or HTTP level."""

    def __init__(
        self,
        message: str,
        upstream_status: int | None = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message=message, code="WALLET_SERVICE_ERROR", status_code=502)
        self.upstream_status = upstream_status
        self.timed_out = timed_out
