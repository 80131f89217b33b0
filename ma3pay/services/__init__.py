"""Service package exports with lazy loading."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "FarePaymentService": "ma3pay.services.fare_payment_service",
    "FarePaymentSession": "ma3pay.services.fare_payment_service",
    "FareResolver": "ma3pay.services.fare_service",
    "RouteCatalog": "ma3pay.services.catalog_service",
    "TopUpOrchestrator": "ma3pay.services.topup_service",
    "TopUpSession": "ma3pay.services.topup_service",
    "TransferService": "ma3pay.services.transfer_service",
    "WalletLedgerCache": "ma3pay.services.ledger_cache",
    "WalletServiceClient": "ma3pay.services.wallet_client",
}

__all__ = sorted(_EXPORTS.keys())


def __getattr__(name: str) -> Any:
    if name not in _EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(_EXPORTS[name])
    return getattr(module, name)
