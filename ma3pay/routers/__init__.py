"""API router package."""

from ma3pay.routers import catalog, fares, topups, wallet

__all__ = [
    "catalog",
    "fares",
    "topups",
    "wallet",
]
