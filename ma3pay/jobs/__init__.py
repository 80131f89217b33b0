"""Background job modules for periodic wallet tasks."""

from ma3pay.jobs.wallet_refresh import wallet_refresh

__all__ = [
    "wallet_refresh",
]
