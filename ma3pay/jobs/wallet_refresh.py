"""Periodic wallet reconciliation job."""

from __future__ import annotations

import logging

from ma3pay.context import CoreContext, get_context
from ma3pay.utils.errors import WalletServiceError

logger = logging.getLogger(__name__)


async def wallet_refresh(core: CoreContext | None = None) -> None:
    """Reconcile the ledger with the wallet service; a failed fetch waits for the next run."""
    core = core or get_context()
    try:
        report = await core.refresh()
    except WalletServiceError as exc:
        logger.warning("wallet_refresh skipped: %s", exc.message)
        return

    logger.info(
        "wallet_refresh completed: balance=%s pending=%s mismatched=%s",
        report.balance.amount,
        len(report.pending),
        len(report.mismatched),
    )
