"""Fetch the wallet balance and activity and print a reconciled snapshot."""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Sequence
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def parse_args() -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Print the wallet balance and recent transactions from the wallet service.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="How many transactions to print (default: 20).",
    )
    parser.add_argument(
        "--url",
        type=str,
        default=None,
        help="Wallet service base URL (default: WALLET_API_URL).",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Also print fare spend per weekday for the last 7 days.",
    )
    return parser.parse_args()


async def take_snapshot(limit: int, url: str | None) -> tuple[str, list, list]:
    """Reconcile a fresh ledger against the wallet service and return printable parts."""
    from ma3pay.config import settings
    from ma3pay.context import build_context

    config = settings.model_copy(update={"wallet_api_url": url}) if url else settings
    core = build_context(config)
    try:
        report = await core.refresh()
    finally:
        await core.aclose()

    header = f"Balance: {report.balance.amount} {config.currency} (as of {report.balance.as_of.isoformat()})"
    return header, core.ledger.history(limit=limit), core.ledger.fare_spend_by_day(tz=config.timezone)


def print_snapshot(header: str, records: Sequence, summary: Sequence | None) -> None:
    """Print the snapshot in copy-friendly form."""
    print(header)
    print(f"{len(records)} transaction(s):")
    for record in records:
        print(
            f"{record.occurred_at.isoformat()}  {record.kind.value:<12} {record.signed_amount:>10}  "
            f"{record.status.value:<8} {record.description}"
        )
    if summary is not None:
        print("Fare spend, last 7 days:")
        for day in summary:
            print(f"{day.name}: {day.amount}")


def main() -> None:
    """CLI entry point."""
    args = parse_args()
    if args.limit < 1:
        raise SystemExit("limit must be >= 1")
    header, records, summary = asyncio.run(take_snapshot(limit=args.limit, url=args.url))
    print_snapshot(header, records, summary if args.summary else None)


if __name__ == "__main__":
    main()
