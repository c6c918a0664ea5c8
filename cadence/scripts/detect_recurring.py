"""Run recurring pattern detection for one user against the configured database.

Usage:
    python -m cadence.scripts.detect_recurring --user-id <uuid> [--mode expense|income|all]
"""

import argparse
import asyncio
import sys
from datetime import date
from typing import List, Optional
from uuid import UUID

from cadence.core.database import close_db, get_db, init_db
from cadence.core.logging_config import get_logger, setup_logging
from cadence.detection.normalizer import RecurringKind
from cadence.schemas.recurring_record import DetectionResult
from cadence.services.recurring_detection_service import get_recurring_detection_service

logger = get_logger(__name__)


def _modes(mode: str) -> List[RecurringKind]:
    if mode == "all":
        return [RecurringKind.EXPENSE, RecurringKind.INCOME]
    return [RecurringKind(mode)]


def print_summary(kind: RecurringKind, result: DetectionResult) -> None:
    print(f"\n{kind.value.title()} detection")
    print("-" * 60)
    for record in result.created:
        print(
            f"  + {record.name:<30} {record.amount:>10} {record.frequency.value:<10}"
            f" confidence {record.confidence}"
        )
    for record in result.updated:
        flag = "  (needs review)" if record.needs_review else ""
        print(
            f"  ~ {record.name:<30} {record.amount:>10} {record.frequency.value:<10}"
            f" last seen {record.last_transaction_date}{flag}"
        )
    for error in result.errors:
        print(f"  ! {error.name:<30} {error.amount:>10} {error.error}")
    for record in result.overdue:
        print(f"  ? {record.name:<30} {record.amount:>10} overdue, was due {record.next_due_date}")
    print(
        f"Created {len(result.created)}, updated {len(result.updated)}, "
        f"suppressed {result.suppressed}, errors {len(result.errors)}, overdue {len(result.overdue)}"
    )


async def run(user_id: UUID, mode: str, as_of: Optional[date] = None) -> int:
    """Detect patterns for each requested mode. Returns a process exit code."""
    await init_db()
    failed = False
    try:
        async for db in get_db():
            service = get_recurring_detection_service(db)
            for kind in _modes(mode):
                result = await service.detect_recurring_patterns(user_id, kind, as_of=as_of)
                print_summary(kind, result)
                failed = failed or bool(result.errors)
            break
    finally:
        await close_db()
    return 1 if failed else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Detect recurring bills, subscriptions and income.")
    parser.add_argument("--user-id", required=True, type=UUID, help="User to analyze")
    parser.add_argument(
        "--mode",
        choices=["expense", "income", "all"],
        default="all",
        help="Which side of the ledger to analyze (default: all)",
    )
    parser.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help="Reference date, YYYY-MM-DD (default: today)",
    )
    args = parser.parse_args(argv)

    setup_logging()
    try:
        return asyncio.run(run(args.user_id, args.mode, args.as_of))
    except Exception as e:
        logger.error("recurring_detection_failed", user_id=str(args.user_id), error=str(e))
        print(f"\n❌ Detection failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
