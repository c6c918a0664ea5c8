"""Candidate grouping: bucket normalized transactions into tentative series."""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from cadence.detection.normalizer import NormalizedTransaction

CandidateKey = tuple[str, Decimal]


@dataclass
class CandidateSeries:
    """
    Transactions sharing a normalized name and an exact amount.

    ``dates`` are unique and sorted most recent first. ``amount`` is always
    positive; the series' polarity is implied by the detection mode.
    """

    key: CandidateKey
    display_name: str
    amount: Decimal
    dates: list[date]
    transaction_ids: list[UUID] = field(default_factory=list)
    merchant_name: Optional[str] = None
    category: Optional[str] = None

    @property
    def occurrences(self) -> int:
        return len(self.dates)

    @property
    def last_date(self) -> date:
        return self.dates[0]

    @property
    def first_date(self) -> date:
        return self.dates[-1]


def group_candidates(
    transactions: Iterable[NormalizedTransaction],
    min_occurrences: int = 3,
) -> list[CandidateSeries]:
    """
    Group transactions by ``(name, amount)`` and drop thin groups.

    Amounts are compared exactly: true recurring charges bill the same amount
    each period, and a changed price is handled during reconciliation.

    Args:
        transactions: Normalized transactions of a single polarity
        min_occurrences: Minimum number of distinct dates a group needs

    Returns:
        Candidate series ordered by name then amount
    """
    grouped: dict[CandidateKey, list[NormalizedTransaction]] = defaultdict(list)
    for txn in transactions:
        grouped[(txn.name, txn.absolute_amount)].append(txn)

    candidates: list[CandidateSeries] = []
    for key, txns in grouped.items():
        dates = sorted({txn.date for txn in txns}, reverse=True)
        if len(dates) < min_occurrences:
            continue

        ordered = sorted(txns, key=lambda t: t.date)
        candidates.append(
            CandidateSeries(
                key=key,
                display_name=key[0],
                amount=key[1],
                dates=dates,
                transaction_ids=[txn.transaction_id for txn in ordered],
                merchant_name=ordered[-1].merchant_name,
                # Most recent category wins; providers re-categorize over time
                category=next((t.category for t in reversed(ordered) if t.category), None),
            )
        )

    candidates.sort(key=lambda c: c.key)
    return candidates
