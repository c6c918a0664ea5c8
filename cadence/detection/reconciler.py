"""
Reconciliation of scored candidates against persisted recurring records.

The reconciler decides, for every candidate produced by a detection run,
whether it updates an existing active record, is suppressed by a record the
user dismissed, or becomes a new suggestion. A record whose amount or
interval stops matching what is observed loses confidence and is flagged
for review. It works on copies of the records it is given and returns a
plan; nothing is written here.

Running it twice over the same transactions and the records produced by
the first run yields an empty plan.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from cadence.detection.frequency import FREQUENCY_WINDOWS, calculate_next_due_date
from cadence.detection.normalizer import NormalizedTransaction, RecurringKind
from cadence.detection.scorer import (
    ScoredCandidate,
    apply_drift_penalty,
    calculate_confidence,
    merge_confidence,
)
from cadence.schemas.recurring_record import RecurringRecordData

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationPlan:
    """Records to write after a detection run."""

    creates: list[RecurringRecordData] = field(default_factory=list)
    updates: list[RecurringRecordData] = field(default_factory=list)
    suppressed: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.creates and not self.updates


def names_match(a: str, b: str) -> bool:
    return a.casefold() == b.casefold()


def amounts_match(a: Decimal, b: Decimal, tolerance: Decimal = Decimal("0.01")) -> bool:
    return abs(a - b) < tolerance


def _merge_ids(existing: list[UUID], new: Iterable[UUID]) -> list[UUID]:
    seen = set(existing)
    merged = list(existing)
    for txn_id in new:
        if txn_id not in seen:
            seen.add(txn_id)
            merged.append(txn_id)
    return merged


def _snapshot(record: RecurringRecordData) -> dict:
    return record.model_dump(exclude={"updated_at"})


class Reconciler:
    """Match candidates to a user's recurring records of one kind."""

    def __init__(
        self,
        user_id: UUID,
        kind: RecurringKind,
        amount_tolerance: Decimal = Decimal("0.01"),
        drift_penalty: int = 20,
        count_saturation: int = 6,
    ):
        self.user_id = user_id
        self.kind = kind
        self.amount_tolerance = amount_tolerance
        self.drift_penalty = drift_penalty
        self.count_saturation = count_saturation

    # ── Matching ─────────────────────────────────────────────────────────────

    def matches(self, record: RecurringRecordData, candidate: ScoredCandidate) -> bool:
        """Name (case-insensitive), amount within tolerance and frequency all agree."""
        return (
            names_match(record.name, candidate.name)
            and amounts_match(record.amount, candidate.amount, self.amount_tolerance)
            and record.frequency == candidate.frequency
        )

    def _same_series(self, record: RecurringRecordData, candidate: ScoredCandidate) -> bool:
        return names_match(record.name, candidate.name) and record.frequency == candidate.frequency

    def _find_match(
        self, records: list[RecurringRecordData], candidate: ScoredCandidate
    ) -> Optional[RecurringRecordData]:
        return next((r for r in records if self.matches(r, candidate)), None)

    def _find_price_change(
        self, records: list[RecurringRecordData], candidate: ScoredCandidate
    ) -> Optional[RecurringRecordData]:
        """
        Find a record whose series continues in ``candidate`` at a new amount.

        Either the record already saw the new amount as drift, or the
        candidate starts one period after the record's last transaction.
        """
        for record in records:
            if not self._same_series(record, candidate):
                continue
            if (
                record.needs_review
                and record.latest_amount is not None
                and amounts_match(record.latest_amount, candidate.amount, self.amount_tolerance)
            ):
                return record
            gap = (candidate.series.first_date - record.last_transaction_date).days
            if gap > 0 and FREQUENCY_WINDOWS[record.frequency].contains(gap):
                return record
        return None

    def _find_superseding(
        self, records: list[RecurringRecordData], candidate: ScoredCandidate
    ) -> Optional[RecurringRecordData]:
        """
        Find a record that already covers the candidate's next due date.

        This is the old price tier of a subscription whose record has moved
        on to a new amount; it must not come back as a separate record.
        """
        tolerance = timedelta(days=FREQUENCY_WINDOWS[candidate.frequency].tolerance_days)
        for record in records:
            if not self._same_series(record, candidate):
                continue
            if (
                candidate.last_date < record.last_transaction_date
                and record.last_transaction_date >= candidate.next_due_date - tolerance
            ):
                return record
        return None

    def _find_interval_change(
        self, records: list[RecurringRecordData], candidate: ScoredCandidate
    ) -> Optional[RecurringRecordData]:
        """Find a record the candidate continues on a different schedule."""
        return next(
            (
                r
                for r in records
                if names_match(r.name, candidate.name)
                and amounts_match(r.amount, candidate.amount, self.amount_tolerance)
                and r.frequency != candidate.frequency
                and candidate.last_date > r.last_transaction_date
            ),
            None,
        )

    # ── Record changes ───────────────────────────────────────────────────────

    def _new_record(self, candidate: ScoredCandidate) -> RecurringRecordData:
        series = candidate.series
        return RecurringRecordData(
            user_id=self.user_id,
            kind=self.kind,
            name=candidate.name,
            merchant_name=series.merchant_name,
            category=series.category,
            amount=candidate.amount,
            frequency=candidate.frequency,
            next_due_date=candidate.next_due_date,
            last_transaction_date=candidate.last_date,
            occurrence_count=candidate.occurrences,
            confidence=candidate.confidence,
            is_active=True,
            is_confirmed=False,
            linked_transaction_ids=list(series.transaction_ids),
        )

    def _off_schedule_dates(
        self, record: RecurringRecordData, candidate: ScoredCandidate
    ) -> list[date]:
        """Candidate dates after the record's last one that break its interval."""
        window = FREQUENCY_WINDOWS[record.frequency]
        previous = record.last_transaction_date
        off_schedule = []
        for day in sorted(candidate.series.dates):
            if day <= previous:
                continue
            if not window.contains((day - previous).days):
                off_schedule.append(day)
            previous = day
        return off_schedule

    def _flag_for_review(self, record: RecurringRecordData, computed: int) -> None:
        if not record.needs_review:
            record.confidence = apply_drift_penalty(record.confidence, computed, self.drift_penalty)
        record.needs_review = True
        record.is_confirmed = False

    def _absorb(self, record: RecurringRecordData, candidate: ScoredCandidate) -> None:
        """Fold a matching candidate into an active record."""
        off_schedule = self._off_schedule_dates(record, candidate)

        if candidate.last_date > record.last_transaction_date:
            record.last_transaction_date = candidate.last_date
        record.next_due_date = calculate_next_due_date(record.last_transaction_date, record.frequency)
        record.occurrence_count = max(record.occurrence_count, candidate.occurrences)
        record.linked_transaction_ids = _merge_ids(
            record.linked_transaction_ids, candidate.series.transaction_ids
        )
        if record.merchant_name is None:
            record.merchant_name = candidate.series.merchant_name
        if record.category is None:
            record.category = candidate.series.category

        if not off_schedule:
            record.confidence = merge_confidence(
                record.confidence, candidate.confidence, record.needs_review
            )
            return

        self._flag_for_review(record, candidate.confidence)
        logger.info(
            "Interval drift on recurring %s '%s': %s charges off its %s schedule, last on %s",
            self.kind.value,
            record.name,
            len(off_schedule),
            record.frequency.value,
            off_schedule[-1],
        )

    def _rebase(self, record: RecurringRecordData, candidate: ScoredCandidate) -> None:
        """Move a record to the candidate's amount after a price change."""
        previous_amount = record.amount
        is_new = record.id is None

        # Dates already counted (e.g. as drift) are not counted twice
        newer = sum(1 for d in candidate.series.dates if d > record.last_transaction_date)
        record.occurrence_count += newer

        record.amount = candidate.amount
        record.last_transaction_date = max(record.last_transaction_date, candidate.last_date)
        record.next_due_date = calculate_next_due_date(record.last_transaction_date, record.frequency)
        record.linked_transaction_ids = _merge_ids(
            record.linked_transaction_ids, candidate.series.transaction_ids
        )

        if is_new:
            # Not yet shown to the user; just adopt the current price
            record.confidence = max(record.confidence, candidate.confidence)
            record.latest_amount = None
        else:
            self._flag_for_review(record, candidate.confidence)
            record.latest_amount = candidate.amount

        logger.info(
            "Recurring %s '%s' changed amount %s -> %s",
            self.kind.value,
            record.name,
            previous_amount,
            candidate.amount,
        )

    def _apply_drift(
        self, record: RecurringRecordData, observations: list[NormalizedTransaction]
    ) -> bool:
        """
        Extend a record with later on-schedule observations at another amount.

        Returns True if any drift was found.
        """
        window = FREQUENCY_WINDOWS[record.frequency]
        last = record.last_transaction_date
        drifted: list[NormalizedTransaction] = []

        for txn in observations:
            if txn.date <= last:
                continue
            if amounts_match(txn.absolute_amount, record.amount, self.amount_tolerance):
                continue
            gap = (txn.date - last).days
            if window.contains(gap):
                drifted.append(txn)
                last = txn.date
            elif gap > window.max_days:
                break

        if not drifted:
            return False

        record.last_transaction_date = last
        record.next_due_date = calculate_next_due_date(last, record.frequency)
        record.latest_amount = drifted[-1].absolute_amount
        record.linked_transaction_ids = _merge_ids(
            record.linked_transaction_ids, (t.transaction_id for t in drifted)
        )
        record.occurrence_count += len(drifted)

        at_amount = max(record.occurrence_count - len(drifted), 0)
        computed = calculate_confidence(
            record.occurrence_count,
            regularity=1.0,
            amount_consistency=at_amount / record.occurrence_count,
            count_saturation=self.count_saturation,
        )
        self._flag_for_review(record, computed)

        logger.info(
            "Amount drift on recurring %s '%s': expected %s, saw %s on %s",
            self.kind.value,
            record.name,
            record.amount,
            record.latest_amount,
            last,
        )
        return True

    # ── Entry point ──────────────────────────────────────────────────────────

    def reconcile(
        self,
        candidates: Iterable[ScoredCandidate],
        active_records: Iterable[RecurringRecordData],
        dismissed_records: Iterable[RecurringRecordData],
        transactions: Iterable[NormalizedTransaction] = (),
    ) -> ReconciliationPlan:
        """
        Build the write plan for a detection run.

        Args:
            candidates: Scored candidates of this run's kind
            active_records: The user's active records of this kind
            dismissed_records: The user's dismissed records of this kind
            transactions: The run's normalized transactions, for drift checks

        Returns:
            ReconciliationPlan with new records, changed records and the
            number of candidates suppressed by a dismissal
        """
        plan = ReconciliationPlan()

        active = [r.model_copy(deep=True) for r in active_records if r.kind == self.kind]
        dismissed = [r for r in dismissed_records if r.kind == self.kind]
        before = {r.id: _snapshot(r) for r in active}

        # Oldest series first so a price change lands on the newest tier
        for candidate in sorted(candidates, key=lambda c: (c.last_date, c.name, c.amount)):
            if self._find_match(dismissed, candidate):
                plan.suppressed += 1
                logger.debug("Suppressed dismissed pattern '%s' %s", candidate.name, candidate.amount)
                continue

            record = self._find_match(active, candidate)
            if record is not None:
                self._absorb(record, candidate)
                continue

            record = self._find_price_change(active, candidate)
            if record is not None:
                self._rebase(record, candidate)
                continue

            record = self._find_superseding(active, candidate)
            if record is not None:
                record.linked_transaction_ids = _merge_ids(
                    record.linked_transaction_ids, candidate.series.transaction_ids
                )
                continue

            stale = self._find_interval_change(active, candidate)
            if stale is not None:
                self._flag_for_review(stale, stale.confidence)
                logger.info(
                    "Recurring %s '%s' moved from %s to %s",
                    self.kind.value,
                    stale.name,
                    stale.frequency.value,
                    candidate.frequency.value,
                )

            new_record = self._new_record(candidate)
            active.append(new_record)
            plan.creates.append(new_record)

        by_name: dict[str, list[NormalizedTransaction]] = defaultdict(list)
        for txn in sorted(transactions, key=lambda t: t.date):
            by_name[txn.name.casefold()].append(txn)
        for record in active:
            self._apply_drift(record, by_name.get(record.name.casefold(), []))

        for record in active:
            if record.id is None:
                continue
            if _snapshot(record) != before[record.id]:
                plan.updates.append(record)

        return plan
