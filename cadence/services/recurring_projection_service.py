"""Service for projecting recurring records onto future dates."""

import calendar
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from cadence.detection.frequency import FrequencyLabel, calculate_next_due_date
from cadence.schemas.recurring_record import RecurringRecordData


def _shift(anchor: date, frequency: FrequencyLabel, periods: int) -> date:
    # Offsets are taken from the anchor so month-end dates do not creep
    if frequency == FrequencyLabel.WEEKLY:
        return anchor + timedelta(weeks=periods)
    if frequency == FrequencyLabel.BIWEEKLY:
        return anchor + timedelta(weeks=2 * periods)
    if frequency == FrequencyLabel.MONTHLY:
        return anchor + relativedelta(months=periods)
    if frequency == FrequencyLabel.QUARTERLY:
        return anchor + relativedelta(months=3 * periods)
    if frequency == FrequencyLabel.YEARLY:
        return anchor + relativedelta(years=periods)
    raise ValueError(f"Unsupported frequency: {frequency}")


def month_bounds(month: date) -> Tuple[date, date]:
    """First and last day of the month containing ``month``."""
    last_day = calendar.monthrange(month.year, month.month)[1]
    return month.replace(day=1), month.replace(day=last_day)


class RecurringProjectionService:
    """Service for upcoming-payment and expected-total calculations."""

    @staticmethod
    def calculate_next_due_date(last_date: date, frequency: FrequencyLabel) -> date:
        """Next expected date one period after ``last_date``."""
        return calculate_next_due_date(last_date, frequency)

    @staticmethod
    def expand_occurrences(
        record: RecurringRecordData,
        start: date,
        end: date,
    ) -> List[date]:
        """
        Generate the expected dates of a record within [start, end].

        Expansion starts at the record's next due date; past dates are never
        projected.
        """
        anchor = record.next_due_date or calculate_next_due_date(
            record.last_transaction_date, record.frequency
        )
        if end < start:
            return []

        occurrences: List[date] = []
        periods = 0
        current = anchor
        while current <= end:
            if current >= start:
                occurrences.append(current)
            periods += 1
            current = _shift(anchor, record.frequency, periods)

        return occurrences

    @staticmethod
    def _future_occurrences_in_month(
        record: RecurringRecordData, month: date, as_of: date
    ) -> List[date]:
        month_start, month_end = month_bounds(month)
        return [
            d
            for d in RecurringProjectionService.expand_occurrences(record, month_start, month_end)
            if d > as_of
        ]

    @staticmethod
    def get_expected_total_for_month(
        records: Iterable[RecurringRecordData],
        month: date,
        as_of: Optional[date] = None,
    ) -> Decimal:
        """
        Sum the amounts still expected in a month.

        Only active records count, and only occurrences after ``as_of``
        (default today), so amounts already received are not double counted.

        Args:
            records: Recurring records, typically of one kind
            month: Any day in the target month
            as_of: Reference date

        Returns:
            Total expected amount
        """
        as_of = as_of or date.today()
        total = Decimal("0")
        for record in records:
            if not record.is_active:
                continue
            occurrences = RecurringProjectionService._future_occurrences_in_month(
                record, month, as_of
            )
            total += record.amount * len(occurrences)
        return total

    @staticmethod
    def get_records_due_in_month(
        records: Iterable[RecurringRecordData],
        month: date,
        as_of: Optional[date] = None,
    ) -> List[RecurringRecordData]:
        """Active records with at least one occurrence after ``as_of`` in the month."""
        as_of = as_of or date.today()
        return [
            record
            for record in records
            if record.is_active
            and RecurringProjectionService._future_occurrences_in_month(record, month, as_of)
        ]
