"""Frequency labels and the day-gap windows that define them."""

import enum
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta


class FrequencyLabel(str, enum.Enum):
    """Frequency of a recurring series."""

    WEEKLY = "weekly"
    BIWEEKLY = "bi-weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class FrequencyWindow:
    """Inclusive day-gap window around a target interval."""

    label: FrequencyLabel
    target_days: int
    tolerance_days: int

    @property
    def min_days(self) -> int:
        return self.target_days - self.tolerance_days

    @property
    def max_days(self) -> int:
        return self.target_days + self.tolerance_days

    def contains(self, gap_days: int) -> bool:
        return abs(gap_days - self.target_days) <= self.tolerance_days


FREQUENCY_WINDOWS: dict[FrequencyLabel, FrequencyWindow] = {
    FrequencyLabel.WEEKLY: FrequencyWindow(FrequencyLabel.WEEKLY, 7, 1),
    FrequencyLabel.BIWEEKLY: FrequencyWindow(FrequencyLabel.BIWEEKLY, 14, 2),
    FrequencyLabel.MONTHLY: FrequencyWindow(FrequencyLabel.MONTHLY, 30, 3),
    FrequencyLabel.QUARTERLY: FrequencyWindow(FrequencyLabel.QUARTERLY, 90, 7),
    FrequencyLabel.YEARLY: FrequencyWindow(FrequencyLabel.YEARLY, 365, 10),
}


def window_for_gap(gap_days: int) -> Optional[FrequencyWindow]:
    """Return the window containing ``gap_days``, or None if no window does."""
    for window in FREQUENCY_WINDOWS.values():
        if window.contains(gap_days):
            return window
    return None


def classify_gap(gap_days: int) -> Optional[FrequencyLabel]:
    """Map a day gap to a frequency label. Ambiguous gaps map to None."""
    window = window_for_gap(gap_days)
    return window.label if window else None


def calculate_next_due_date(last_date: date, frequency: FrequencyLabel) -> date:
    """
    Calculate the next expected date after ``last_date``.

    Monthly, quarterly and yearly steps are calendar steps, so a charge on
    Jan 31 is next due on Feb 28/29 rather than drifting by 30 days.
    """
    if frequency == FrequencyLabel.WEEKLY:
        return last_date + timedelta(weeks=1)
    if frequency == FrequencyLabel.BIWEEKLY:
        return last_date + timedelta(weeks=2)
    if frequency == FrequencyLabel.MONTHLY:
        return last_date + relativedelta(months=1)
    if frequency == FrequencyLabel.QUARTERLY:
        return last_date + relativedelta(months=3)
    if frequency == FrequencyLabel.YEARLY:
        return last_date + relativedelta(years=1)
    raise ValueError(f"Unsupported frequency: {frequency}")


def calculate_previous_due_date(current_date: date, frequency: FrequencyLabel) -> date:
    """Inverse of :func:`calculate_next_due_date`."""
    if frequency == FrequencyLabel.WEEKLY:
        return current_date - timedelta(weeks=1)
    if frequency == FrequencyLabel.BIWEEKLY:
        return current_date - timedelta(weeks=2)
    if frequency == FrequencyLabel.MONTHLY:
        return current_date - relativedelta(months=1)
    if frequency == FrequencyLabel.QUARTERLY:
        return current_date - relativedelta(months=3)
    if frequency == FrequencyLabel.YEARLY:
        return current_date - relativedelta(years=1)
    raise ValueError(f"Unsupported frequency: {frequency}")
