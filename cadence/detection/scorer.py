"""
Confidence scoring for classified candidate series.

Confidence is an integer from 0 to 100:

    confidence = round(100 * (0.4 * count_score
                              + 0.4 * regularity
                              + 0.2 * amount_consistency))

- count_score: occurrences / saturation, capped at 1.0 (saturation 6 by default)
- regularity: fraction of gaps inside the inferred frequency window
- amount_consistency: fraction of observations billed at the series amount

A freshly grouped series always has amount_consistency 1.0, so three
evenly spaced monthly charges score 80 and six or more score 100.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from cadence.detection.classifier import IntervalClassification
from cadence.detection.frequency import FREQUENCY_WINDOWS, FrequencyLabel, calculate_next_due_date
from cadence.detection.grouper import CandidateSeries

COUNT_WEIGHT = 0.4
REGULARITY_WEIGHT = 0.4
AMOUNT_WEIGHT = 0.2


def calculate_confidence(
    occurrences: int,
    regularity: float,
    amount_consistency: float = 1.0,
    count_saturation: int = 6,
) -> int:
    """
    Calculate the confidence score for a recurring pattern.

    Args:
        occurrences: Number of distinct dates in the series
        regularity: Fraction of gaps matching the frequency window (0-1)
        amount_consistency: Fraction of observations at the series amount (0-1)
        count_saturation: Occurrence count at which the count score maxes out

    Returns:
        Confidence score 0-100
    """
    count_score = min(occurrences / count_saturation, 1.0)
    regularity = min(max(regularity, 0.0), 1.0)
    amount_consistency = min(max(amount_consistency, 0.0), 1.0)

    confidence = (
        count_score * COUNT_WEIGHT
        + regularity * REGULARITY_WEIGHT
        + amount_consistency * AMOUNT_WEIGHT
    )
    return int(round(confidence * 100))


def merge_confidence(existing: int, computed: int, needs_review: bool) -> int:
    """
    Combine a stored confidence with a freshly computed one.

    Confidence only grows across re-runs. Records waiting for the user to
    re-confirm keep their (already lowered) confidence.
    """
    if needs_review:
        return existing
    return max(existing, computed)


def apply_drift_penalty(existing: int, computed: int, penalty: int = 20) -> int:
    """Lower confidence after the amount of a recurring pattern drifted."""
    return max(0, min(existing, computed) - penalty)


def is_overdue(next_due_date: date, frequency: FrequencyLabel, as_of: date) -> bool:
    """True once ``as_of`` is past the due date plus the frequency's tolerance."""
    tolerance = FREQUENCY_WINDOWS[frequency].tolerance_days
    return as_of > next_due_date + timedelta(days=tolerance)


@dataclass(frozen=True)
class ScoredCandidate:
    """A classified candidate series with its confidence and schedule."""

    series: CandidateSeries
    classification: IntervalClassification
    confidence: int
    next_due_date: date
    is_overdue: bool

    @property
    def name(self) -> str:
        return self.series.display_name

    @property
    def amount(self) -> Decimal:
        return self.series.amount

    @property
    def frequency(self) -> FrequencyLabel:
        return self.classification.frequency

    @property
    def occurrences(self) -> int:
        return self.series.occurrences

    @property
    def last_date(self) -> date:
        return self.series.last_date


def score_candidate(
    series: CandidateSeries,
    classification: IntervalClassification,
    as_of: date,
    count_saturation: int = 6,
) -> ScoredCandidate:
    """
    Score a classified series.

    A series that is overdue is flagged but keeps its confidence: a late or
    missed payment is still evidence of recurrence.
    """
    next_due = calculate_next_due_date(series.last_date, classification.frequency)
    return ScoredCandidate(
        series=series,
        classification=classification,
        confidence=calculate_confidence(
            series.occurrences,
            classification.regularity,
            count_saturation=count_saturation,
        ),
        next_due_date=next_due,
        is_overdue=is_overdue(next_due, classification.frequency, as_of),
    )
