"""Interval classification: infer a frequency from a series' date gaps."""

from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from cadence.detection.frequency import FrequencyLabel, FrequencyWindow, window_for_gap
from cadence.detection.grouper import CandidateSeries


@dataclass(frozen=True)
class IntervalClassification:
    """Frequency inferred for a series, with the evidence behind it."""

    frequency: FrequencyLabel
    modal_gap: int
    modal_count: int  # Gaps that fall inside the modal gap's window
    gaps: tuple[int, ...]

    @property
    def regularity(self) -> float:
        """Fraction of gaps consistent with the inferred frequency (0-1)."""
        return self.modal_count / len(self.gaps) if self.gaps else 0.0


def compute_gaps(dates: Iterable[date]) -> list[int]:
    """Day gaps between consecutive distinct dates, most recent first."""
    ordered = sorted(set(dates), reverse=True)
    return [abs((ordered[i] - ordered[i + 1]).days) for i in range(len(ordered) - 1)]


def _window_count(gaps: list[int], window: Optional[FrequencyWindow]) -> int:
    if window is None:
        return 0
    return sum(1 for gap in gaps if window.contains(gap))


def select_modal_gap(gaps: list[int]) -> Optional[int]:
    """
    Pick the most frequent gap value.

    Ties go to the value whose tolerance window holds the most gaps, then
    to the smallest value.
    """
    if not gaps:
        return None

    histogram = Counter(gaps)
    return max(
        histogram,
        key=lambda gap: (histogram[gap], _window_count(gaps, window_for_gap(gap)), -gap),
    )


def classify_dates(dates: Iterable[date], min_modal_count: int = 2) -> Optional[IntervalClassification]:
    """
    Classify a series of dates into a frequency.

    Returns None when the modal gap matches no frequency window, or when
    fewer than ``min_modal_count`` gaps fall inside that window. Both are
    ordinary rejections: irregular series are simply not recurring.
    """
    gaps = compute_gaps(dates)
    modal_gap = select_modal_gap(gaps)
    if modal_gap is None:
        return None

    window = window_for_gap(modal_gap)
    if window is None:
        return None

    modal_count = _window_count(gaps, window)
    if modal_count < min_modal_count:
        return None

    return IntervalClassification(
        frequency=window.label,
        modal_gap=modal_gap,
        modal_count=modal_count,
        gaps=tuple(gaps),
    )


def classify_series(series: CandidateSeries, min_modal_count: int = 2) -> Optional[IntervalClassification]:
    """Classify a candidate series by its dates."""
    return classify_dates(series.dates, min_modal_count=min_modal_count)
