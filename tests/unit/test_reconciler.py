"""Tests for reconciling candidates against persisted records."""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from cadence.detection.classifier import classify_dates
from cadence.detection.frequency import FrequencyLabel
from cadence.detection.grouper import CandidateSeries
from cadence.detection.normalizer import NormalizedTransaction, RecurringKind
from cadence.detection.reconciler import Reconciler, amounts_match, names_match
from cadence.detection.scorer import score_candidate
from cadence.schemas.recurring_record import RecurringRecordData

AS_OF = date(2024, 7, 15)


def _candidate(amount: str, months, name: str = "netflix.com", year: int = 2024):
    return _dated_candidate(amount, [date(year, m, 1) for m in months], name=name)


def _dated_candidate(amount: str, days, name: str = "netflix.com"):
    dates = sorted(days, reverse=True)
    series = CandidateSeries(
        key=(name, Decimal(amount)),
        display_name=name,
        amount=Decimal(amount),
        dates=dates,
        transaction_ids=[uuid4() for _ in dates],
    )
    return score_candidate(series, classify_dates(dates), AS_OF)


def _txn(day: date, amount: str, name: str = "netflix.com") -> NormalizedTransaction:
    return NormalizedTransaction(
        transaction_id=uuid4(),
        account_id=None,
        date=day,
        name=name,
        merchant_name=None,
        category=None,
        effective_amount=-Decimal(amount),
    )


def _persist(record: RecurringRecordData) -> RecurringRecordData:
    return record.model_copy(update={"id": uuid4()})


@pytest.fixture
def reconciler(user_id):
    return Reconciler(user_id, RecurringKind.EXPENSE)


@pytest.mark.unit
class TestMatchRule:
    """Test suite for the name/amount/frequency match rule."""

    def test_names_match_case_insensitively(self):
        """Should compare names ignoring case."""
        assert names_match("Netflix.com", "NETFLIX.COM")
        assert not names_match("netflix", "hulu")

    def test_amount_tolerance_is_exclusive(self):
        """Should match amounts strictly closer than one cent."""
        assert amounts_match(Decimal("15.99"), Decimal("15.995"))
        assert not amounts_match(Decimal("15.99"), Decimal("16.00"))


@pytest.mark.unit
class TestReconcile:
    """Test suite for reconciliation outcomes."""

    def test_unmatched_candidate_is_created(self, reconciler, user_id):
        """Should emit a new active, unconfirmed suggestion."""
        plan = reconciler.reconcile([_candidate("15.99", [1, 2, 3])], [], [])

        [record] = plan.creates
        assert record.id is None
        assert record.user_id == user_id
        assert record.kind == RecurringKind.EXPENSE
        assert record.name == "netflix.com"
        assert record.amount == Decimal("15.99")
        assert record.frequency == FrequencyLabel.MONTHLY
        assert record.occurrence_count == 3
        assert record.confidence == 80
        assert record.is_active is True
        assert record.is_confirmed is False
        assert len(record.linked_transaction_ids) == 3
        assert plan.updates == []

    def test_matching_active_record_is_updated_not_duplicated(self, reconciler):
        """Should fold a matching candidate into the stored record."""
        first = reconciler.reconcile([_candidate("15.99", [1, 2, 3])], [], [])
        stored = _persist(first.creates[0])

        plan = reconciler.reconcile([_candidate("15.99", [1, 2, 3, 4])], [stored], [])

        assert plan.creates == []
        [updated] = plan.updates
        assert updated.id == stored.id
        assert updated.last_transaction_date == date(2024, 4, 1)
        assert updated.next_due_date == date(2024, 5, 1)
        assert updated.occurrence_count == 4
        assert updated.confidence == 87
        assert updated.needs_review is False

    def test_unchanged_input_yields_empty_plan(self, reconciler):
        """Should not create or update anything when nothing changed."""
        candidate = _candidate("15.99", [1, 2, 3])
        stored = _persist(reconciler.reconcile([candidate], [], []).creates[0])

        plan = reconciler.reconcile([candidate], [stored], [])

        assert plan.is_empty

    def test_input_records_are_not_mutated(self, reconciler):
        """Should work on copies of the records it is given."""
        stored = _persist(reconciler.reconcile([_candidate("15.99", [1, 2, 3])], [], []).creates[0])

        reconciler.reconcile([_candidate("15.99", [1, 2, 3, 4])], [stored], [])

        assert stored.last_transaction_date == date(2024, 3, 1)

    def test_last_transaction_date_never_moves_backwards(self, reconciler):
        """Should keep the later stored date."""
        stored = _persist(reconciler.reconcile([_candidate("15.99", [1, 2, 3, 4, 5])], [], []).creates[0])

        plan = reconciler.reconcile([_candidate("15.99", [1, 2, 3])], [stored], [])

        [updated] = plan.updates
        assert updated.last_transaction_date == date(2024, 5, 1)
        assert updated.next_due_date == date(2024, 6, 1)
        assert updated.occurrence_count == 5
        assert updated.confidence == stored.confidence

    def test_case_insensitive_name_match(self, reconciler):
        """Should match a stored record whose name differs only in case."""
        stored = _persist(reconciler.reconcile([_candidate("15.99", [1, 2, 3])], [], []).creates[0])
        stored = stored.model_copy(update={"name": "Netflix.com"})

        plan = reconciler.reconcile([_candidate("15.99", [1, 2, 3])], [stored], [])

        assert plan.creates == []

    def test_different_frequency_is_a_different_record(self, reconciler):
        """Should not match a record with another frequency."""
        stored = _persist(reconciler.reconcile([_candidate("15.99", [1, 2, 3])], [], []).creates[0])
        stored = stored.model_copy(update={"frequency": FrequencyLabel.YEARLY})

        plan = reconciler.reconcile([_candidate("15.99", [1, 2, 3])], [stored], [])

        assert len(plan.creates) == 1
        assert plan.updates == []

    def test_dismissed_match_is_suppressed(self, reconciler):
        """Should not resurrect a dismissed pattern."""
        dismissed = _persist(reconciler.reconcile([_candidate("15.99", [1, 2, 3])], [], []).creates[0])
        dismissed = dismissed.model_copy(update={"is_active": False})

        plan = reconciler.reconcile([_candidate("15.99", [1, 2, 3, 4, 5])], [], [dismissed])

        assert plan.is_empty
        assert plan.suppressed == 1

    def test_records_of_other_kind_are_ignored(self, user_id):
        """Should only reconcile against records of its own kind."""
        income = Reconciler(user_id, RecurringKind.INCOME)
        stored = _persist(income.reconcile([_candidate("15.99", [1, 2, 3])], [], []).creates[0])

        plan = Reconciler(user_id, RecurringKind.EXPENSE).reconcile(
            [_candidate("15.99", [1, 2, 3])], [stored], []
        )

        assert len(plan.creates) == 1
        assert plan.updates == []


@pytest.mark.unit
class TestPriceChanges:
    """Test suite for amount drift and price changes."""

    def test_price_drop_flags_drift_on_existing_record(self, reconciler):
        """Should extend the record and flag it for review instead of creating a second one."""
        stored = _persist(reconciler.reconcile([_candidate("15.99", [1, 2, 3])], [], []).creates[0])
        transactions = [_txn(date(2024, m, 1), "15.99") for m in (1, 2, 3)]
        transactions.append(_txn(date(2024, 4, 1), "13.99"))

        plan = reconciler.reconcile(
            [_candidate("15.99", [1, 2, 3])], [stored], [], transactions
        )

        assert plan.creates == []
        [updated] = plan.updates
        assert updated.id == stored.id
        assert updated.amount == Decimal("15.99")
        assert updated.last_transaction_date == date(2024, 4, 1)
        assert updated.next_due_date == date(2024, 5, 1)
        assert updated.latest_amount == Decimal("13.99")
        assert updated.needs_review is True
        assert updated.is_confirmed is False
        assert updated.confidence < stored.confidence
        assert updated.occurrence_count == 4

    def test_drift_is_not_reapplied(self, reconciler):
        """Should leave a drifted record alone on the next run."""
        stored = _persist(reconciler.reconcile([_candidate("15.99", [1, 2, 3])], [], []).creates[0])
        transactions = [_txn(date(2024, m, 1), "15.99") for m in (1, 2, 3)]
        transactions.append(_txn(date(2024, 4, 1), "13.99"))
        candidates = [_candidate("15.99", [1, 2, 3])]

        drifted = reconciler.reconcile(candidates, [stored], [], transactions).updates[0]
        plan = reconciler.reconcile(candidates, [drifted], [], transactions)

        assert plan.is_empty

    def test_off_schedule_charge_is_not_drift(self, reconciler):
        """Should ignore a same-name charge that does not fall on the schedule."""
        candidate = _candidate("15.99", [1, 2, 3])
        stored = _persist(reconciler.reconcile([candidate], [], []).creates[0])
        transactions = [_txn(date(2024, 3, 12), "4.99")]

        plan = reconciler.reconcile([candidate], [stored], [], transactions)

        assert plan.is_empty

    def test_sustained_new_price_rebases_record(self, reconciler):
        """Should move a drifted record to the new amount once the new price recurs."""
        stored = _persist(reconciler.reconcile([_candidate("15.99", [1, 2, 3])], [], []).creates[0])
        transactions = [_txn(date(2024, m, 1), "15.99") for m in (1, 2, 3)]
        transactions.append(_txn(date(2024, 4, 1), "13.99"))
        drifted = reconciler.reconcile(
            [_candidate("15.99", [1, 2, 3])], [stored], [], transactions
        ).updates[0]

        transactions += [_txn(date(2024, m, 1), "13.99") for m in (5, 6)]
        candidates = [_candidate("15.99", [1, 2, 3]), _candidate("13.99", [4, 5, 6])]
        plan = reconciler.reconcile(candidates, [drifted], [], transactions)

        assert plan.creates == []
        [rebased] = plan.updates
        assert rebased.id == stored.id
        assert rebased.amount == Decimal("13.99")
        assert rebased.last_transaction_date == date(2024, 6, 1)
        assert rebased.occurrence_count == 6
        assert rebased.needs_review is True

        # Old price tier is absorbed on later runs too
        again = reconciler.reconcile(candidates, [rebased], [], transactions)
        assert again.is_empty

    def test_both_price_tiers_in_one_run_make_one_record(self, reconciler):
        """Should create a single record at the current price."""
        candidates = [_candidate("15.99", [1, 2, 3]), _candidate("13.99", [4, 5, 6])]

        plan = reconciler.reconcile(candidates, [], [])

        [record] = plan.creates
        assert record.amount == Decimal("13.99")
        assert record.last_transaction_date == date(2024, 6, 1)
        assert record.occurrence_count == 6
        assert record.needs_review is False

    def test_concurrent_subscriptions_stay_separate(self, reconciler):
        """Should keep two plans billed by the same merchant apart."""
        candidates = [_candidate("15.99", [1, 2, 3, 4]), _candidate("6.99", [1, 2, 3, 4])]

        plan = reconciler.reconcile(candidates, [], [])

        assert sorted(r.amount for r in plan.creates) == [Decimal("6.99"), Decimal("15.99")]


@pytest.mark.unit
class TestIntervalChanges:
    """Test suite for series that stop matching their schedule."""

    def test_off_schedule_charges_flag_record(self, reconciler):
        """Should lower confidence and ask for review when new charges break the interval."""
        stored = _persist(
            reconciler.reconcile([_candidate("10.00", range(1, 7), name="gym")], [], []).creates[0]
        )
        stored = stored.model_copy(update={"is_confirmed": True})
        assert stored.confidence == 100

        days = [date(2024, m, 1) for m in range(1, 7)] + [date(2024, 7, 16), date(2024, 9, 4)]
        candidate = _dated_candidate("10.00", days, name="gym")
        assert candidate.frequency == FrequencyLabel.MONTHLY

        plan = reconciler.reconcile([candidate], [stored], [])

        assert plan.creates == []
        [updated] = plan.updates
        assert updated.id == stored.id
        assert updated.frequency == FrequencyLabel.MONTHLY
        assert updated.last_transaction_date == date(2024, 9, 4)
        assert updated.occurrence_count == 8
        assert updated.needs_review is True
        assert updated.is_confirmed is False
        assert updated.latest_amount is None
        assert updated.confidence == 69

        again = reconciler.reconcile([candidate], [updated], [])
        assert again.is_empty

    def test_late_charge_inside_window_is_not_a_break(self, reconciler):
        """Should accept a charge a couple of days late."""
        stored = _persist(reconciler.reconcile([_candidate("15.99", [1, 2, 3])], [], []).creates[0])
        days = [date(2024, m, 1) for m in (1, 2, 3)] + [date(2024, 4, 3)]

        [updated] = reconciler.reconcile([_dated_candidate("15.99", days)], [stored], []).updates

        assert updated.needs_review is False
        assert updated.confidence == 87

    def test_frequency_change_flags_old_record(self, reconciler):
        """Should flag the monthly record once the same charge turns weekly."""
        stored = _persist(
            reconciler.reconcile([_candidate("10.00", [1, 2, 3, 4], name="gym")], [], []).creates[0]
        )
        days = [date(2024, m, 1) for m in (1, 2, 3, 4)]
        days += [date(2024, 5, 1) + timedelta(weeks=w) for w in range(6)]
        candidate = _dated_candidate("10.00", days, name="gym")

        plan = reconciler.reconcile([candidate], [stored], [])

        [weekly] = plan.creates
        assert weekly.frequency == FrequencyLabel.WEEKLY
        [monthly] = plan.updates
        assert monthly.id == stored.id
        assert monthly.frequency == FrequencyLabel.MONTHLY
        assert monthly.needs_review is True
        assert monthly.confidence == stored.confidence - 20

        again = reconciler.reconcile([candidate], [monthly, _persist(weekly)], [])
        assert again.is_empty
