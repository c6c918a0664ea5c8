"""Service for detecting recurring transaction patterns."""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import AsyncIterator, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from cadence.config import Settings, settings as default_settings
from cadence.core.logging_config import get_logger
from cadence.detection.classifier import classify_series
from cadence.detection.grouper import group_candidates
from cadence.detection.normalizer import (
    NormalizedTransaction,
    RecurringKind,
    normalize_transactions,
)
from cadence.detection.reconciler import Reconciler
from cadence.detection.scorer import ScoredCandidate, is_overdue, score_candidate
from cadence.repositories.base import RecurringRecordStore, TransactionStore
from cadence.repositories.sqlalchemy_store import (
    SQLAlchemyRecurringRecordStore,
    SQLAlchemyTransactionStore,
)
from cadence.schemas.recurring_record import (
    CandidateError,
    DetectionResult,
    RecurringRecordData,
)
from cadence.schemas.transaction import TransactionFilter
from cadence.utils.datetime_utils import utc_now

logger = get_logger(__name__)

# Serializes reconcile-then-write per user within this process
_user_locks: Dict[UUID, asyncio.Lock] = {}
_user_lock_users: Dict[UUID, int] = defaultdict(int)


@asynccontextmanager
async def user_lock(user_id: UUID) -> AsyncIterator[None]:
    """Hold the user's detection lock; it is dropped once nobody holds or waits on it."""
    lock = _user_locks.setdefault(user_id, asyncio.Lock())
    _user_lock_users[user_id] += 1
    try:
        async with lock:
            yield
    finally:
        _user_lock_users[user_id] -= 1
        if not _user_lock_users[user_id]:
            del _user_lock_users[user_id]
            del _user_locks[user_id]


class RecordNotFoundError(LookupError):
    """Raised when a recurring record does not exist for the user."""

    def __init__(self, user_id: UUID, record_id: UUID):
        super().__init__(f"Recurring record {record_id} not found for user {user_id}")
        self.user_id = user_id
        self.record_id = record_id


def parse_mode(mode: Union[str, RecurringKind]) -> RecurringKind:
    """Parse a detection mode ("expense" or "income")."""
    if isinstance(mode, RecurringKind):
        return mode
    try:
        return RecurringKind(str(mode).lower())
    except ValueError:
        raise ValueError(
            f"Invalid detection mode '{mode}'. Must be one of: "
            f"{', '.join(k.value for k in RecurringKind)}"
        ) from None


class RecurringDetectionService:
    """Service for detecting and managing recurring bills and income."""

    def __init__(
        self,
        transactions: TransactionStore,
        records: RecurringRecordStore,
        settings: Optional[Settings] = None,
    ):
        self.transactions = transactions
        self.records = records
        self.settings = settings or default_settings

    def _transaction_filter(self, kind: RecurringKind, as_of: date) -> TransactionFilter:
        since = None
        if self.settings.RECURRING_LOOKBACK_DAYS:
            since = as_of - timedelta(days=self.settings.RECURRING_LOOKBACK_DAYS)

        if kind == RecurringKind.INCOME:
            # Paychecks land in cash accounts; refunds on credit cards are not income
            return TransactionFilter(
                account_types=self.settings.INCOME_ACCOUNT_TYPES,
                account_subtypes=self.settings.INCOME_ACCOUNT_SUBTYPES,
                since=since,
            )
        return TransactionFilter(since=since)

    def find_candidates(
        self, transactions: List[NormalizedTransaction], as_of: date
    ) -> List[ScoredCandidate]:
        """
        Group, classify and score normalized transactions.

        Groups without enough occurrences or without a regular interval are
        dropped silently.
        """
        candidates = []
        for series in group_candidates(
            transactions, min_occurrences=self.settings.RECURRING_MIN_OCCURRENCES
        ):
            classification = classify_series(
                series, min_modal_count=self.settings.RECURRING_MIN_MODAL_COUNT
            )
            if classification is None:
                continue

            candidate = score_candidate(
                series,
                classification,
                as_of,
                count_saturation=self.settings.RECURRING_COUNT_SATURATION,
            )
            if candidate.is_overdue:
                logger.info(
                    "recurring_candidate_overdue",
                    name=candidate.name,
                    frequency=candidate.frequency.value,
                    next_due_date=candidate.next_due_date.isoformat(),
                )
            candidates.append(candidate)
        return candidates

    async def detect_recurring_patterns(
        self,
        user_id: UUID,
        mode: Union[str, RecurringKind],
        as_of: Optional[date] = None,
    ) -> DetectionResult:
        """
        Detect recurring expenses or income for a user and persist suggestions.

        Args:
            user_id: User whose transactions are analyzed
            mode: "expense" or "income"
            as_of: Reference date for lookback and overdue checks (default today)

        Returns:
            DetectionResult with created and updated records, the number of
            candidates suppressed by a dismissal, per-candidate errors and
            the active records overdue as of ``as_of``

        Raises:
            ValueError: If mode is not "expense" or "income"
        """
        kind = parse_mode(mode)
        as_of = as_of or date.today()
        log = logger.bind(user_id=str(user_id), mode=kind.value)
        log.info("recurring_detection_started", as_of=as_of.isoformat())

        async with user_lock(user_id):
            raw = await self.transactions.list_transactions(
                user_id, self._transaction_filter(kind, as_of)
            )
            normalized = normalize_transactions(raw, kind)
            if not normalized:
                log.info("recurring_detection_completed", transactions=0, created=0, updated=0)
                return DetectionResult()

            candidates = self.find_candidates(normalized, as_of)

            active = await self.records.list_active(user_id, kind)
            dismissed = await self.records.list_dismissed(user_id, kind)

            plan = Reconciler(
                user_id,
                kind,
                amount_tolerance=self.settings.RECURRING_AMOUNT_TOLERANCE,
                drift_penalty=self.settings.RECURRING_DRIFT_PENALTY,
                count_saturation=self.settings.RECURRING_COUNT_SATURATION,
            ).reconcile(candidates, active, dismissed, normalized)

            result = DetectionResult(suppressed=plan.suppressed)
            writes = [(r, result.created) for r in plan.creates]
            writes += [(r, result.updated) for r in plan.updates]

            for record, bucket in writes:
                try:
                    record_id = await self.records.upsert(record)
                    await self.records.commit()
                except Exception as e:
                    await self.records.rollback()
                    log.warning(
                        "recurring_candidate_upsert_failed",
                        name=record.name,
                        amount=str(record.amount),
                        frequency=record.frequency.value,
                        error=str(e),
                    )
                    result.errors.append(
                        CandidateError(
                            name=record.name,
                            amount=record.amount,
                            frequency=record.frequency,
                            error=str(e),
                        )
                    )
                    continue
                bucket.append(record.model_copy(update={"id": record_id}))

            result.overdue = [
                record
                for record in await self.records.list_active(user_id, kind)
                if record.next_due_date is not None
                and is_overdue(record.next_due_date, record.frequency, as_of)
            ]

        log.info(
            "recurring_detection_completed",
            transactions=len(normalized),
            candidates=len(candidates),
            created=len(result.created),
            updated=len(result.updated),
            suppressed=result.suppressed,
            errors=len(result.errors),
            overdue=len(result.overdue),
        )
        return result

    async def _get_or_raise(self, user_id: UUID, record_id: UUID) -> RecurringRecordData:
        record = await self.records.get(user_id, record_id)
        if record is None:
            raise RecordNotFoundError(user_id, record_id)
        return record

    async def _save(self, record: RecurringRecordData) -> RecurringRecordData:
        try:
            await self.records.upsert(record)
            await self.records.commit()
        except Exception:
            await self.records.rollback()
            raise
        return await self._get_or_raise(record.user_id, record.id)

    async def confirm_record(self, user_id: UUID, record_id: UUID) -> RecurringRecordData:
        """
        Confirm a suggested record.

        A record flagged for review after an amount change is re-based to the
        latest observed amount.

        Raises:
            RecordNotFoundError: If the record does not exist for the user
        """
        record = await self._get_or_raise(user_id, record_id)

        record.is_confirmed = True
        record.is_active = True
        record.dismissed_at = None
        if record.needs_review and record.latest_amount is not None:
            record.amount = record.latest_amount
        record.needs_review = False
        record.latest_amount = None

        logger.info("recurring_record_confirmed", user_id=str(user_id), record_id=str(record_id))
        return await self._save(record)

    async def dismiss_record(self, user_id: UUID, record_id: UUID) -> RecurringRecordData:
        """
        Dismiss a record.

        Dismissed records stay stored so later runs suppress the same pattern.

        Raises:
            RecordNotFoundError: If the record does not exist for the user
        """
        record = await self._get_or_raise(user_id, record_id)

        record.is_active = False
        record.is_confirmed = False
        record.dismissed_at = utc_now()

        logger.info("recurring_record_dismissed", user_id=str(user_id), record_id=str(record_id))
        return await self._save(record)

    async def get_recurring_records(
        self,
        user_id: UUID,
        kind: Optional[Union[str, RecurringKind]] = None,
        is_active: Optional[bool] = None,
    ) -> List[RecurringRecordData]:
        """Get a user's recurring records, highest confidence first."""
        parsed = parse_mode(kind) if kind is not None else None

        records: List[RecurringRecordData] = []
        if is_active is None or is_active:
            records.extend(await self.records.list_active(user_id, parsed))
        if is_active is None or not is_active:
            records.extend(await self.records.list_dismissed(user_id, parsed))

        return sorted(records, key=lambda r: (-r.confidence, r.name))


def get_recurring_detection_service(db: AsyncSession) -> RecurringDetectionService:
    """Build a detection service backed by the database session."""
    return RecurringDetectionService(
        SQLAlchemyTransactionStore(db),
        SQLAlchemyRecurringRecordStore(db),
    )
