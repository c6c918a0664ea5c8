"""In-memory stores, for tests and one-off analysis of exported transactions."""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from cadence.detection.frequency import FrequencyLabel
from cadence.detection.normalizer import RecurringKind
from cadence.repositories.base import RecurringRecordStore, TransactionStore
from cadence.schemas.recurring_record import RecurringRecordData
from cadence.schemas.transaction import TransactionFilter, TransactionRecord
from cadence.utils.datetime_utils import utc_now

RecordKey = Tuple[UUID, RecurringKind, str, Decimal, FrequencyLabel]

CENTS = Decimal("0.01")


def record_key(record: RecurringRecordData) -> RecordKey:
    """Uniqueness key of a recurring record."""
    return (
        record.user_id,
        record.kind,
        record.name,
        record.amount.quantize(CENTS),
        record.frequency,
    )


@dataclass
class _StoredTransaction:
    user_id: UUID
    account_type: str
    account_subtype: Optional[str]
    record: TransactionRecord


class InMemoryTransactionStore(TransactionStore):
    """Holds transactions together with the account attributes filters need."""

    def __init__(self):
        self._rows: List[_StoredTransaction] = []

    def add(
        self,
        user_id: UUID,
        record: TransactionRecord,
        account_type: str = "depository",
        account_subtype: Optional[str] = "checking",
    ) -> TransactionRecord:
        self._rows.append(_StoredTransaction(user_id, account_type, account_subtype, record))
        return record

    async def list_transactions(
        self, user_id: UUID, filter: Optional[TransactionFilter] = None
    ) -> List[TransactionRecord]:
        rows = [row for row in self._rows if row.user_id == user_id]

        if filter is not None:
            if filter.account_types:
                rows = [r for r in rows if r.account_type in filter.account_types]
            if filter.account_subtypes:
                rows = [r for r in rows if r.account_subtype in filter.account_subtypes]
            if filter.polarity_inverted is not None:
                rows = [
                    r
                    for r in rows
                    if r.record.account_polarity_inverted == filter.polarity_inverted
                ]
            if filter.since is not None:
                rows = [r for r in rows if r.record.date is not None and r.record.date >= filter.since]

        return [row.record for row in rows]


class InMemoryRecurringRecordStore(RecurringRecordStore):
    """Dict-backed record store with the same upsert key as the SQL table."""

    def __init__(self):
        self._records: Dict[UUID, RecurringRecordData] = {}
        self._keys: Dict[RecordKey, UUID] = {}

    def __len__(self) -> int:
        return len(self._records)

    async def upsert(self, record: RecurringRecordData) -> UUID:
        now = utc_now()
        record_id = record.id if record.id in self._records else None
        if record_id is None:
            record_id = self._keys.get(record_key(record))

        existing = self._records.get(record_id) if record_id else None
        if existing is not None and existing.user_id != record.user_id:
            existing, record_id = None, None

        if existing is None:
            record_id = record.id or uuid.uuid4()
            stored = record.model_copy(
                deep=True, update={"id": record_id, "created_at": now, "updated_at": now}
            )
        else:
            links = list(dict.fromkeys(existing.linked_transaction_ids + record.linked_transaction_ids))
            update = {
                "id": record_id,
                "created_at": existing.created_at,
                "updated_at": now,
                "linked_transaction_ids": links,
            }
            if record.id != record_id:
                # Key conflict: lifecycle changes need the record's id
                update.update(
                    is_active=existing.is_active,
                    is_confirmed=existing.is_confirmed,
                    dismissed_at=existing.dismissed_at,
                )
            stored = record.model_copy(deep=True, update=update)
            del self._keys[record_key(existing)]

        clashing = self._keys.get(record_key(stored))
        if clashing is not None and clashing != record_id:
            raise ValueError(f"A recurring record with key {record_key(stored)} already exists")

        self._records[record_id] = stored
        self._keys[record_key(stored)] = record_id
        return record_id

    def _list(self, user_id: UUID, is_active: bool, kind: Optional[RecurringKind]):
        records = [
            r.model_copy(deep=True)
            for r in self._records.values()
            if r.user_id == user_id
            and r.is_active == is_active
            and (kind is None or r.kind == kind)
        ]
        return sorted(records, key=lambda r: (r.name, r.amount))

    async def list_active(
        self, user_id: UUID, kind: Optional[RecurringKind] = None
    ) -> List[RecurringRecordData]:
        return self._list(user_id, True, kind)

    async def list_dismissed(
        self, user_id: UUID, kind: Optional[RecurringKind] = None
    ) -> List[RecurringRecordData]:
        return self._list(user_id, False, kind)

    async def get(self, user_id: UUID, record_id: UUID) -> Optional[RecurringRecordData]:
        record = self._records.get(record_id)
        if record is None or record.user_id != user_id:
            return None
        return record.model_copy(deep=True)
