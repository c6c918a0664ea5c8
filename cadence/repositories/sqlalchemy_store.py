"""SQLAlchemy-backed transaction and recurring record stores."""

import logging
import uuid
from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from cadence.detection.normalizer import RecurringKind
from cadence.models.account import Account, AccountType
from cadence.models.recurring_record import RecurringRecord, RecurringRecordTransaction
from cadence.models.transaction import Transaction
from cadence.repositories.base import RecurringRecordStore, TransactionStore
from cadence.schemas.recurring_record import RecurringRecordData
from cadence.schemas.transaction import TransactionFilter, TransactionRecord
from cadence.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

# Columns an upsert may change; key conflicts skip the lifecycle fields
_MUTABLE_FIELDS = (
    "merchant_name",
    "category",
    "next_due_date",
    "last_transaction_date",
    "occurrence_count",
    "confidence",
    "is_active",
    "is_confirmed",
    "needs_review",
    "latest_amount",
    "dismissed_at",
)

_KEY_COLUMNS = ("user_id", "kind", "name", "amount", "frequency")

# Only changed through an update of a known record id
_LIFECYCLE_FIELDS = ("is_active", "is_confirmed", "dismissed_at")


class SQLAlchemyTransactionStore(TransactionStore):
    """Reads transactions joined to their accounts."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_transactions(
        self, user_id: UUID, filter: Optional[TransactionFilter] = None
    ) -> List[TransactionRecord]:
        conditions = [Account.user_id == user_id]

        if filter is not None:
            if filter.account_types:
                conditions.append(
                    Account.account_type.in_([AccountType(t) for t in filter.account_types])
                )
            if filter.account_subtypes:
                conditions.append(Account.account_subtype.in_(filter.account_subtypes))
            if filter.polarity_inverted is not None:
                conditions.append(Account.invert_transactions == filter.polarity_inverted)
            if filter.since is not None:
                conditions.append(Transaction.date >= filter.since)

        result = await self.db.execute(
            select(Transaction, Account.invert_transactions)
            .join(Account, Transaction.account_id == Account.id)
            .where(and_(*conditions))
            .order_by(Transaction.date.desc())
        )

        return [
            TransactionRecord(
                id=txn.id,
                account_id=txn.account_id,
                date=txn.date,
                name=txn.name,
                merchant_name=txn.merchant_name,
                category=txn.category,
                amount=txn.amount,
                account_polarity_inverted=inverted,
            )
            for txn, inverted in result.all()
        ]


class SQLAlchemyRecurringRecordStore(RecurringRecordStore):
    """
    Stores recurring records in the ``recurring_records`` table.

    New records are written with an insert-on-conflict upsert against the
    ``uq_recurring_record_key`` constraint, so concurrent runs in separate
    processes cannot create duplicates. Records that already have an id are
    updated in place, which also covers a change of amount after a price
    change. A key conflict leaves the stored lifecycle fields alone, so a
    run racing a dismissal cannot reactivate the record.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert
        if dialect == "sqlite":
            return sqlite_insert
        raise NotImplementedError(f"Upsert not supported for dialect '{dialect}'")

    async def upsert(self, record: RecurringRecordData) -> UUID:
        record_id = None
        if record.id is not None:
            existing = await self.db.get(RecurringRecord, record.id)
            if existing is not None and existing.user_id == record.user_id:
                for column in _KEY_COLUMNS[1:] + _MUTABLE_FIELDS:
                    setattr(existing, column, getattr(record, column))
                existing.updated_at = utc_now()
                await self.db.flush()
                record_id = existing.id

        if record_id is None:
            values = {column: getattr(record, column) for column in _KEY_COLUMNS + _MUTABLE_FIELDS}
            values["id"] = record.id or uuid.uuid4()

            insert = self._insert()
            stmt = insert(RecurringRecord).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=list(_KEY_COLUMNS),
                set_={
                    **{
                        column: stmt.excluded[column]
                        for column in _MUTABLE_FIELDS
                        if column not in _LIFECYCLE_FIELDS
                    },
                    "updated_at": utc_now(),
                },
            ).returning(RecurringRecord.id)

            result = await self.db.execute(stmt)
            record_id = result.scalar_one()

        await self._merge_links(record_id, record.linked_transaction_ids)
        return record_id

    async def _merge_links(self, record_id: UUID, transaction_ids: List[UUID]) -> None:
        if not transaction_ids:
            return

        result = await self.db.execute(
            select(RecurringRecordTransaction.transaction_id).where(
                RecurringRecordTransaction.recurring_record_id == record_id
            )
        )
        linked = set(result.scalars().all())
        missing = [t for t in dict.fromkeys(transaction_ids) if t not in linked]
        if not missing:
            return

        now = utc_now()
        insert = self._insert()
        stmt = insert(RecurringRecordTransaction).values(
            [
                {
                    "id": uuid.uuid4(),
                    "recurring_record_id": record_id,
                    "transaction_id": transaction_id,
                    "created_at": now,
                }
                for transaction_id in missing
            ]
        )
        # A concurrent run may have linked the same transaction already
        stmt = stmt.on_conflict_do_nothing(index_elements=["recurring_record_id", "transaction_id"])
        await self.db.execute(stmt)
        logger.debug("Linked %d transactions to recurring record %s", len(missing), record_id)

    async def _list(self, user_id: UUID, is_active: bool, kind: Optional[RecurringKind]):
        conditions = [RecurringRecord.user_id == user_id, RecurringRecord.is_active == is_active]
        if kind is not None:
            conditions.append(RecurringRecord.kind == kind)

        result = await self.db.execute(
            select(RecurringRecord)
            .where(and_(*conditions))
            .order_by(RecurringRecord.name, RecurringRecord.amount)
            .execution_options(populate_existing=True)
        )
        return [RecurringRecordData.model_validate(row) for row in result.scalars().all()]

    async def list_active(
        self, user_id: UUID, kind: Optional[RecurringKind] = None
    ) -> List[RecurringRecordData]:
        return await self._list(user_id, True, kind)

    async def list_dismissed(
        self, user_id: UUID, kind: Optional[RecurringKind] = None
    ) -> List[RecurringRecordData]:
        return await self._list(user_id, False, kind)

    async def get(self, user_id: UUID, record_id: UUID) -> Optional[RecurringRecordData]:
        result = await self.db.execute(
            select(RecurringRecord)
            .where(
                and_(
                    RecurringRecord.id == record_id,
                    RecurringRecord.user_id == user_id,
                )
            )
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return RecurringRecordData.model_validate(row) if row else None

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()
