"""
Storage interfaces for recurring detection.

Detection reads transactions and reads/writes recurring records only through
these interfaces, so the same service runs against the SQL database or an
in-memory store without changes.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from cadence.detection.normalizer import RecurringKind
from cadence.schemas.recurring_record import RecurringRecordData
from cadence.schemas.transaction import TransactionFilter, TransactionRecord


class TransactionStore(ABC):
    """
    Source of a user's transactions.

    Implementations: SQLAlchemyTransactionStore, InMemoryTransactionStore
    """

    @abstractmethod
    async def list_transactions(
        self, user_id: UUID, filter: Optional[TransactionFilter] = None
    ) -> List[TransactionRecord]:
        """
        List a user's transactions.

        Args:
            user_id: Owner of the accounts
            filter: Optional account type/subtype, polarity and date restrictions

        Returns:
            Transactions with their account's polarity flag applied
        """
        pass


class RecurringRecordStore(ABC):
    """
    Persistence for recurring records.

    Records are keyed on ``(user_id, kind, name, amount, frequency)``;
    ``upsert`` inserts a new record or overwrites the one with the same key.

    Implementations: SQLAlchemyRecurringRecordStore, InMemoryRecurringRecordStore
    """

    @abstractmethod
    async def upsert(self, record: RecurringRecordData) -> UUID:
        """
        Insert or update a record and merge its linked transaction ids.

        Returns:
            Id of the stored record
        """
        pass

    @abstractmethod
    async def list_active(
        self, user_id: UUID, kind: Optional[RecurringKind] = None
    ) -> List[RecurringRecordData]:
        """List a user's active records, optionally of one kind."""
        pass

    @abstractmethod
    async def list_dismissed(
        self, user_id: UUID, kind: Optional[RecurringKind] = None
    ) -> List[RecurringRecordData]:
        """List records the user dismissed, optionally of one kind."""
        pass

    @abstractmethod
    async def get(self, user_id: UUID, record_id: UUID) -> Optional[RecurringRecordData]:
        """Get one of the user's records, or None."""
        pass

    async def rollback(self) -> None:
        """Discard pending writes after a failed upsert. No-op by default."""
        return None

    async def commit(self) -> None:
        """Make writes durable. No-op by default."""
        return None
