"""Storage adapters for transactions and recurring records."""

from cadence.repositories.base import RecurringRecordStore, TransactionStore
from cadence.repositories.memory_store import InMemoryRecurringRecordStore, InMemoryTransactionStore
from cadence.repositories.sqlalchemy_store import (
    SQLAlchemyRecurringRecordStore,
    SQLAlchemyTransactionStore,
)

__all__ = [
    "TransactionStore",
    "RecurringRecordStore",
    "InMemoryTransactionStore",
    "InMemoryRecurringRecordStore",
    "SQLAlchemyTransactionStore",
    "SQLAlchemyRecurringRecordStore",
]
