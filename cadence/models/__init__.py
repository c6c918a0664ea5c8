"""SQLAlchemy models package."""

from cadence.models.user import User
from cadence.models.account import Account, AccountType
from cadence.models.transaction import Transaction
from cadence.models.recurring_record import (
    RecurringKind,
    RecurringRecord,
    RecurringRecordTransaction,
)

__all__ = [
    "User",
    "Account",
    "AccountType",
    "Transaction",
    "RecurringKind",
    "RecurringRecord",
    "RecurringRecordTransaction",
]
