"""
Transaction normalization.

Cleans merchant/description strings so that noisy provider descriptions of
the same charge land in the same group, and resolves each transaction's
sign into income/expense polarity using its account's inversion flag.
"""

import enum
import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from cadence.utils.datetime_utils import coerce_date

logger = logging.getLogger(__name__)


class RecurringKind(str, enum.Enum):
    """Which side of the ledger a recurring series sits on."""

    EXPENSE = "expense"
    INCOME = "income"


UNKNOWN_NAME = "unknown"

# Applied after lowercasing, repeatedly, until the name stops changing
_TRAILING_SUFFIXES = (
    re.compile(r"\s*[#*]\s*[a-z0-9-]*\d[a-z0-9-]*\s*$"),  # "#1234", "*ab12cd"
    re.compile(r"\s+(?:ref|id|no|conf)\.?:?\s*[a-z0-9-]*\d[a-z0-9-]*\s*$"),  # "ref 8812"
    re.compile(r"\s+\d{4,}\s*$"),  # store / terminal numbers
)
_PUNCTUATION = re.compile(r"[^\w\s.&']")
_WHITESPACE = re.compile(r"\s+")


def normalize_name(raw: Optional[str]) -> str:
    """
    Clean a merchant or description string for grouping.

    Examples:
        >>> normalize_name("NETFLIX.COM")
        'netflix.com'
        >>> normalize_name("SHELL OIL 57442")
        'shell oil'
        >>> normalize_name("AMZN Mktp US*2K4PL1")
        'amzn mktp us'
    """
    if not raw:
        return UNKNOWN_NAME

    name = raw.lower().strip()

    previous = None
    while previous != name:
        previous = name
        for pattern in _TRAILING_SUFFIXES:
            name = pattern.sub("", name)

    name = _PUNCTUATION.sub(" ", name)
    name = _WHITESPACE.sub(" ", name).strip(" .&'")
    return name or UNKNOWN_NAME


def effective_amount(amount: Decimal, polarity_inverted: bool) -> Decimal:
    """Apply an account's sign convention. Positive = income, negative = expense."""
    return -amount if polarity_inverted else amount


@dataclass(frozen=True)
class NormalizedTransaction:
    """A transaction reduced to what grouping and classification need."""

    transaction_id: UUID
    account_id: Optional[UUID]
    date: date
    name: str
    merchant_name: Optional[str]
    category: Optional[str]
    effective_amount: Decimal

    @property
    def is_income(self) -> bool:
        return self.effective_amount > 0

    @property
    def is_expense(self) -> bool:
        return self.effective_amount < 0

    @property
    def absolute_amount(self) -> Decimal:
        return abs(self.effective_amount)

    def matches_kind(self, kind: RecurringKind) -> bool:
        return self.is_income if kind == RecurringKind.INCOME else self.is_expense


def normalize_transaction(record, kind: RecurringKind) -> Optional[NormalizedTransaction]:
    """
    Normalize one transaction record.

    Expense descriptions prefer the provider's merchant name; income
    descriptions prefer the raw name, since payroll deposits rarely carry a
    merchant.

    Returns:
        The normalized transaction, or None if the record has no date.
    """
    txn_date = coerce_date(getattr(record, "date", None))
    if txn_date is None:
        return None

    name = getattr(record, "name", None)
    merchant_name = getattr(record, "merchant_name", None)
    if kind == RecurringKind.INCOME:
        raw_name = name or merchant_name
    else:
        raw_name = merchant_name or name

    amount = record.amount if isinstance(record.amount, Decimal) else Decimal(str(record.amount))

    return NormalizedTransaction(
        transaction_id=record.id,
        account_id=getattr(record, "account_id", None),
        date=txn_date,
        name=normalize_name(raw_name),
        merchant_name=merchant_name,
        category=getattr(record, "category", None),
        effective_amount=effective_amount(
            amount, bool(getattr(record, "account_polarity_inverted", False))
        ),
    )


def normalize_transactions(records: Iterable, kind: RecurringKind) -> list[NormalizedTransaction]:
    """
    Normalize a user's transactions and keep those with the requested polarity.

    Undated records are skipped. A record that fails to normalize for any
    other reason is dropped with a warning; it never fails the run.
    """
    normalized: list[NormalizedTransaction] = []
    skipped_undated = 0

    for record in records:
        try:
            txn = normalize_transaction(record, kind)
        except Exception as e:
            logger.warning(
                "Dropping transaction %s during normalization: %s",
                getattr(record, "id", "<unknown>"),
                e,
            )
            continue

        if txn is None:
            skipped_undated += 1
            continue

        if txn.matches_kind(kind):
            normalized.append(txn)

    if skipped_undated:
        logger.info("Skipped %d transactions without a date", skipped_undated)

    return normalized
