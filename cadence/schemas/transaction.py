"""Transaction schemas exchanged with the transaction store."""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class TransactionRecord(BaseModel):
    """Read-only view of a transaction, with its account's polarity flag."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    account_id: UUID
    date: Optional[date]  # None for malformed provider rows
    name: Optional[str] = None
    merchant_name: Optional[str] = None
    category: Optional[str] = None
    amount: Decimal
    account_polarity_inverted: bool = False

    @property
    def effective_amount(self) -> Decimal:
        """Amount with the account's sign convention applied (positive = income)."""
        return -self.amount if self.account_polarity_inverted else self.amount


class TransactionFilter(BaseModel):
    """Restricts which transactions a store returns."""

    account_types: Optional[list[str]] = None
    account_subtypes: Optional[list[str]] = None
    polarity_inverted: Optional[bool] = None
    since: Optional[date] = None
