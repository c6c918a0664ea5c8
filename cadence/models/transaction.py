"""Transaction model."""

import uuid

from sqlalchemy import Column, String, DateTime, Date, ForeignKey, Numeric, Index
from sqlalchemy.orm import relationship

from cadence.core.database import Base
from cadence.core.db_types import UUID
from cadence.utils.datetime_utils import utc_now_lambda


class Transaction(Base):
    """Financial transaction as imported from the account provider."""

    __tablename__ = "transactions"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    account_id = Column(
        UUID(),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Nullable: provider feeds occasionally deliver undated rows
    date = Column(Date, nullable=True, index=True)
    amount = Column(Numeric(15, 2), nullable=False)  # Raw provider sign, see Account.invert_transactions
    name = Column(String(500), nullable=False)
    merchant_name = Column(String(255), nullable=True, index=True)
    category = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)

    # Relationships
    account = relationship("Account", back_populates="transactions")

    __table_args__ = (
        Index("ix_transactions_account_date", "account_id", "date"),
    )
