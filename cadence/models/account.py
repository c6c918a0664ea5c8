"""Account model."""

import enum
import uuid

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship

from cadence.core.database import Base
from cadence.core.db_types import UUID
from cadence.utils.datetime_utils import utc_now_lambda


class AccountType(str, enum.Enum):
    """Top-level account types as reported by the account provider."""

    DEPOSITORY = "depository"
    CREDIT = "credit"
    LOAN = "loan"
    INVESTMENT = "investment"
    OTHER = "other"


class Account(Base):
    """Financial account (checking, savings, credit card, etc.)."""

    __tablename__ = "accounts"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    account_type = Column(
        SQLEnum(AccountType, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    account_subtype = Column(String(50), nullable=True, index=True)  # checking, savings, ...

    # Some institutions report amounts with the sign reversed
    invert_transactions = Column(Boolean, default=False, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)
    updated_at = Column(DateTime, default=utc_now_lambda, onupdate=utc_now_lambda, nullable=False)

    # Relationships
    user = relationship("User", back_populates="accounts")
    transactions = relationship("Transaction", back_populates="account", cascade="all, delete-orphan")
