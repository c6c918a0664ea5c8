"""Recurring record models."""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from cadence.core.database import Base
from cadence.core.db_types import UUID
from cadence.detection.frequency import FrequencyLabel
from cadence.detection.normalizer import RecurringKind
from cadence.utils.datetime_utils import utc_now_lambda


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class RecurringRecord(Base):
    """Detected recurring bill, subscription or income stream."""

    __tablename__ = "recurring_records"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        UUID(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind = Column(SQLEnum(RecurringKind, values_callable=_enum_values), nullable=False)

    # Pattern details
    name = Column(String(255), nullable=False)  # Normalized name, also the match key
    merchant_name = Column(String(255), nullable=True)
    category = Column(String(100), nullable=True)
    amount = Column(Numeric(15, 2), nullable=False)  # Always positive
    frequency = Column(SQLEnum(FrequencyLabel, values_callable=_enum_values), nullable=False)

    # Tracking
    next_due_date = Column(Date, nullable=True)
    last_transaction_date = Column(Date, nullable=False)
    occurrence_count = Column(Integer, default=0, nullable=False)
    confidence = Column(Integer, nullable=False)  # 0-100

    # Status
    is_active = Column(Boolean, default=True, nullable=False)
    is_confirmed = Column(Boolean, default=False, nullable=False)
    needs_review = Column(Boolean, default=False, nullable=False)  # Amount drifted, re-confirm
    latest_amount = Column(Numeric(15, 2), nullable=True)  # Most recent drifted amount
    dismissed_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)
    updated_at = Column(DateTime, default=utc_now_lambda, onupdate=utc_now_lambda, nullable=False)

    # Relationships
    transaction_links = relationship(
        "RecurringRecordTransaction",
        back_populates="recurring_record",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "kind", "name", "amount", "frequency", name="uq_recurring_record_key"
        ),
        Index("ix_recurring_records_user_active", "user_id", "is_active"),
    )

    @property
    def linked_transaction_ids(self) -> list[uuid.UUID]:
        return [link.transaction_id for link in self.transaction_links]


class RecurringRecordTransaction(Base):
    """Link between a recurring record and a transaction that evidences it."""

    __tablename__ = "recurring_record_transactions"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    recurring_record_id = Column(
        UUID(),
        ForeignKey("recurring_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    transaction_id = Column(
        UUID(),
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)

    recurring_record = relationship("RecurringRecord", back_populates="transaction_links")

    __table_args__ = (
        UniqueConstraint(
            "recurring_record_id", "transaction_id", name="uq_recurring_record_transaction"
        ),
    )
