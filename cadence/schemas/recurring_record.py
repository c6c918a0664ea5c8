"""Recurring record schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from cadence.detection.frequency import FrequencyLabel
from cadence.detection.normalizer import RecurringKind


class RecurringRecordData(BaseModel):
    """Storage-independent view of a persisted recurring record."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[UUID] = None  # None until first persisted
    user_id: UUID
    kind: RecurringKind
    name: str
    merchant_name: Optional[str] = None
    category: Optional[str] = None
    amount: Decimal = Field(gt=0)
    frequency: FrequencyLabel
    next_due_date: Optional[date] = None
    last_transaction_date: date
    occurrence_count: int = Field(default=0, ge=0)
    confidence: int = Field(ge=0, le=100)
    is_active: bool = True
    is_confirmed: bool = False
    needs_review: bool = False
    latest_amount: Optional[Decimal] = None
    dismissed_at: Optional[datetime] = None
    linked_transaction_ids: list[UUID] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CandidateError(BaseModel):
    """A candidate whose upsert failed during a detection run."""

    name: str
    amount: Decimal
    frequency: FrequencyLabel
    error: str


class DetectionResult(BaseModel):
    """Outcome of one detection run."""

    created: list[RecurringRecordData] = Field(default_factory=list)
    updated: list[RecurringRecordData] = Field(default_factory=list)
    suppressed: int = 0
    errors: list[CandidateError] = Field(default_factory=list)
    overdue: list[RecurringRecordData] = Field(default_factory=list)
