"""User model."""

import uuid

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship

from cadence.core.database import Base
from cadence.core.db_types import UUID
from cadence.utils.datetime_utils import utc_now_lambda


class User(Base):
    """Owner of accounts and recurring records."""

    __tablename__ = "users"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)

    # Relationships
    accounts = relationship("Account", back_populates="user", cascade="all, delete-orphan")
