from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from newsletter.core.database import Base


class SubscriptionStatus(str, Enum):
  PENDING_CONFIRMATION = "pending_confirmation"
  CONFIRMED = "confirmed"


class Subscription(Base):
  """Subscriber rows written by the signup flow; only read here to snapshot recipients."""

  __tablename__ = "subscriptions"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
  name: Mapped[str] = mapped_column(Text, nullable=False)
  subscribed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  status: Mapped[str] = mapped_column(String, nullable=False, index=True, default=SubscriptionStatus.PENDING_CONFIRMATION.value)
