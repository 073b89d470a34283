from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, PrimaryKeyConstraint, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from newsletter.core.database import Base


class IssueDeliveryTask(Base):
  """Pending delivery of one issue to one address. The row existing is the pending state."""

  __tablename__ = "issue_delivery_queue"
  __table_args__ = (PrimaryKeyConstraint("newsletter_issue_id", "subscriber_email", name="pk_issue_delivery_queue"),)

  newsletter_issue_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("newsletter_issues.newsletter_issue_id", ondelete="CASCADE"), nullable=False)
  subscriber_email: Mapped[str] = mapped_column(Text, nullable=False)
