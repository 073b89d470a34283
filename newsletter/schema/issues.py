from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from newsletter.core.database import Base


class NewsletterIssue(Base):
  __tablename__ = "newsletter_issues"

  newsletter_issue_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
  title: Mapped[str] = mapped_column(Text, nullable=False)
  text_content: Mapped[str] = mapped_column(Text, nullable=False)
  html_content: Mapped[str] = mapped_column(Text, nullable=False)
  published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
