from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, LargeBinary, PrimaryKeyConstraint, SmallInteger, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from newsletter.core.database import Base


class IdempotencyRecord(Base):
  """One row per (owner, key); a NULL status code marks a request still being processed."""

  __tablename__ = "idempotency"
  __table_args__ = (PrimaryKeyConstraint("owner_id", "idempotency_key", name="pk_idempotency"),)

  owner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
  idempotency_key: Mapped[str] = mapped_column(Text, nullable=False)
  response_status_code: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
  # Ordered [name, value] pairs; duplicates are allowed, as on the wire.
  response_headers: Mapped[list | None] = mapped_column(JSONB, nullable=True)
  response_body: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
