"""Storage interface for the issue delivery queue (outbox)."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True)
class DeliveryTask:
  """One pending (issue, recipient) delivery."""

  issue_id: uuid.UUID
  subscriber_email: str


class DeliveryQueueRepository(Protocol):
  """Repository contract for outbox rows."""

  async def enqueue_for_confirmed_subscribers(self, session: AsyncSession, *, issue_id: uuid.UUID) -> int:
    """Insert one task per confirmed subscriber in a single set-based statement and return the count."""

  async def dequeue(self, session: AsyncSession) -> DeliveryTask | None:
    """Lock one pending task for the lifetime of `session`, skipping rows locked elsewhere."""

  async def delete(self, session: AsyncSession, task: DeliveryTask) -> None:
    """Remove a resolved task; durable once the session commits."""

  async def count_pending(self, session: AsyncSession, *, issue_id: uuid.UUID | None = None) -> int:
    """Count pending tasks, optionally for a single issue."""
