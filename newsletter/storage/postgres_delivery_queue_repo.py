"""Postgres-backed delivery queue using row locks with SKIP LOCKED."""

from __future__ import annotations

import uuid

from sqlalchemy import delete, func, insert, literal, select
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter.schema.delivery_queue import IssueDeliveryTask
from newsletter.schema.sql import Subscription, SubscriptionStatus
from newsletter.storage.delivery_queue_repo import DeliveryTask


class PostgresDeliveryQueueRepository:
  """Persist outbox rows to the `issue_delivery_queue` table."""

  async def enqueue_for_confirmed_subscribers(self, session: AsyncSession, *, issue_id: uuid.UUID) -> int:
    # INSERT ... SELECT keeps the recipient snapshot consistent and avoids a round trip per subscriber.
    confirmed = select(literal(issue_id, type_=UUID(as_uuid=True)), Subscription.email).where(Subscription.status == SubscriptionStatus.CONFIRMED.value)
    stmt = insert(IssueDeliveryTask).from_select(["newsletter_issue_id", "subscriber_email"], confirmed)
    result = await session.execute(stmt)
    return int(result.rowcount or 0)

  async def dequeue(self, session: AsyncSession) -> DeliveryTask | None:
    stmt = select(IssueDeliveryTask.newsletter_issue_id, IssueDeliveryTask.subscriber_email).with_for_update(skip_locked=True).limit(1)
    row = (await session.execute(stmt)).one_or_none()
    if row is None:
      return None
    return DeliveryTask(issue_id=row.newsletter_issue_id, subscriber_email=row.subscriber_email)

  async def delete(self, session: AsyncSession, task: DeliveryTask) -> None:
    stmt = delete(IssueDeliveryTask).where(IssueDeliveryTask.newsletter_issue_id == task.issue_id, IssueDeliveryTask.subscriber_email == task.subscriber_email)
    await session.execute(stmt)

  async def count_pending(self, session: AsyncSession, *, issue_id: uuid.UUID | None = None) -> int:
    stmt = select(func.count()).select_from(IssueDeliveryTask)
    if issue_id is not None:
      stmt = stmt.where(IssueDeliveryTask.newsletter_issue_id == issue_id)
    return int(await session.scalar(stmt) or 0)
