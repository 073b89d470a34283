from __future__ import annotations

from dataclasses import dataclass

from newsletter.storage.delivery_queue_repo import DeliveryQueueRepository
from newsletter.storage.idempotency_repo import IdempotencyRepository
from newsletter.storage.issues_repo import IssuesRepository
from newsletter.storage.postgres_delivery_queue_repo import PostgresDeliveryQueueRepository
from newsletter.storage.postgres_idempotency_repo import PostgresIdempotencyRepository
from newsletter.storage.postgres_issues_repo import PostgresIssuesRepository


@dataclass(frozen=True)
class Repositories:
  """The three tables written together by a publish."""

  idempotency: IdempotencyRepository
  issues: IssuesRepository
  delivery_queue: DeliveryQueueRepository


def build_postgres_repositories() -> Repositories:
  """Return the Postgres-backed repositories."""
  return Repositories(idempotency=PostgresIdempotencyRepository(), issues=PostgresIssuesRepository(), delivery_queue=PostgresDeliveryQueueRepository())
