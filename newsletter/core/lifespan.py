import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from urllib.parse import urlparse

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsletter.config import Settings, get_settings
from newsletter.core.database import dispose_db_engine, get_session_factory
from newsletter.core.logging import initialize_logging
from newsletter.idempotency.store import IdempotencyStore
from newsletter.jobs.runner import DeliveryWorkerHandle, build_delivery_worker, start_delivery_workers, stop_delivery_workers
from newsletter.jobs.worker import IssueDeliveryWorker
from newsletter.notifications.contracts import EmailClient
from newsletter.notifications.factory import build_email_client
from newsletter.services.publishing import PublishCoordinator
from newsletter.storage.factory import Repositories, build_postgres_repositories

logger = logging.getLogger("newsletter.core.lifespan")


@dataclass
class ServiceState:
  """Objects owned by the running process and torn down on shutdown."""

  session_factory: async_sessionmaker[AsyncSession]
  repositories: Repositories
  publish_coordinator: PublishCoordinator
  delivery_worker: IssueDeliveryWorker
  email_client: EmailClient
  worker_handles: list[DeliveryWorkerHandle] = field(default_factory=list)


def build_service_state(settings: Settings) -> ServiceState | None:
  """Wire repositories, the publish coordinator and the delivery worker from settings."""
  session_factory = get_session_factory()
  if session_factory is None:
    return None

  repositories = build_postgres_repositories()
  idempotency_store = IdempotencyStore(
    session_factory=session_factory, repository=repositories.idempotency, poll_attempts=settings.idempotency_poll_attempts, poll_interval_seconds=settings.idempotency_poll_interval_ms / 1000.0
  )
  coordinator = PublishCoordinator(idempotency_store=idempotency_store, issues_repo=repositories.issues, delivery_queue_repo=repositories.delivery_queue, redirect_location=settings.publish_redirect_location)
  email_client = build_email_client(settings)
  worker = build_delivery_worker(settings=settings, session_factory=session_factory, repositories=repositories, email_client=email_client)
  return ServiceState(session_factory=session_factory, repositories=repositories, publish_coordinator=coordinator, delivery_worker=worker, email_client=email_client)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging, wire services and run delivery workers alongside request handling."""
  settings = get_settings()
  initialize_logging(settings)
  logger.info("Starting newsletter service environment=%s database=%s", settings.environment, _redact_dsn(settings.pg_dsn))

  state = build_service_state(settings)
  app.state.services = state
  if state is None:
    logger.warning("NEWSLETTER_PG_DSN is not set; publishing and delivery are unavailable.")
  elif settings.delivery_workers > 0:
    state.worker_handles = start_delivery_workers(state.delivery_worker, count=settings.delivery_workers, shutdown_grace_seconds=settings.worker_shutdown_grace_seconds)
  else:
    logger.info("NEWSLETTER_DELIVERY_WORKERS=0; delivery runs in a separate process.")

  try:
    yield
  finally:
    if state is not None:
      await stop_delivery_workers(state.worker_handles)
      await state.email_client.aclose()
    await dispose_db_engine()
    logger.info("Newsletter service stopped")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
