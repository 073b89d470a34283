"""Lifecycle ownership of delivery worker loops."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsletter.config import Settings
from newsletter.jobs.worker import IssueDeliveryWorker
from newsletter.notifications.contracts import EmailClient
from newsletter.storage.factory import Repositories

logger = logging.getLogger(__name__)


class DeliveryWorkerHandle:
  """Owns one cancellable asyncio task running IssueDeliveryWorker.run_until_stopped."""

  def __init__(self, worker: IssueDeliveryWorker, *, name: str = "issue-delivery-worker", shutdown_grace_seconds: float = 30.0) -> None:
    self._worker = worker
    self._name = name
    self._shutdown_grace_seconds = shutdown_grace_seconds
    self._stop_event = asyncio.Event()
    self._task: asyncio.Task[None] | None = None

  @property
  def name(self) -> str:
    return self._name

  @property
  def running(self) -> bool:
    return self._task is not None and not self._task.done()

  def start(self) -> None:
    if self.running:
      raise RuntimeError(f"Worker {self._name} is already running.")
    self._stop_event = asyncio.Event()
    self._task = asyncio.create_task(self._worker.run_until_stopped(self._stop_event), name=self._name)

  async def stop(self) -> None:
    """Request a graceful stop, cancelling the loop if it outlives the grace period."""
    task = self._task
    if task is None:
      return
    if task.done():
      self._task = None
      if not task.cancelled() and task.exception() is not None:
        logger.error("Worker %s exited with an error", self._name, exc_info=task.exception())
      return
    self._stop_event.set()
    try:
      await asyncio.wait_for(asyncio.shield(task), timeout=self._shutdown_grace_seconds)
    except asyncio.CancelledError:
      # Only swallow the loop's own cancellation; a cancelled caller keeps propagating.
      if not task.cancelled():
        raise
      logger.warning("Worker %s was cancelled before it stopped", self._name)
    except TimeoutError:
      # Cancelling mid-attempt rolls the attempt back; the task row stays pending.
      logger.warning("Worker %s did not stop within %.1fs; cancelling", self._name, self._shutdown_grace_seconds)
      task.cancel()
      with contextlib.suppress(asyncio.CancelledError):
        await task
    except Exception:  # noqa: BLE001
      logger.error("Worker %s exited with an error", self._name, exc_info=True)
    finally:
      self._task = None


def build_delivery_worker(*, settings: Settings, session_factory: async_sessionmaker[AsyncSession], repositories: Repositories, email_client: EmailClient) -> IssueDeliveryWorker:
  return IssueDeliveryWorker(
    session_factory=session_factory,
    delivery_queue_repo=repositories.delivery_queue,
    issues_repo=repositories.issues,
    email_client=email_client,
    idle_seconds=settings.worker_idle_seconds,
    error_seconds=settings.worker_error_seconds,
  )


def start_delivery_workers(worker: IssueDeliveryWorker, *, count: int, shutdown_grace_seconds: float) -> list[DeliveryWorkerHandle]:
  """Start `count` loops over the same worker; row locks keep them from sharing tasks."""
  handles = [DeliveryWorkerHandle(worker, name=f"issue-delivery-worker-{index}", shutdown_grace_seconds=shutdown_grace_seconds) for index in range(count)]
  for handle in handles:
    handle.start()
  logger.info("Started %d issue delivery worker(s)", len(handles))
  return handles


async def stop_delivery_workers(handles: list[DeliveryWorkerHandle]) -> None:
  await asyncio.gather(*(handle.stop() for handle in handles))
