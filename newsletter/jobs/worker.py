"""Background delivery of newsletter issues from the issue delivery queue."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsletter.domain.subscriber_email import InvalidSubscriberEmailError, SubscriberEmail
from newsletter.notifications.contracts import EmailClient, EmailMessage, PermanentEmailError, TransientEmailError
from newsletter.storage.delivery_queue_repo import DeliveryQueueRepository, DeliveryTask
from newsletter.storage.issues_repo import IssueNotFoundError, IssuesRepository
from newsletter.utils.db_errors import classify_db_failure

logger = logging.getLogger(__name__)


class ExecutionOutcome(str, Enum):
  TASK_COMPLETED = "task_completed"
  EMPTY_QUEUE = "empty_queue"


class IssueDeliveryWorker:
  """Drains the delivery queue one task per transaction.

  The dequeued row stays locked until the attempt's transaction ends. Deleting the row
  and committing is the only point at which a task counts as delivered, so a crash
  after sending but before commit leads to a second delivery rather than a lost one.
  """

  def __init__(
    self,
    *,
    session_factory: async_sessionmaker[AsyncSession],
    delivery_queue_repo: DeliveryQueueRepository,
    issues_repo: IssuesRepository,
    email_client: EmailClient,
    idle_seconds: float = 10.0,
    error_seconds: float = 1.0,
  ) -> None:
    self._session_factory = session_factory
    self._delivery_queue_repo = delivery_queue_repo
    self._issues_repo = issues_repo
    self._email_client = email_client
    self._idle_seconds = idle_seconds
    self._error_seconds = error_seconds

  async def try_execute_task(self) -> ExecutionOutcome:
    """Attempt one unit of work.

    Transient transport and storage errors roll the attempt back and propagate, leaving
    the task pending for a later attempt.
    """
    async with self._session_factory() as session:
      task = await self._delivery_queue_repo.dequeue(session)
      if task is None:
        return ExecutionOutcome.EMPTY_QUEUE

      try:
        await self._process(session, task)
      except BaseException:
        await session.rollback()
        raise
      return ExecutionOutcome.TASK_COMPLETED

  async def _process(self, session: AsyncSession, task: DeliveryTask) -> None:
    try:
      recipient = SubscriberEmail.parse(task.subscriber_email)
    except InvalidSubscriberEmailError as exc:
      logger.error("Skipping a confirmed subscriber; stored contact details are invalid issue_id=%s subscriber_email=%s outcome=skipped_invalid_address error=%s", task.issue_id, task.subscriber_email, exc)
      await self._resolve(session, task)
      return

    issue = await self._issues_repo.get_issue(session, task.issue_id)
    if issue is None:
      raise IssueNotFoundError(f"Newsletter issue {task.issue_id} referenced by a delivery task does not exist.")

    message = EmailMessage(recipient=recipient, subject=issue.title, html_body=issue.html_content, text_body=issue.text_content)
    try:
      await self._email_client.send_email(message)
    except TransientEmailError as exc:
      logger.warning("Failed to deliver issue; task left pending issue_id=%s subscriber_email=%s outcome=left_pending error=%s", task.issue_id, task.subscriber_email, exc)
      raise
    except PermanentEmailError as exc:
      logger.error("Failed to deliver issue to a confirmed subscriber; skipping issue_id=%s subscriber_email=%s outcome=skipped_permanent_failure error=%s", task.issue_id, task.subscriber_email, exc)
      await self._resolve(session, task)
      return

    await self._resolve(session, task)
    logger.info("Delivered issue issue_id=%s subscriber_email=%s outcome=delivered", task.issue_id, task.subscriber_email)

  async def _resolve(self, session: AsyncSession, task: DeliveryTask) -> None:
    await self._delivery_queue_repo.delete(session, task)
    await session.commit()

  async def run_until_stopped(self, stop_event: asyncio.Event) -> None:
    """Loop over try_execute_task until `stop_event` is set.

    The stop event is only checked between attempts, so an in-flight attempt always
    finishes its transaction.
    """
    logger.info("Issue delivery worker started")
    while not stop_event.is_set():
      try:
        outcome = await self.try_execute_task()
      except TransientEmailError:
        await self._sleep(self._error_seconds, stop_event)
        continue
      except Exception as exc:  # noqa: BLE001
        classification = classify_db_failure(exc)
        logger.error("Issue delivery attempt failed error_type=%s category=%s retryable=%s", type(exc).__name__, classification.category, classification.retryable, exc_info=True)
        await self._sleep(self._error_seconds, stop_event)
        continue

      if outcome is ExecutionOutcome.EMPTY_QUEUE:
        await self._sleep(self._idle_seconds, stop_event)
    logger.info("Issue delivery worker stopped")

  @staticmethod
  async def _sleep(seconds: float, stop_event: asyncio.Event) -> None:
    """Sleep for `seconds`, waking early when a stop is requested."""
    with contextlib.suppress(TimeoutError):
      await asyncio.wait_for(stop_event.wait(), timeout=seconds)
