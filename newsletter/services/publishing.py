"""Publishing a newsletter issue under an idempotency key.

A publish inserts the issue, snapshots confirmed subscribers into the delivery queue
and caches the HTTP response, all in the transaction that owns the idempotency marker.
Nothing becomes visible to the delivery worker until that transaction commits.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError

from newsletter.idempotency.key import IdempotencyKey, InvalidIdempotencyKeyError
from newsletter.idempotency.models import ReturnSaved, SavedResponse
from newsletter.idempotency.store import IdempotencyInProgressError, IdempotencyStore
from newsletter.storage.delivery_queue_repo import DeliveryQueueRepository
from newsletter.storage.issues_repo import IssuesRepository, NewsletterIssueRecord
from newsletter.utils.db_errors import classify_db_failure
from newsletter.utils.ids import generate_issue_id

logger = logging.getLogger(__name__)

PUBLISHED_MESSAGE = "The newsletter issue has been published!"


class PublishError(Exception):
  """Base class for publish failures surfaced to the HTTP layer."""

  status_code = 500
  retryable = False


class InvalidPublishRequestError(PublishError):
  """The submission is malformed; the client must fix it before retrying."""

  status_code = 400


class PublishInProgressError(PublishError):
  """Another request with the same key has not finished yet."""

  status_code = 409
  retryable = True


class PublishStorageError(PublishError):
  """Storage failed and the transaction was rolled back; retrying with the same key is safe."""

  status_code = 503
  retryable = True


@dataclass(frozen=True)
class PublishRequest:
  """Validated content of a newsletter submission."""

  title: str
  text_content: str
  html_content: str

  @classmethod
  def parse(cls, *, title: str | None, text_content: str | None, html_content: str | None) -> PublishRequest:
    missing = [name for name, value in (("title", title), ("text_content", text_content), ("html_content", html_content)) if value is None or not value.strip()]
    if missing:
      raise InvalidPublishRequestError(f"Missing newsletter fields: {', '.join(missing)}.")
    return cls(title=str(title), text_content=str(text_content), html_content=str(html_content))


def see_other(location: str, *, issue_id: uuid.UUID) -> SavedResponse:
  """Build the 303 response cached for a successful publish."""
  body = json.dumps({"issue_id": str(issue_id), "message": PUBLISHED_MESSAGE}, separators=(",", ":")).encode("utf-8")
  headers = (("location", location), ("content-type", "application/json"))
  return SavedResponse(status_code=303, headers=headers, body=body)


class PublishCoordinator:
  """Creates an issue and its delivery tasks exactly once per (owner, idempotency key)."""

  def __init__(self, *, idempotency_store: IdempotencyStore, issues_repo: IssuesRepository, delivery_queue_repo: DeliveryQueueRepository, redirect_location: str = "/admin/newsletters") -> None:
    self._idempotency_store = idempotency_store
    self._issues_repo = issues_repo
    self._delivery_queue_repo = delivery_queue_repo
    self._redirect_location = redirect_location

  async def publish(self, *, owner_id: uuid.UUID, idempotency_key: str | None, title: str | None, text_content: str | None, html_content: str | None) -> SavedResponse:
    """Publish an issue or replay the response of an earlier identical submission."""
    # Reject client errors before any transaction is opened.
    try:
      key = IdempotencyKey.parse(idempotency_key)
    except InvalidIdempotencyKeyError as exc:
      raise InvalidPublishRequestError(str(exc)) from exc
    request = PublishRequest.parse(title=title, text_content=text_content, html_content=html_content)

    try:
      next_action = await self._idempotency_store.begin_or_replay(owner_id, key)
    except IdempotencyInProgressError as exc:
      raise PublishInProgressError(str(exc)) from exc
    except (SQLAlchemyError, OSError) as exc:
      raise self._storage_error(exc, stage="begin", owner_id=owner_id, key=key) from exc

    if isinstance(next_action, ReturnSaved):
      return next_action.response

    session = next_action.session
    issue = NewsletterIssueRecord(issue_id=generate_issue_id(), title=request.title, text_content=request.text_content, html_content=request.html_content, published_at=datetime.now(UTC))
    try:
      await self._issues_repo.insert_issue(session, issue)
      enqueued = await self._delivery_queue_repo.enqueue_for_confirmed_subscribers(session, issue_id=issue.issue_id)
    except BaseException as exc:
      await self._idempotency_store.abort(session)
      if isinstance(exc, SQLAlchemyError | OSError):
        raise self._storage_error(exc, stage="insert", owner_id=owner_id, key=key) from exc
      raise

    response = see_other(self._redirect_location, issue_id=issue.issue_id)
    try:
      await self._idempotency_store.save_response(session, owner_id, key, response)
    except (SQLAlchemyError, OSError) as exc:
      raise self._storage_error(exc, stage="commit", owner_id=owner_id, key=key) from exc

    logger.info("Published newsletter issue issue_id=%s owner_id=%s delivery_tasks=%d", issue.issue_id, owner_id, enqueued)
    return response

  def _storage_error(self, exc: BaseException, *, stage: str, owner_id: uuid.UUID, key: IdempotencyKey) -> PublishStorageError:
    classification = classify_db_failure(exc)
    logger.error(
      "Publish rolled back stage=%s owner_id=%s key=%s category=%s sqlstate=%s retryable=%s",
      stage,
      owner_id,
      key.value,
      classification.category,
      classification.sqlstate or "none",
      classification.retryable,
      exc_info=exc,
    )
    return PublishStorageError("The newsletter could not be published; retry with the same idempotency key.")
