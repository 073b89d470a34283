"""Idempotent request processing backed by a unique (owner, key) marker row.

`begin_or_replay` either hands the caller an open transaction that owns the marker
or returns the response saved by an earlier request with the same key. The caller
performs its writes on that transaction and finishes with `save_response`, which
commits the writes and the cached response together.
"""

from __future__ import annotations

import asyncio
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsletter.idempotency.key import IdempotencyKey
from newsletter.idempotency.models import MarkerInsertOutcome, NextAction, ReturnSaved, SavedResponse, StartProcessing
from newsletter.storage.idempotency_repo import IdempotencyRepository

logger = logging.getLogger(__name__)


class IdempotencyInProgressError(RuntimeError):
  """Raised when a record exists but its response never became visible."""

  def __init__(self, *, owner_id: uuid.UUID, key: IdempotencyKey) -> None:
    super().__init__(f"Request with idempotency key {key.value!r} is still being processed.")
    self.owner_id = owner_id
    self.key = key


class IdempotencyStore:
  """Coordinates marker insertion, replay and response persistence."""

  def __init__(self, *, session_factory: async_sessionmaker[AsyncSession], repository: IdempotencyRepository, poll_attempts: int = 5, poll_interval_seconds: float = 0.2) -> None:
    self._session_factory = session_factory
    self._repository = repository
    self._poll_attempts = max(1, poll_attempts)
    self._poll_interval_seconds = poll_interval_seconds

  async def begin_or_replay(self, owner_id: uuid.UUID, key: IdempotencyKey) -> NextAction:
    """Claim (owner, key) for processing or return the response already saved for it."""
    for attempt in range(1, self._poll_attempts + 1):
      session = self._session_factory()
      try:
        outcome = await self._repository.try_insert_marker(session, owner_id=owner_id, idempotency_key=key.value)
        if outcome is MarkerInsertOutcome.CREATED:
          logger.debug("Idempotency marker created owner_id=%s key=%s", owner_id, key.value)
          return StartProcessing(session=session)

        saved = await self._repository.get_saved_response(session, owner_id=owner_id, idempotency_key=key.value)
      except BaseException:
        await session.rollback()
        await session.close()
        raise

      await session.rollback()
      await session.close()
      if saved is not None:
        logger.info("Replaying saved response owner_id=%s key=%s status=%s", owner_id, key.value, saved.status_code)
        return ReturnSaved(response=saved)

      # The marker exists without a response, so its owner has not committed yet.
      logger.info("Idempotent request still in progress owner_id=%s key=%s attempt=%d/%d", owner_id, key.value, attempt, self._poll_attempts)
      if attempt < self._poll_attempts:
        await asyncio.sleep(self._poll_interval_seconds)

    raise IdempotencyInProgressError(owner_id=owner_id, key=key)

  async def save_response(self, session: AsyncSession, owner_id: uuid.UUID, key: IdempotencyKey, response: SavedResponse) -> SavedResponse:
    """Persist `response` on the marker and commit everything staged on `session`."""
    try:
      await self._repository.save_response(session, owner_id=owner_id, idempotency_key=key.value, response=response)
      await session.commit()
    except BaseException:
      await session.rollback()
      raise
    finally:
      await session.close()
    return response

  async def abort(self, session: AsyncSession) -> None:
    """Roll back a held transaction, releasing the marker for a later retry."""
    try:
      await session.rollback()
    finally:
      await session.close()
