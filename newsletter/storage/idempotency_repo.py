"""Storage interface for idempotency records."""

from __future__ import annotations

import uuid
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from newsletter.idempotency.models import MarkerInsertOutcome, SavedResponse


class IdempotencyRepository(Protocol):
  """Repository contract for idempotency persistence.

  Every method runs inside the caller's session so the marker, the business writes
  and the saved response share one transaction.
  """

  async def try_insert_marker(self, session: AsyncSession, *, owner_id: uuid.UUID, idempotency_key: str) -> MarkerInsertOutcome:
    """Insert a processing marker, relying on the (owner, key) uniqueness constraint."""

  async def get_saved_response(self, session: AsyncSession, *, owner_id: uuid.UUID, idempotency_key: str) -> SavedResponse | None:
    """Return the completed response, or None when no record or no response exists yet."""

  async def save_response(self, session: AsyncSession, *, owner_id: uuid.UUID, idempotency_key: str, response: SavedResponse) -> None:
    """Write the response columns onto the marker row without committing."""
