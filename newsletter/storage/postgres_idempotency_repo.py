"""Postgres-backed idempotency records using SQLAlchemy."""

from __future__ import annotations

import uuid

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter.idempotency.models import MarkerInsertOutcome, SavedResponse
from newsletter.schema.idempotency import IdempotencyRecord


class PostgresIdempotencyRepository:
  """Persist idempotency markers and saved responses to the `idempotency` table."""

  async def try_insert_marker(self, session: AsyncSession, *, owner_id: uuid.UUID, idempotency_key: str) -> MarkerInsertOutcome:
    # A concurrent insert of the same key blocks here until the owning transaction ends,
    # then either inserts (owner rolled back) or does nothing (owner committed).
    stmt = insert(IdempotencyRecord).values(owner_id=owner_id, idempotency_key=idempotency_key).on_conflict_do_nothing(index_elements=["owner_id", "idempotency_key"]).returning(IdempotencyRecord.owner_id)
    inserted = (await session.execute(stmt)).scalar_one_or_none()
    if inserted is None:
      return MarkerInsertOutcome.ALREADY_EXISTS
    return MarkerInsertOutcome.CREATED

  async def get_saved_response(self, session: AsyncSession, *, owner_id: uuid.UUID, idempotency_key: str) -> SavedResponse | None:
    stmt = select(IdempotencyRecord.response_status_code, IdempotencyRecord.response_headers, IdempotencyRecord.response_body).where(
      IdempotencyRecord.owner_id == owner_id, IdempotencyRecord.idempotency_key == idempotency_key
    )
    row = (await session.execute(stmt)).one_or_none()
    if row is None or row.response_status_code is None:
      return None
    return SavedResponse(status_code=int(row.response_status_code), headers=SavedResponse.headers_from_json(row.response_headers), body=bytes(row.response_body or b""))

  async def save_response(self, session: AsyncSession, *, owner_id: uuid.UUID, idempotency_key: str, response: SavedResponse) -> None:
    stmt = (
      update(IdempotencyRecord)
      .where(IdempotencyRecord.owner_id == owner_id, IdempotencyRecord.idempotency_key == idempotency_key)
      .values(response_status_code=response.status_code, response_headers=response.headers_to_json(), response_body=response.body)
    )
    result = await session.execute(stmt)
    if result.rowcount != 1:
      raise RuntimeError(f"Idempotency marker missing for owner_id={owner_id} key={idempotency_key!r}; cannot save response.")
