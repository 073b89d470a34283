"""Value types exchanged between the idempotency store and its callers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession


class MarkerInsertOutcome(str, Enum):
  """Result of trying to claim (owner, key) with the processing marker."""

  CREATED = "created"
  ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True)
class SavedResponse:
  """A replayable HTTP response: status, ordered header pairs and raw body."""

  status_code: int
  headers: tuple[tuple[str, str], ...]
  body: bytes

  def header(self, name: str) -> str | None:
    """Return the first header value matching `name` case-insensitively."""
    lowered = name.lower()
    for header_name, value in self.headers:
      if header_name.lower() == lowered:
        return value
    return None

  def headers_to_json(self) -> list[list[str]]:
    return [[name, value] for name, value in self.headers]

  @staticmethod
  def headers_from_json(raw: Any) -> tuple[tuple[str, str], ...]:
    if not raw:
      return ()
    return tuple((str(name), str(value)) for name, value in raw)


@dataclass
class StartProcessing:
  """The caller owns a fresh marker; `session` holds the open transaction that must end in save_response."""

  session: AsyncSession


@dataclass(frozen=True)
class ReturnSaved:
  """The request was already completed; replay `response` unchanged."""

  response: SavedResponse


NextAction = StartProcessing | ReturnSaved
