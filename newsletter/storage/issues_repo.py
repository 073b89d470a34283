"""Storage interface for published newsletter issues."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True)
class NewsletterIssueRecord:
  """Immutable content of a published issue."""

  issue_id: uuid.UUID
  title: str
  text_content: str
  html_content: str
  published_at: datetime


class IssueNotFoundError(LookupError):
  """Raised when a delivery task references an issue that does not exist."""


class IssuesRepository(Protocol):
  """Repository contract for newsletter issues."""

  async def insert_issue(self, session: AsyncSession, issue: NewsletterIssueRecord) -> None:
    """Stage a new issue inside the caller's transaction."""

  async def get_issue(self, session: AsyncSession, issue_id: uuid.UUID) -> NewsletterIssueRecord | None:
    """Fetch an issue by identifier."""
