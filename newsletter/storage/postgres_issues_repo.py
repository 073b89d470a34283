"""Postgres-backed repository for newsletter issues."""

from __future__ import annotations

import uuid

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter.schema.issues import NewsletterIssue
from newsletter.storage.issues_repo import NewsletterIssueRecord


class PostgresIssuesRepository:
  """Persist newsletter issues to the `newsletter_issues` table."""

  async def insert_issue(self, session: AsyncSession, issue: NewsletterIssueRecord) -> None:
    stmt = insert(NewsletterIssue).values(
      newsletter_issue_id=issue.issue_id, title=issue.title, text_content=issue.text_content, html_content=issue.html_content, published_at=issue.published_at
    )
    await session.execute(stmt)

  async def get_issue(self, session: AsyncSession, issue_id: uuid.UUID) -> NewsletterIssueRecord | None:
    stmt = select(NewsletterIssue).where(NewsletterIssue.newsletter_issue_id == issue_id)
    row = (await session.execute(stmt)).scalar_one_or_none()
    if row is None:
      return None
    return NewsletterIssueRecord(issue_id=row.newsletter_issue_id, title=row.title, text_content=row.text_content, html_content=row.html_content, published_at=row.published_at)
