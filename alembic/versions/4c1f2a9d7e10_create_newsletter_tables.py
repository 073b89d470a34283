"""create newsletter tables

Revision ID: 4c1f2a9d7e10
Revises:
Create Date: 2026-10-19 09:12:44.318204

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4c1f2a9d7e10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "subscriptions",
    sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("email", sa.Text(), nullable=False),
    sa.Column("name", sa.Text(), nullable=False),
    sa.Column("subscribed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("email"),
  )
  op.create_index(op.f("ix_subscriptions_status"), "subscriptions", ["status"], unique=False)

  op.create_table(
    "idempotency",
    sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("idempotency_key", sa.Text(), nullable=False),
    sa.Column("response_status_code", sa.SmallInteger(), nullable=True),
    sa.Column("response_headers", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("response_body", sa.LargeBinary(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("owner_id", "idempotency_key", name="pk_idempotency"),
  )

  op.create_table(
    "newsletter_issues",
    sa.Column("newsletter_issue_id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("title", sa.Text(), nullable=False),
    sa.Column("text_content", sa.Text(), nullable=False),
    sa.Column("html_content", sa.Text(), nullable=False),
    sa.Column("published_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("newsletter_issue_id"),
  )

  # A task row exists only while the delivery is pending.
  op.create_table(
    "issue_delivery_queue",
    sa.Column("newsletter_issue_id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("subscriber_email", sa.Text(), nullable=False),
    sa.ForeignKeyConstraint(["newsletter_issue_id"], ["newsletter_issues.newsletter_issue_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("newsletter_issue_id", "subscriber_email", name="pk_issue_delivery_queue"),
  )


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_table("issue_delivery_queue")
  op.drop_table("newsletter_issues")
  op.drop_table("idempotency")
  op.drop_index(op.f("ix_subscriptions_status"), table_name="subscriptions")
  op.drop_table("subscriptions")
