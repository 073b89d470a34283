"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_issue_id() -> uuid.UUID:
  """Return a new newsletter issue identifier."""
  return uuid.uuid4()


def generate_request_id() -> str:
  """Return an identifier used to correlate a request with its log lines."""
  return uuid.uuid4().hex
