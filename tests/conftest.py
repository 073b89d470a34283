"""Test configuration shared by unit and integration suites."""

from __future__ import annotations

import os

# Settings are read once per process, so pin them before anything imports the package.
os.environ["NEWSLETTER_EMAIL_PROVIDER"] = "null"
os.environ["NEWSLETTER_ADMIN_TOKEN"] = "test-admin-token"
os.environ["NEWSLETTER_DELIVERY_WORKERS"] = "0"
os.environ.pop("NEWSLETTER_PG_DSN", None)
os.environ.pop("DATABASE_URL", None)

import pytest  # noqa: E402

from tests.fakes import InMemoryDatabase, RecordingEmailClient  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def database() -> InMemoryDatabase:
  return InMemoryDatabase()


@pytest.fixture
def email_client() -> RecordingEmailClient:
  return RecordingEmailClient()
