"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from newsletter.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_EMAIL_PROVIDERS = ("postmark", "null")


@dataclass(frozen=True)
class Settings:
  """Typed settings for the newsletter service."""

  environment: str
  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  admin_token: str | None
  publish_redirect_location: str
  email_provider: str
  email_base_url: str
  email_sender: str | None
  email_authorization_token: str | None
  email_timeout_seconds: float
  delivery_workers: int
  worker_idle_seconds: float
  worker_error_seconds: float
  worker_shutdown_grace_seconds: float
  idempotency_poll_attempts: int
  idempotency_poll_interval_ms: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _non_negative_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value < 0:
    raise ValueError(f"{name} must be zero or a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("NEWSLETTER_ENV", "development").lower()
  debug = _parse_bool(os.getenv("NEWSLETTER_DEBUG"))

  log_max_bytes = _positive_int("NEWSLETTER_LOG_MAX_BYTES", "5242880")
  log_backup_count = int(os.getenv("NEWSLETTER_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("NEWSLETTER_LOG_BACKUP_COUNT must be zero or a positive integer.")

  publish_redirect_location = (os.getenv("NEWSLETTER_PUBLISH_REDIRECT_LOCATION") or "/admin/newsletters").strip()
  if not publish_redirect_location.startswith("/"):
    raise ValueError("NEWSLETTER_PUBLISH_REDIRECT_LOCATION must be an absolute path.")

  email_provider = (os.getenv("NEWSLETTER_EMAIL_PROVIDER") or "postmark").strip().lower()
  if email_provider not in _EMAIL_PROVIDERS:
    raise ValueError(f"NEWSLETTER_EMAIL_PROVIDER must be one of {', '.join(_EMAIL_PROVIDERS)}.")
  email_base_url = (os.getenv("NEWSLETTER_EMAIL_BASE_URL") or "https://api.postmarkapp.com").strip().rstrip("/")
  email_sender = _optional_str(os.getenv("NEWSLETTER_EMAIL_SENDER"))
  email_authorization_token = _optional_str(os.getenv("NEWSLETTER_EMAIL_AUTHORIZATION_TOKEN"))
  email_timeout_seconds = float(os.getenv("NEWSLETTER_EMAIL_TIMEOUT_SECONDS", "10"))
  if email_timeout_seconds <= 0:
    raise ValueError("NEWSLETTER_EMAIL_TIMEOUT_SECONDS must be a positive number.")

  # Only a real transport needs credentials; the null client drops messages.
  if email_provider == "postmark":
    if not email_sender:
      raise ValueError("NEWSLETTER_EMAIL_SENDER must be set when NEWSLETTER_EMAIL_PROVIDER is 'postmark'.")
    if not email_authorization_token:
      raise ValueError("NEWSLETTER_EMAIL_AUTHORIZATION_TOKEN must be set when NEWSLETTER_EMAIL_PROVIDER is 'postmark'.")

  delivery_workers = int(os.getenv("NEWSLETTER_DELIVERY_WORKERS", "1"))
  if delivery_workers < 0:
    raise ValueError("NEWSLETTER_DELIVERY_WORKERS must be zero or a positive integer.")

  return Settings(
    environment=environment,
    debug=debug,
    pg_dsn=os.getenv("NEWSLETTER_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("NEWSLETTER_PG_CONNECT_TIMEOUT", "5"),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("NEWSLETTER_LOG_HTTP_4XX")),
    admin_token=_optional_str(os.getenv("NEWSLETTER_ADMIN_TOKEN")),
    publish_redirect_location=publish_redirect_location,
    email_provider=email_provider,
    email_base_url=email_base_url,
    email_sender=email_sender,
    email_authorization_token=email_authorization_token,
    email_timeout_seconds=email_timeout_seconds,
    delivery_workers=delivery_workers,
    worker_idle_seconds=_non_negative_float("NEWSLETTER_WORKER_IDLE_SECONDS", "10"),
    worker_error_seconds=_non_negative_float("NEWSLETTER_WORKER_ERROR_SECONDS", "1"),
    worker_shutdown_grace_seconds=_non_negative_float("NEWSLETTER_WORKER_SHUTDOWN_GRACE_SECONDS", "30"),
    idempotency_poll_attempts=_positive_int("NEWSLETTER_IDEMPOTENCY_POLL_ATTEMPTS", "5"),
    idempotency_poll_interval_ms=_positive_int("NEWSLETTER_IDEMPOTENCY_POLL_INTERVAL_MS", "200"),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring the email or worker configuration."""
  # Migrations and offline scripts only need the DSN.
  debug = _parse_bool(os.getenv("NEWSLETTER_DEBUG"))
  pg_connect_timeout = _positive_int("NEWSLETTER_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = os.getenv("NEWSLETTER_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
