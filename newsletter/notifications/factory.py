from __future__ import annotations

from newsletter.config import Settings
from newsletter.notifications.contracts import EmailClient
from newsletter.notifications.email_client import NullEmailClient, PostmarkConfig, PostmarkEmailClient


def build_email_client(settings: Settings) -> EmailClient:
  """Return the email client selected by NEWSLETTER_EMAIL_PROVIDER."""
  if settings.email_provider == "null":
    return NullEmailClient()

  if not settings.email_sender or not settings.email_authorization_token:
    raise ValueError("Postmark email delivery requires NEWSLETTER_EMAIL_SENDER and NEWSLETTER_EMAIL_AUTHORIZATION_TOKEN.")

  config = PostmarkConfig(base_url=settings.email_base_url, sender=settings.email_sender, authorization_token=settings.email_authorization_token, timeout_seconds=settings.email_timeout_seconds)
  return PostmarkEmailClient(config=config)
