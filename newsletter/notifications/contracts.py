"""Contracts for the outbound email transport."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from newsletter.domain.subscriber_email import SubscriberEmail


@dataclass(frozen=True)
class EmailMessage:
  """A single outbound email."""

  recipient: SubscriberEmail
  subject: str
  html_body: str
  text_body: str


class EmailDeliveryError(Exception):
  """Base class for email transport failures."""

  retryable = False


class TransientEmailError(EmailDeliveryError):
  """Timeouts, connection failures, throttling and provider 5xx; retry later."""

  retryable = True


class PermanentEmailError(EmailDeliveryError):
  """The provider rejected this recipient or message; retrying will not help."""


class EmailClient(Protocol):
  """Delivery contract for sending newsletter emails."""

  async def send_email(self, message: EmailMessage) -> None:
    """Send one email or raise TransientEmailError / PermanentEmailError."""

  async def aclose(self) -> None:
    """Release transport resources."""
