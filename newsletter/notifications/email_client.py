"""Email transport implementations.

Postmark is called through its HTTP API with an httpx AsyncClient so the delivery worker
never blocks the event loop on network I/O.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from newsletter.notifications.contracts import EmailMessage, PermanentEmailError, TransientEmailError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostmarkConfig:
  """Postmark configuration needed to send emails."""

  base_url: str
  sender: str
  authorization_token: str
  timeout_seconds: float


class PostmarkEmailClient:
  """Postmark-backed email client."""

  def __init__(self, *, config: PostmarkConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self._config = config
    self._client = httpx.AsyncClient(base_url=config.base_url, timeout=config.timeout_seconds, transport=transport, trust_env=False)

  async def send_email(self, message: EmailMessage) -> None:
    payload = {"From": self._config.sender, "To": message.recipient.value, "Subject": message.subject, "HtmlBody": message.html_body, "TextBody": message.text_body}
    headers = {"X-Postmark-Server-Token": self._config.authorization_token, "Accept": "application/json"}

    try:
      response = await self._client.post("/email", json=payload, headers=headers)
    except httpx.TimeoutException as exc:
      logger.warning("Postmark request timed out recipient=%s", message.recipient)
      raise TransientEmailError(f"Email request timed out: {exc}") from exc
    except httpx.TransportError as exc:
      logger.warning("Postmark request failed recipient=%s error=%s", message.recipient, exc)
      raise TransientEmailError(f"Email request failed: {exc}") from exc

    if response.is_success:
      return

    # Throttling and server-side errors clear up on their own; other 4xx do not.
    if response.status_code == 429 or response.status_code >= 500:
      logger.warning("Postmark returned retryable status=%s recipient=%s body=%s", response.status_code, message.recipient, response.text)
      raise TransientEmailError(f"Email provider returned HTTP {response.status_code}")

    logger.error("Postmark rejected email status=%s recipient=%s body=%s", response.status_code, message.recipient, response.text)
    raise PermanentEmailError(f"Email provider rejected the message with HTTP {response.status_code}")

  async def aclose(self) -> None:
    await self._client.aclose()


class NullEmailClient:
  """No-op email client used when delivery is disabled."""

  async def send_email(self, message: EmailMessage) -> None:
    logger.debug("Email delivery disabled; dropping email to=%s subject=%s", message.recipient, message.subject)

  async def aclose(self) -> None:
    return None
