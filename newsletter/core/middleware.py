import logging
import time

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from newsletter.utils.ids import generate_request_id

logger = logging.getLogger("newsletter.core.middleware")

REQUEST_ID_HEADER = "x-request-id"


def _incoming_request_id(scope: Scope) -> str | None:
  for key, value in scope.get("headers", []):
    if key.decode("latin-1").lower() == REQUEST_ID_HEADER:
      candidate = value.decode("latin-1").strip()
      # Only accept short printable ids from upstream proxies.
      if candidate and len(candidate) <= 128 and candidate.isprintable():
        return candidate
  return None


class RequestLoggingMiddleware:
  """Assign a request id, echo it in the response and log one line per request."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    request_id = _incoming_request_id(scope) or generate_request_id()
    scope.setdefault("state", {})["request_id"] = request_id
    started = time.perf_counter()
    status_code = 500

    async def send_wrapper(message: Message) -> None:
      nonlocal status_code
      if message["type"] == "http.response.start":
        status_code = int(message["status"])
        headers = MutableHeaders(scope=message)
        headers[REQUEST_ID_HEADER] = request_id
      await send(message)

    try:
      await self.app(scope, receive, send_wrapper)
    finally:
      duration_ms = (time.perf_counter() - started) * 1000
      logger.info("request_id=%s method=%s path=%s status=%s duration_ms=%.1f", request_id, scope.get("method"), scope.get("path"), status_code, duration_ms)
