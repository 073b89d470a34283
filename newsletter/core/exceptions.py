import logging
from http import HTTPStatus
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from newsletter.config import get_settings
from newsletter.services.publishing import PublishError

logger = logging.getLogger("uvicorn.error")

RETRY_AFTER_SECONDS = "1"


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  """Build an error payload carrying the request id for log correlation."""
  payload: dict[str, Any] = {"detail": detail}
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key not in {"input", "ctx", "url"}}
    sanitized.append({key: (value if isinstance(value, str | int | float | bool | list | tuple) else str(value)) for key, value in scrubbed.items()})
  return sanitized


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Catch unhandled errors without leaking internals to the caller."""
  request_id = _request_id(request)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=exc)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Report malformed submissions as client errors; newsletter content is never echoed back."""
  request_id = _request_id(request)
  sanitized_errors = _sanitize_validation_errors(list(exc.errors()))
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Handle HTTPExceptions while hiding 5xx details."""
  request_id = _request_id(request)
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=_error_payload(HTTPStatus(exc.status_code).phrase, request_id=request_id), headers=getattr(exc, "headers", None))

  if get_settings().log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)

  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=getattr(exc, "headers", None))


async def publish_exception_handler(request: Request, exc: PublishError) -> JSONResponse:
  """Map publish failures to client, conflict and retryable storage responses."""
  request_id = _request_id(request)
  headers = {"Retry-After": RETRY_AFTER_SECONDS} if exc.retryable else None
  if exc.status_code >= 500:
    # The cause was logged with its classification where the transaction was rolled back.
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Service Unavailable", request_id=request_id), headers=headers)

  logger.info("Publish rejected request_id=%s status_code=%s detail=%s", request_id, exc.status_code, exc)
  return JSONResponse(status_code=exc.status_code, content=_error_payload(str(exc), request_id=request_id), headers=headers)
