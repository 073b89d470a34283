"""Shared FastAPI dependencies for admin auth, owner scoping and service lookup."""

from __future__ import annotations

import logging
import secrets
import uuid
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from newsletter.config import Settings, get_settings
from newsletter.core.lifespan import ServiceState
from newsletter.jobs.worker import IssueDeliveryWorker
from newsletter.services.publishing import PublishCoordinator

logger = logging.getLogger(__name__)

OWNER_ID_HEADER = "X-Newsletter-Owner-Id"


def require_admin(settings: Annotated[Settings, Depends(get_settings)], authorization: str | None = Header(default=None)) -> None:
  """Reject callers that do not present the configured admin bearer token."""
  # Admin endpoints stay closed when no token is configured.
  if not settings.admin_token:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin authentication is not configured.")
  expected_auth = f"Bearer {settings.admin_token}"
  if not secrets.compare_digest((authorization or "").encode("utf-8"), expected_auth.encode("utf-8")):
    logger.warning("Unauthorized admin request")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin credentials.", headers={"WWW-Authenticate": "Bearer"})


def get_current_owner_id(x_newsletter_owner_id: str | None = Header(default=None)) -> uuid.UUID:
  """Return the owner that scopes idempotency keys for this request."""
  if x_newsletter_owner_id is None or not x_newsletter_owner_id.strip():
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Missing {OWNER_ID_HEADER} header.")
  try:
    return uuid.UUID(x_newsletter_owner_id.strip())
  except ValueError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{OWNER_ID_HEADER} must be a UUID.") from exc


def get_services(request: Request) -> ServiceState:
  """Return the services wired at startup, or 503 when storage is not configured."""
  services: ServiceState | None = getattr(request.app.state, "services", None)
  if services is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage is not configured.")
  return services


def get_publish_coordinator(services: Annotated[ServiceState, Depends(get_services)]) -> PublishCoordinator:
  return services.publish_coordinator


def get_delivery_worker(services: Annotated[ServiceState, Depends(get_services)]) -> IssueDeliveryWorker:
  return services.delivery_worker
