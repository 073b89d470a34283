from __future__ import annotations

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from pydantic import BaseModel, Field

from newsletter.api.deps import get_current_owner_id, get_publish_coordinator, get_services, require_admin
from newsletter.core.lifespan import ServiceState
from newsletter.idempotency.models import SavedResponse
from newsletter.services.publishing import PublishCoordinator

router = APIRouter(dependencies=[Depends(require_admin)])
logger = logging.getLogger(__name__)


class PublishNewsletterRequest(BaseModel):
  # Blank and missing values are rejected by the coordinator so every client error shares one message format.
  title: str | None = None
  text_content: str | None = None
  html_content: str | None = None
  idempotency_key: str | None = Field(default=None)


class DeliveryStatusResponse(BaseModel):
  issue_id: uuid.UUID
  title: str
  pending_deliveries: int


def _to_response(saved: SavedResponse) -> Response:
  """Replay a cached response byte-for-byte."""
  response = Response(content=saved.body, status_code=saved.status_code)
  # Appended one by one so repeated names (e.g. set-cookie) keep every value in order.
  for name, value in saved.headers:
    response.headers.append(name, value)
  return response


@router.post("", status_code=status.HTTP_303_SEE_OTHER, response_class=Response)
async def publish_newsletter(
  payload: PublishNewsletterRequest,
  owner_id: Annotated[uuid.UUID, Depends(get_current_owner_id)],
  coordinator: Annotated[PublishCoordinator, Depends(get_publish_coordinator)],
) -> Response:
  """Publish an issue to all confirmed subscribers, or replay an earlier identical submission."""
  saved = await coordinator.publish(owner_id=owner_id, idempotency_key=payload.idempotency_key, title=payload.title, text_content=payload.text_content, html_content=payload.html_content)
  return _to_response(saved)


@router.get("/{issue_id}/deliveries", response_model=DeliveryStatusResponse)
async def get_delivery_status(issue_id: uuid.UUID, services: Annotated[ServiceState, Depends(get_services)]) -> DeliveryStatusResponse:
  """Report how many deliveries of an issue are still pending."""
  async with services.session_factory() as session:
    issue = await services.repositories.issues.get_issue(session, issue_id)
    if issue is None:
      raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Newsletter issue not found.")
    pending = await services.repositories.delivery_queue.count_pending(session, issue_id=issue_id)
  return DeliveryStatusResponse(issue_id=issue.issue_id, title=issue.title, pending_deliveries=pending)
