from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from newsletter.api.deps import get_delivery_worker, require_admin
from newsletter.jobs.worker import IssueDeliveryWorker
from newsletter.notifications.contracts import TransientEmailError

router = APIRouter(dependencies=[Depends(require_admin)])
logger = logging.getLogger(__name__)


@router.post("/run-once", status_code=status.HTTP_200_OK)
async def run_delivery_once(worker: Annotated[IssueDeliveryWorker, Depends(get_delivery_worker)]) -> dict[str, str]:
  """Run a single delivery attempt, for schedulers that drive delivery over HTTP."""
  try:
    outcome = await worker.try_execute_task()
  except TransientEmailError as exc:
    # The attempt was rolled back and the task is still pending.
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Delivery failed; the task stays pending.", headers={"Retry-After": "1"}) from exc
  return {"outcome": outcome.value}
