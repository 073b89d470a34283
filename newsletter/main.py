from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from newsletter.api.routes import newsletters, worker
from newsletter.core.exceptions import global_exception_handler, http_exception_handler, publish_exception_handler, request_validation_exception_handler
from newsletter.core.lifespan import lifespan
from newsletter.core.middleware import RequestLoggingMiddleware
from newsletter.services.publishing import PublishError

app = FastAPI(title="newsletter-engine", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(PublishError, publish_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(newsletters.router, prefix="/admin/newsletters", tags=["newsletters"])
app.include_router(worker.router, prefix="/internal/worker", tags=["worker"])
