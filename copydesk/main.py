from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from copydesk.api.routes import evals, jobs
from copydesk.config import get_settings
from copydesk.core.errors import CopydeskError, OrchestrationError
from copydesk.core.exceptions import domain_exception_handler, global_exception_handler, http_exception_handler, orchestration_exception_handler, request_validation_exception_handler
from copydesk.core.lifespan import lifespan
from copydesk.core.middleware import RequestLoggingMiddleware

settings = get_settings()

app = FastAPI(title="Copydesk", version="0.1.0", lifespan=lifespan)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", "authorization", "x-actor-id"], expose_headers=["content-length"])


# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(CopydeskError, domain_exception_handler)
app.add_exception_handler(OrchestrationError, orchestration_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(jobs.router, prefix="/v1/articles", tags=["articles"])
app.include_router(evals.router, prefix="/v1/articles", tags=["evals"])
