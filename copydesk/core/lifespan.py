import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse, urlunparse

from fastapi import FastAPI

from copydesk.core.database import dispose_engine
from copydesk.core.logging import initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging after uvicorn starts and run the job worker when enabled."""
  from copydesk.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("copydesk.core.lifespan")

  initialize_logging(settings)
  logger.info("Startup complete - environment=%s provider=%s pg_dsn=%s", settings.environment, settings.provider, _redact_dsn(settings.pg_dsn))

  stop = asyncio.Event()
  worker_task: asyncio.Task[None] | None = None
  if settings.worker_enabled:
    # Imported lazily so the API can start without provider credentials when the worker is off.
    from copydesk.jobs.worker import JobWorker
    from copydesk.services.pipeline import build_job_queue, build_orchestrator

    worker = JobWorker(
      queue=build_job_queue(settings),
      orchestrator=build_orchestrator(settings),
      max_concurrent_jobs=settings.max_concurrent_jobs,
      poll_interval_seconds=settings.worker_poll_interval_seconds,
    )
    worker_task = asyncio.create_task(worker.run(stop), name="copydesk-worker")
    logger.info("Job worker enabled max_concurrent_jobs=%d", settings.max_concurrent_jobs)

  try:
    yield
  finally:
    stop.set()
    if worker_task is not None:
      await worker_task
    await dispose_engine()


def _redact_dsn(raw: str | None) -> str:
  """Mask the password in a DSN for startup logs."""
  if not raw:
    return "<unset>"
  parsed = urlparse(raw)
  if not parsed.scheme or not parsed.hostname:
    return "<invalid>"
  if parsed.password is None:
    return raw
  netloc = parsed.netloc.replace(f":{parsed.password}@", ":***@", 1)
  return urlunparse(parsed._replace(netloc=netloc))
