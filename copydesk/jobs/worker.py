"""Background processor for queued article jobs."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from copydesk.ai.orchestrator import OrchestrationResult, PipelineOrchestrator
from copydesk.core.errors import ConflictError, NotFoundError
from copydesk.services.jobs import JobQueueService


class JobWorker:
  """Claims pending jobs and runs them through the orchestrator, a bounded number at a time."""

  def __init__(self, *, queue: JobQueueService, orchestrator: PipelineOrchestrator, max_concurrent_jobs: int, poll_interval_seconds: float) -> None:
    self._queue = queue
    self._orchestrator = orchestrator
    self._semaphore = asyncio.Semaphore(max_concurrent_jobs)
    self._poll_interval = poll_interval_seconds
    self._tasks: set[asyncio.Task[OrchestrationResult | None]] = set()
    self._logger = logging.getLogger(__name__)

  @property
  def in_flight(self) -> int:
    return len(self._tasks)

  async def process_next(self) -> OrchestrationResult | None:
    """Claim the highest-priority pending job and run it to a terminal state."""
    job = await self._queue.pickup_next_job()
    if job is None:
      return None
    return await self._execute(job.job_id)

  async def _execute(self, job_id: str) -> OrchestrationResult | None:
    try:
      result = await self._orchestrator.execute(job_id)
    except (NotFoundError, ConflictError) as exc:
      # Another runner finished or removed the job between claim and start.
      self._logger.warning("Skipping job %s: %s", job_id, exc)
      return None
    self._logger.info("Job %s finished status=%s iterations=%d", job_id, result.status, result.iterations)
    return result

  async def run(self, stop: asyncio.Event) -> None:
    """Poll for pending jobs until `stop` is set, then wait for in-flight jobs."""
    self._logger.info("Job worker started poll_interval=%.1fs", self._poll_interval)
    try:
      while not stop.is_set():
        await self._semaphore.acquire()
        try:
          job = await self._queue.pickup_next_job()
        except Exception:
          self._semaphore.release()
          self._logger.error("Failed to claim next job", exc_info=True)
          await self._wait(stop)
          continue
        if job is None:
          self._semaphore.release()
          await self._wait(stop)
          continue
        task = asyncio.create_task(self._run_claimed(job.job_id), name=f"copydesk-job-{job.job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
    finally:
      if self._tasks:
        await asyncio.gather(*self._tasks, return_exceptions=True)
      self._logger.info("Job worker stopped")

  async def _run_claimed(self, job_id: str) -> OrchestrationResult | None:
    try:
      return await self._execute(job_id)
    except Exception as exc:  # noqa: BLE001
      self._logger.error("Job %s crashed outside the orchestrator", job_id, exc_info=True)
      await self._fail_claimed(job_id, str(exc) or type(exc).__name__)
      return None
    finally:
      self._semaphore.release()

  async def _fail_claimed(self, job_id: str, error: str) -> None:
    # A claimed job must not stay processing after its task ends.
    try:
      await self._queue.fail_job(job_id, error)
    except (NotFoundError, ConflictError) as exc:
      self._logger.warning("Job %s already left processing: %s", job_id, exc)
    except Exception:  # noqa: BLE001
      self._logger.error("Failed to mark job %s as failed", job_id, exc_info=True)

  async def _wait(self, stop: asyncio.Event) -> None:
    with contextlib.suppress(TimeoutError):
      await asyncio.wait_for(stop.wait(), timeout=self._poll_interval)
