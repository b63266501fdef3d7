"""Job lifecycle: enqueue, inspect, cancel and terminal transitions."""

from __future__ import annotations

import logging
from typing import Any, NoReturn

from copydesk.ai.pipeline.contracts import JobSettings
from copydesk.config import Settings
from copydesk.core.errors import ConflictError, NotFoundError
from copydesk.jobs.models import ACTIVE_JOB_STATUSES, TERMINAL_JOB_STATUSES, JobDetail, JobRecord, JobStatus
from copydesk.storage.repos import EvalsRepository, JobsRepository, StepsRepository
from copydesk.utils.ids import generate_job_id, now_iso

logger = logging.getLogger(__name__)

_JOB_NOT_FOUND_MSG = "Job not found: {job_id}"


class JobQueueService:
  """Owns job status transitions outside of the orchestrator's progress updates."""

  def __init__(self, *, jobs_repo: JobsRepository, steps_repo: StepsRepository, evals_repo: EvalsRepository, settings: Settings) -> None:
    self._jobs = jobs_repo
    self._steps = steps_repo
    self._evals = evals_repo
    self._settings = settings

  async def create_job(self, keyword: str, *, settings: JobSettings | None = None, priority: int = 0, created_by: str | None = None) -> JobRecord:
    job_settings = settings or JobSettings()
    processing = await self._jobs.count_by_status("processing")
    if processing >= self._settings.max_concurrent_jobs:
      # Enqueue anyway; the worker semaphore bounds actual execution.
      logger.warning("Processing jobs at capacity count=%d limit=%d; new job will wait", processing, self._settings.max_concurrent_jobs)

    timestamp = now_iso()
    record = JobRecord(
      job_id=generate_job_id(),
      keyword=keyword.strip(),
      status="pending",
      created_at=timestamp,
      updated_at=timestamp,
      max_iterations=job_settings.max_iterations or self._settings.default_max_iterations,
      priority=priority,
      settings=job_settings.model_dump(mode="json", exclude_none=True),
      created_by=created_by,
    )
    await self._jobs.create_job(record)
    logger.info("Job created job_id=%s keyword=%r priority=%d", record.job_id, record.keyword, priority)
    return record

  async def get_job(self, job_id: str) -> JobRecord:
    job = await self._jobs.get_job(job_id)
    if job is None:
      raise NotFoundError(_JOB_NOT_FOUND_MSG.format(job_id=job_id))
    return job

  async def get_job_detail(self, job_id: str) -> JobDetail:
    job = await self.get_job(job_id)
    steps = await self._steps.list_steps(job_id)
    evals = await self._evals.list_evals(job_id)
    return JobDetail(job=job, steps=steps, evals=evals)

  async def list_jobs(self, *, status: JobStatus | None = None, limit: int = 20, offset: int = 0, created_by: str | None = None) -> tuple[list[JobRecord], int]:
    return await self._jobs.list_jobs(limit, offset, status=status, created_by=created_by)

  async def cancel_job(self, job_id: str) -> JobRecord:
    """Cancel a pending or processing job; terminal jobs are left untouched."""
    updated = await self._jobs.transition_status(job_id, from_statuses=ACTIVE_JOB_STATUSES, to_status="cancelled", completed_at=now_iso(), clear_current_agent=True)
    if updated is None:
      job = await self.get_job(job_id)
      raise ConflictError(f"Cannot cancel job in status {job.status}")
    logger.info("Job cancelled job_id=%s", job_id)
    return updated

  async def pickup_next_job(self) -> JobRecord | None:
    job = await self._jobs.claim_next_pending()
    if job is not None:
      logger.info("Job picked up job_id=%s priority=%d", job.job_id, job.priority)
    return job

  async def complete_job(self, job_id: str, final_output: dict[str, Any], *, total_tokens_used: int | None = None, estimated_cost_usd: float | None = None, page_id: str | None = None) -> JobRecord:
    """Move a processing job to completed together with its output and totals in one write."""
    updated = await self._jobs.transition_status(
      job_id,
      from_statuses=("processing",),
      to_status="completed",
      completed_at=now_iso(),
      final_output=final_output,
      progress_percent=100,
      total_tokens_used=total_tokens_used,
      estimated_cost_usd=estimated_cost_usd,
      page_id=page_id,
      clear_current_agent=True,
    )
    if updated is None:
      await self._raise_terminal_conflict(job_id, "complete")
    logger.info("Job completed job_id=%s", job_id)
    return updated

  async def fail_job(self, job_id: str, error: str) -> JobRecord:
    updated = await self._jobs.transition_status(job_id, from_statuses=ACTIVE_JOB_STATUSES, to_status="failed", last_error=error, completed_at=now_iso(), clear_current_agent=True)
    if updated is None:
      await self._raise_terminal_conflict(job_id, "fail")
    logger.warning("Job failed job_id=%s error=%s", job_id, error)
    return updated

  async def _raise_terminal_conflict(self, job_id: str, action: str) -> NoReturn:
    job = await self.get_job(job_id)
    if job.status in TERMINAL_JOB_STATUSES:
      raise ConflictError(f"Cannot {action} job in status {job.status}")
    raise ConflictError(f"Cannot {action} job {job_id}")
