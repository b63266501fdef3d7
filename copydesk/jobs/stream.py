"""Server-sent event stream of job progress, built by polling persisted state."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from copydesk.jobs.models import TERMINAL_JOB_STATUSES, JobRecord, StepRecord
from copydesk.storage.repos import JobsRepository, StepsRepository
from copydesk.utils.ids import now_iso

logger = logging.getLogger(__name__)

_FINISHED_STEP_STATUSES = frozenset({"completed", "failed"})


@dataclass(frozen=True)
class StreamEvent:
  event: str
  data: dict[str, Any]


def format_sse(event: StreamEvent) -> str:
  """Encode one event in the text/event-stream wire format."""
  return f"event: {event.event}\ndata: {json.dumps(event.data, separators=(',', ':'))}\n\n"


def _progress_payload(event_type: str, job: JobRecord) -> dict[str, Any]:
  return {
    "type": event_type,
    "jobId": job.job_id,
    "status": job.status,
    "progressPercent": job.progress_percent,
    "currentAgent": job.current_agent.value if job.current_agent else None,
    "currentIteration": job.current_iteration,
    "maxIterations": job.max_iterations,
    "totalTokensUsed": job.total_tokens_used,
    "estimatedCostUsd": job.estimated_cost_usd,
    "timestamp": now_iso(),
  }


def _step_payload(event_type: str, step: StepRecord) -> dict[str, Any]:
  return {
    "type": event_type,
    "jobId": step.job_id,
    "stepId": step.step_id,
    "agentType": step.agent_type.value,
    "stepStatus": step.status,
    "iteration": step.iteration,
    "timestamp": now_iso(),
  }


class ProgressStreamAdapter:
  """Polls a job and its steps, yielding progress, step and terminal events until the job ends."""

  def __init__(self, *, jobs_repo: JobsRepository, steps_repo: StepsRepository, poll_interval_seconds: float = 1.0, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
    self._jobs = jobs_repo
    self._steps = steps_repo
    self._interval = poll_interval_seconds
    self._sleep = sleep

  async def events(self, job_id: str) -> AsyncIterator[StreamEvent]:
    seen_statuses: dict[str, str] = {}
    while True:
      try:
        job = await self._jobs.get_job(job_id)
        if job is None:
          yield StreamEvent("error", {"type": "error", "message": "Job not found"})
          return
        steps = await self._steps.list_steps(job_id)
      except Exception:  # noqa: BLE001
        logger.exception("Progress stream poll failed job_id=%s", job_id)
        yield StreamEvent("error", {"type": "error", "message": "Poll error"})
        return

      for step in steps:
        for event in self._step_events(step, seen_statuses.get(step.step_id)):
          yield event
        seen_statuses[step.step_id] = step.status

      if job.status in TERMINAL_JOB_STATUSES:
        yield StreamEvent(job.status, _progress_payload(job.status, job))
        return

      yield StreamEvent("progress", _progress_payload("progress", job))
      await self._sleep(self._interval)

  def _step_events(self, step: StepRecord, previous: str | None) -> list[StreamEvent]:
    if previous is None:
      if step.status == "running":
        return [StreamEvent("step:start", _step_payload("step:start", step))]
      if step.status in _FINISHED_STEP_STATUSES:
        return [StreamEvent("step:complete", _step_payload("step:complete", step))]
      return []
    if previous != step.status and step.status in _FINISHED_STEP_STATUSES:
      return [StreamEvent("step:complete", _step_payload("step:complete", step))]
    if previous == "pending" and step.status == "running":
      return [StreamEvent("step:start", _step_payload("step:start", step))]
    return []
