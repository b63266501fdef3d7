"""Shared FastAPI dependencies for the article routes."""

from __future__ import annotations

from fastapi import Depends, Header

from copydesk.ai.orchestrator import PipelineOrchestrator
from copydesk.config import Settings, get_settings
from copydesk.jobs.stream import ProgressStreamAdapter
from copydesk.services.evals import EvalService
from copydesk.services.jobs import JobQueueService
from copydesk.services.pipeline import build_eval_service, build_job_queue, build_orchestrator
from copydesk.storage.factory import _get_jobs_repo, _get_steps_repo


def get_job_queue(settings: Settings = Depends(get_settings)) -> JobQueueService:  # noqa: B008
  return build_job_queue(settings)


def get_eval_service(settings: Settings = Depends(get_settings)) -> EvalService:  # noqa: B008
  return build_eval_service(settings)


def get_orchestrator(settings: Settings = Depends(get_settings)) -> PipelineOrchestrator:  # noqa: B008
  return build_orchestrator(settings)


def get_stream_adapter(settings: Settings = Depends(get_settings)) -> ProgressStreamAdapter:  # noqa: B008
  return ProgressStreamAdapter(jobs_repo=_get_jobs_repo(settings), steps_repo=_get_steps_repo(settings), poll_interval_seconds=settings.stream_poll_interval_seconds)


def get_actor_id(x_actor_id: str | None = Header(default=None, max_length=128)) -> str | None:
  """Caller identity as passed by the fronting admin app; no authentication is performed."""
  if x_actor_id is None:
    return None
  return x_actor_id.strip() or None
