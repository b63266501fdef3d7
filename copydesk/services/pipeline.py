"""Wire repositories, provider and agents into the pipeline services."""

from __future__ import annotations

from copydesk.ai.agents import build_default_registry
from copydesk.ai.orchestrator import OrchestratorHooks, PipelineOrchestrator
from copydesk.ai.router import get_provider
from copydesk.config import Settings
from copydesk.services.evals import EvalService
from copydesk.services.jobs import JobQueueService
from copydesk.storage.factory import _get_evals_repo, _get_golden_repo, _get_jobs_repo, _get_personas_repo, _get_steps_repo


def build_eval_service(settings: Settings) -> EvalService:
  return EvalService(jobs_repo=_get_jobs_repo(settings), steps_repo=_get_steps_repo(settings), evals_repo=_get_evals_repo(settings), golden_repo=_get_golden_repo(settings))


def build_job_queue(settings: Settings) -> JobQueueService:
  return JobQueueService(jobs_repo=_get_jobs_repo(settings), steps_repo=_get_steps_repo(settings), evals_repo=_get_evals_repo(settings), settings=settings)


def build_orchestrator(settings: Settings, *, hooks: OrchestratorHooks | None = None) -> PipelineOrchestrator:
  """Build an orchestrator backed by Postgres and the configured provider."""
  registry = build_default_registry(
    get_provider(settings),
    golden_repo=_get_golden_repo(settings),
    eval_service=build_eval_service(settings),
    json_max_retries=settings.json_max_retries,
    publisher_name=settings.publisher_name,
    site_url=settings.site_url,
  )
  return PipelineOrchestrator(queue=build_job_queue(settings), jobs_repo=_get_jobs_repo(settings), steps_repo=_get_steps_repo(settings), personas_repo=_get_personas_repo(settings), registry=registry, hooks=hooks)
