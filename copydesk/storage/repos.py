"""Storage interfaces for article jobs, steps, evals, golden examples and personas."""

from __future__ import annotations

from collections.abc import Collection
from typing import Any, Protocol

from copydesk.jobs.models import AgentType, EvaluationRecord, GoldenExampleRecord, JobRecord, JobStatus, PersonaRecord, StepLogEntry, StepRecord, StepStatus


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def update_job(
    self,
    job_id: str,
    *,
    expected_status: JobStatus | None = None,
    status: JobStatus | None = None,
    current_iteration: int | None = None,
    current_agent: AgentType | None = None,
    clear_current_agent: bool = False,
    progress_percent: int | None = None,
    total_tokens_used: int | None = None,
    estimated_cost_usd: float | None = None,
    final_output: dict[str, Any] | None = None,
    page_id: str | None = None,
    last_error: str | None = None,
    started_at: str | None = None,
    completed_at: str | None = None,
  ) -> JobRecord | None:
    """Apply partial updates to a job; with `expected_status`, only while the job is still in that status."""

  async def transition_status(
    self,
    job_id: str,
    *,
    from_statuses: Collection[JobStatus],
    to_status: JobStatus,
    last_error: str | None = None,
    started_at: str | None = None,
    completed_at: str | None = None,
    final_output: dict[str, Any] | None = None,
    progress_percent: int | None = None,
    total_tokens_used: int | None = None,
    estimated_cost_usd: float | None = None,
    page_id: str | None = None,
    clear_current_agent: bool = False,
  ) -> JobRecord | None:
    """Move a job to `to_status` only if it is currently in `from_statuses`; None when it was not."""

  async def list_jobs(self, limit: int, offset: int, status: JobStatus | None = None, created_by: str | None = None) -> tuple[list[JobRecord], int]:
    """Return a page of jobs, newest first, and the total count."""

  async def claim_next_pending(self) -> JobRecord | None:
    """Atomically move the oldest highest-priority pending job to processing."""

  async def count_by_status(self, status: JobStatus) -> int:
    """Count jobs in one status."""


class StepsRepository(Protocol):
  """Repository contract for per-agent step history."""

  async def create_step(self, record: StepRecord) -> None:
    """Persist a new step."""

  async def update_step(
    self,
    step_id: str,
    *,
    status: StepStatus | None = None,
    output: dict[str, Any] | None = None,
    prompt_tokens: int | None = None,
    completion_tokens: int | None = None,
    estimated_cost_usd: float | None = None,
    duration_ms: int | None = None,
    logs: list[StepLogEntry] | None = None,
    error: str | None = None,
    started_at: str | None = None,
    completed_at: str | None = None,
  ) -> StepRecord | None:
    """Apply partial updates to a step; `total_tokens` follows the token counts."""

  async def list_steps(self, job_id: str) -> list[StepRecord]:
    """Return a job's steps ordered by sequence."""


class EvalsRepository(Protocol):
  """Repository contract for append-only evaluations."""

  async def create_eval(self, record: EvaluationRecord) -> None:
    """Persist an evaluation."""

  async def list_evals(self, job_id: str) -> list[EvaluationRecord]:
    """Return a job's evaluations, oldest first."""

  async def list_recent_automated(self, limit: int) -> list[EvaluationRecord]:
    """Return the most recent automated evaluations across all jobs."""


class GoldenExamplesRepository(Protocol):
  """Repository contract for curated reference outputs."""

  async def create_examples(self, records: list[GoldenExampleRecord]) -> None:
    """Persist a batch of examples."""

  async def find_for_agent(self, agent_type: AgentType, limit: int) -> list[GoldenExampleRecord]:
    """Return active examples for a role, best quality first."""

  async def increment_usage(self, example_ids: list[str]) -> None:
    """Bump the usage counter of each example."""


class PersonasRepository(Protocol):
  """Repository contract for model personas."""

  async def get_persona(self, persona_id: str) -> PersonaRecord | None:
    """Fetch a persona by identifier."""

  async def get_default(self, agent_type: AgentType) -> PersonaRecord | None:
    """Fetch the enabled default persona for a role."""

  async def create_persona(self, record: PersonaRecord) -> None:
    """Persist a persona."""
