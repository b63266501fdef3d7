"""Job progress planning and tracking utilities."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from copydesk.core.errors import ConflictError, JobCanceledError
from copydesk.jobs.models import AgentType, JobRecord
from copydesk.storage.repos import JobsRepository

RESEARCH_SHARE = 10
MAX_RUNNING_PERCENT = 99


@dataclass(frozen=True)
class ProgressPlan:
  """Maps (agent, iteration) positions onto a 0..99 progress scale."""

  include_research: bool
  loop_roles: tuple[AgentType, ...]
  max_iterations: int

  @property
  def loop_slots(self) -> int:
    return self.max_iterations * len(self.loop_roles)

  def percent(self, agent_type: AgentType, iteration: int, *, done: bool) -> int:
    base = RESEARCH_SHARE if self.include_research else 0
    if agent_type is AgentType.RESEARCH:
      return base if done else 0
    if not self.loop_slots or agent_type not in self.loop_roles:
      return min(base, MAX_RUNNING_PERCENT)
    position = (iteration - 1) * len(self.loop_roles) + self.loop_roles.index(agent_type) + (1 if done else 0)
    value = base + (100 - base) * position / self.loop_slots
    return min(int(value), MAX_RUNNING_PERCENT)


def build_progress_plan(roles: Sequence[AgentType], max_iterations: int) -> ProgressPlan:
  """Derive a progress plan from the active roles of one job."""
  loop_roles = tuple(role for role in roles if role is not AgentType.RESEARCH)
  return ProgressPlan(include_research=AgentType.RESEARCH in roles, loop_roles=loop_roles, max_iterations=max(max_iterations, 1))


class JobProgressTracker:
  """Persist current agent, iteration and progress, and surface cancellation at step boundaries."""

  def __init__(self, *, job_id: str, jobs_repo: JobsRepository, plan: ProgressPlan) -> None:
    self._job_id = job_id
    self._jobs_repo = jobs_repo
    self._plan = plan

  @property
  def plan(self) -> ProgressPlan:
    return self._plan

  async def ensure_active(self) -> JobRecord:
    """Reload the job and stop the run if it left the processing state."""
    job = await self._jobs_repo.get_job(self._job_id)
    if job is None:
      raise JobCanceledError(f"Job {self._job_id} no longer exists.")
    if job.status == "cancelled":
      raise JobCanceledError(f"Job {self._job_id} was cancelled.")
    if job.is_terminal:
      raise ConflictError(f"Job {self._job_id} is already {job.status}.")
    return job

  async def start_iteration(self, iteration: int) -> JobRecord:
    return await self._write(current_iteration=iteration)

  async def start_agent(self, agent_type: AgentType, iteration: int) -> JobRecord:
    return await self._write(current_agent=agent_type, progress_percent=self._plan.percent(agent_type, iteration, done=False))

  async def finish_agent(self, agent_type: AgentType, iteration: int, *, total_tokens: int, estimated_cost_usd: float) -> JobRecord:
    return await self._write(
      progress_percent=self._plan.percent(agent_type, iteration, done=True),
      total_tokens_used=total_tokens,
      estimated_cost_usd=estimated_cost_usd,
    )

  async def _write(self, **fields: Any) -> JobRecord:
    # Only a processing job is written; terminal jobs are final.
    updated = await self._jobs_repo.update_job(self._job_id, expected_status="processing", **fields)
    if updated is None:
      job = await self.ensure_active()
      raise ConflictError(f"Job {self._job_id} is {job.status}, not processing.")
    return updated
