"Orchestration for the keyword-to-article agent pipeline."

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, assert_never

from pydantic import BaseModel, ValidationError

from copydesk.ai.agents.base import AgentContext, AgentResult
from copydesk.ai.agents.registry import AgentRegistry
from copydesk.ai.pipeline.contracts import (
  FinalArticle,
  FinalOutput,
  JobSettings,
  QaInput,
  QaIssue,
  QaOutput,
  ResearchInput,
  ResearchOutput,
  SeoInput,
  SeoOutput,
  WriterInput,
  WriterOutput,
)
from copydesk.ai.utils.cost import TokenUsage, sum_usage
from copydesk.ai.utils.text import truncate
from copydesk.core.errors import ConflictError, JobCanceledError, NotFoundError, OrchestrationError
from copydesk.jobs.models import AgentType, JobRecord, JobStatus, PersonaRecord, StepRecord
from copydesk.jobs.progress import JobProgressTracker, build_progress_plan
from copydesk.services.jobs import JobQueueService
from copydesk.storage.repos import JobsRepository, PersonasRepository, StepsRepository
from copydesk.utils.ids import generate_record_id, now_iso

logger = logging.getLogger(__name__)

DEFAULT_TARGET_WORD_COUNT = 1500

AgentStartHook = Callable[[AgentType, int], Awaitable[None]]
AgentCompleteHook = Callable[[AgentType, int, AgentResult[Any]], Awaitable[None]]
ProgressHook = Callable[[AgentType, str], Awaitable[None]]


@dataclass(frozen=True)
class OrchestratorHooks:
  """Optional in-process callbacks; persisted state stays the source of truth."""

  on_agent_start: AgentStartHook | None = None
  on_agent_complete: AgentCompleteHook | None = None
  on_progress: ProgressHook | None = None


@dataclass(frozen=True)
class OrchestrationResult:
  """Outcome of one pipeline execution."""

  success: bool
  job_id: str
  status: JobStatus
  iterations: int = 0
  total_tokens: int = 0
  estimated_cost_usd: float = 0.0
  error: str | None = None


@dataclass
class _RunState:
  job: JobRecord
  settings: JobSettings
  roles: list[AgentType]
  personas: dict[AgentType, PersonaRecord]
  tracker: JobProgressTracker
  sequence: int
  step_usage: list[TokenUsage] = field(default_factory=list)
  step_costs: list[float] = field(default_factory=list)
  iterations: int = 0
  research: ResearchOutput | None = None
  article: WriterOutput | None = None
  seo: SeoOutput | None = None
  qa: QaOutput | None = None
  feedback: str | None = None
  previous_issues: list[QaIssue] = field(default_factory=list)

  @property
  def total_usage(self) -> TokenUsage:
    return sum_usage(self.step_usage)

  @property
  def total_cost(self) -> float:
    return round(sum(self.step_costs), 6)

  @property
  def target_word_count(self) -> int:
    recommended = self.research.recommended_word_count if self.research is not None else None
    return self.settings.target_word_count or recommended or DEFAULT_TARGET_WORD_COUNT


class PipelineOrchestrator:
  """Runs research once, then writer, SEO and QA until QA passes or iterations run out."""

  def __init__(
    self,
    *,
    queue: JobQueueService,
    jobs_repo: JobsRepository,
    steps_repo: StepsRepository,
    personas_repo: PersonasRepository,
    registry: AgentRegistry,
    hooks: OrchestratorHooks | None = None,
  ) -> None:
    self._queue = queue
    self._jobs = jobs_repo
    self._steps = steps_repo
    self._personas = personas_repo
    self._registry = registry
    self._hooks = hooks or OrchestratorHooks()

  async def execute(self, job_id: str) -> OrchestrationResult:
    """Run the pipeline for one job and persist a terminal status."""
    job = await self._start(job_id)
    logger.info("Pipeline starting job_id=%s keyword=%r max_iterations=%d", job.job_id, job.keyword, job.max_iterations)

    try:
      settings = JobSettings.model_validate(job.settings)
    except ValidationError as exc:
      return await self._fail(job.job_id, f"Invalid job settings: {exc.errors()[0].get('msg', exc)}")

    roles = self._registry.pipeline_agents(settings.skip_agents)
    missing = self._registry.validate_pipeline(roles)
    if missing:
      return await self._fail(job.job_id, f"Agent not registered: {missing[0].value}")

    personas: dict[AgentType, PersonaRecord] = {}
    for role in roles:
      persona = await self._resolve_persona(role, settings)
      if persona is None:
        return await self._fail(job.job_id, f"No persona configured for agent: {role.value}")
      personas[role] = persona

    existing_steps = await self._steps.list_steps(job.job_id)
    state = _RunState(
      job=job,
      settings=settings,
      roles=roles,
      personas=personas,
      tracker=JobProgressTracker(job_id=job.job_id, jobs_repo=self._jobs, plan=build_progress_plan(roles, job.max_iterations)),
      sequence=max((step.sequence for step in existing_steps), default=0) + 1,
    )

    try:
      await self._run_pipeline(state)
      return await self._complete(state)
    except JobCanceledError as exc:
      logger.info("Pipeline stopped for cancelled job job_id=%s: %s", job.job_id, exc)
      return self._result(state, "cancelled", error=str(exc))
    except ConflictError as exc:
      current = await self._jobs.get_job(job.job_id)
      status: JobStatus = current.status if current is not None else "failed"
      logger.warning("Pipeline stopped job_id=%s: %s", job.job_id, exc)
      return self._result(state, status, error=str(exc))
    except OrchestrationError as exc:
      return await self._fail(job.job_id, str(exc), state=state)
    except Exception as exc:  # noqa: BLE001
      logger.exception("Pipeline crashed job_id=%s", job.job_id)
      return await self._fail(job.job_id, str(exc) or type(exc).__name__, state=state)

  async def _start(self, job_id: str) -> JobRecord:
    job = await self._jobs.get_job(job_id)
    if job is None:
      raise NotFoundError(f"Job not found: {job_id}")
    if job.status == "pending":
      claimed = await self._jobs.transition_status(job_id, from_statuses=("pending",), to_status="processing", started_at=now_iso())
      if claimed is None:
        job = await self._jobs.get_job(job_id) or job
        if job.status != "processing":
          raise ConflictError(f"Cannot execute job in status {job.status}")
        return job
      return claimed
    if job.status != "processing":
      raise ConflictError(f"Cannot execute job in status {job.status}")
    return job

  async def _resolve_persona(self, agent_type: AgentType, settings: JobSettings) -> PersonaRecord | None:
    override_id = settings.persona_overrides.get(agent_type)
    if override_id:
      persona = await self._personas.get_persona(override_id)
      if persona is not None and persona.is_enabled and persona.agent_type is agent_type:
        return persona
      logger.warning("Persona override %s unusable for %s; falling back to default", override_id, agent_type.value)
    persona = await self._personas.get_default(agent_type)
    if persona is None or not persona.is_enabled:
      return None
    return persona

  async def _run_pipeline(self, state: _RunState) -> None:
    if AgentType.RESEARCH in state.roles:
      await self._run_agent(state, AgentType.RESEARCH, 1)

    iteration = 1
    max_iterations = state.job.max_iterations
    while iteration <= max_iterations:
      state.iterations = iteration
      await state.tracker.start_iteration(iteration)

      await self._run_agent(state, AgentType.WRITER, iteration)
      if AgentType.SEO in state.roles:
        await self._run_agent(state, AgentType.SEO, iteration)
      if AgentType.QA not in state.roles:
        break

      result = await self._run_agent(state, AgentType.QA, iteration)
      qa = state.qa
      if qa is None or qa.passed:
        break
      if iteration >= max_iterations:
        logger.info("QA did not pass within %d iterations job_id=%s; completing best effort", max_iterations, state.job.job_id)
        break
      state.feedback = result.feedback or qa.feedback
      state.previous_issues = list(qa.issues)
      iteration += 1

  async def _run_agent(self, state: _RunState, agent_type: AgentType, iteration: int) -> AgentResult[Any]:
    """Run one agent as one persisted step; a failed result aborts the pipeline."""
    agent = self._registry.get(agent_type)
    if agent is None:
      raise OrchestrationError(f"Agent not registered: {agent_type.value}")

    await state.tracker.start_agent(agent_type, iteration)
    if self._hooks.on_agent_start is not None:
      await self._hooks.on_agent_start(agent_type, iteration)

    agent_input = self._build_input(agent_type, state, iteration)
    step = StepRecord(
      step_id=generate_record_id(),
      job_id=state.job.job_id,
      agent_type=agent_type,
      iteration=iteration,
      sequence=state.sequence,
      status="pending",
      created_at=now_iso(),
      input=agent_input.model_dump(mode="json"),
    )
    await self._steps.create_step(step)
    state.sequence += 1
    await self._steps.update_step(step.step_id, status="running", started_at=now_iso())

    context = AgentContext(job_id=state.job.job_id, step_id=step.step_id, iteration=iteration, persona=state.personas[agent_type], input=agent_input, on_progress=self._progress_callback(agent_type))
    started = time.monotonic()
    result = await agent.execute(context)
    duration_ms = int((time.monotonic() - started) * 1000)

    output = result.output.model_dump(mode="json") if result.output is not None else None
    await self._steps.update_step(
      step.step_id,
      status="completed" if result.success else "failed",
      output=output,
      prompt_tokens=result.usage.prompt_tokens,
      completion_tokens=result.usage.completion_tokens,
      estimated_cost_usd=result.estimated_cost_usd,
      duration_ms=duration_ms,
      logs=context.logs,
      error=result.error,
      completed_at=now_iso(),
    )
    state.step_usage.append(result.usage)
    state.step_costs.append(result.estimated_cost_usd)
    totals = state.total_usage
    await state.tracker.finish_agent(agent_type, iteration, total_tokens=totals.total_tokens, estimated_cost_usd=state.total_cost)
    if self._hooks.on_agent_complete is not None:
      await self._hooks.on_agent_complete(agent_type, iteration, result)

    if not result.success or result.output is None:
      raise OrchestrationError(result.error or f"{agent_type.value} agent returned no output", [entry.message for entry in context.logs])
    self._apply_output(agent_type, state, result.output)
    return result

  def _build_input(self, agent_type: AgentType, state: _RunState, iteration: int) -> BaseModel:
    keyword = state.job.keyword
    match agent_type:
      case AgentType.RESEARCH:
        return ResearchInput(keyword=keyword, context=state.settings.context)
      case AgentType.WRITER:
        revising = iteration > 1 and state.article is not None
        return WriterInput(
          keyword=keyword,
          research=state.research or ResearchOutput(keyword=keyword),
          target_word_count=state.target_word_count,
          context=state.settings.context,
          qa_feedback=state.feedback if revising else None,
          previous_article=state.article if revising else None,
          previous_issues=state.previous_issues if revising else [],
          iteration=iteration,
        )
      case AgentType.SEO:
        return SeoInput(keyword=keyword, article=self._require_article(state), research=state.research)
      case AgentType.QA:
        return QaInput(keyword=keyword, article=self._require_article(state), seo=state.seo, iteration=iteration, previous_issues=state.previous_issues if iteration > 1 else [])
      case _:
        assert_never(agent_type)

  def _apply_output(self, agent_type: AgentType, state: _RunState, output: BaseModel) -> None:
    match agent_type:
      case AgentType.RESEARCH:
        state.research = ResearchOutput.model_validate(output.model_dump())
      case AgentType.WRITER:
        state.article = WriterOutput.model_validate(output.model_dump())
      case AgentType.SEO:
        state.seo = SeoOutput.model_validate(output.model_dump())
      case AgentType.QA:
        state.qa = QaOutput.model_validate(output.model_dump())
      case _:
        assert_never(agent_type)

  def _require_article(self, state: _RunState) -> WriterOutput:
    if state.article is None:
      raise OrchestrationError("Writer output is required before SEO and QA")
    return state.article

  def _progress_callback(self, agent_type: AgentType) -> Callable[[str], Awaitable[None]] | None:
    hook = self._hooks.on_progress
    if hook is None:
      return None

    async def _report(message: str) -> None:
      await hook(agent_type, message)

    return _report

  async def _complete(self, state: _RunState) -> OrchestrationResult:
    final_output = build_final_output(state.job.keyword, state.settings, research=state.research, article=self._require_article(state), seo=state.seo, qa=state.qa, iterations=state.iterations)
    totals = state.total_usage
    try:
      await self._queue.complete_job(state.job.job_id, final_output.model_dump(mode="json"), total_tokens_used=totals.total_tokens, estimated_cost_usd=state.total_cost)
    except (ConflictError, NotFoundError) as exc:
      # Cancelled while the last agent was running.
      current = await self._jobs.get_job(state.job.job_id)
      status: JobStatus = current.status if current is not None else "cancelled"
      logger.info("Pipeline finished after job left processing job_id=%s: %s", state.job.job_id, exc)
      return self._result(state, status, error=f"Job left processing before completion ({status})")
    logger.info("Pipeline completed job_id=%s iterations=%d passed=%s tokens=%d cost_usd=%.4f", state.job.job_id, state.iterations, final_output.passed, totals.total_tokens, state.total_cost)
    return self._result(state, "completed")

  async def _fail(self, job_id: str, error: str, *, state: _RunState | None = None) -> OrchestrationResult:
    logger.error("Pipeline failed job_id=%s: %s", job_id, error)
    status: JobStatus = "failed"
    try:
      await self._queue.fail_job(job_id, error)
    except (ConflictError, NotFoundError):
      current = await self._jobs.get_job(job_id)
      status = current.status if current is not None else "failed"
    if state is None:
      return OrchestrationResult(success=False, job_id=job_id, status=status, error=error)
    return self._result(state, status, error=error)

  def _result(self, state: _RunState, status: JobStatus, *, error: str | None = None) -> OrchestrationResult:
    return OrchestrationResult(
      success=status == "completed",
      job_id=state.job.job_id,
      status=status,
      iterations=state.iterations,
      total_tokens=state.total_usage.total_tokens,
      estimated_cost_usd=state.total_cost,
      error=error,
    )


def build_final_output(
  keyword: str,
  settings: JobSettings,
  *,
  research: ResearchOutput | None,
  article: WriterOutput,
  seo: SeoOutput | None,
  qa: QaOutput | None,
  iterations: int,
) -> FinalOutput:
  """Assemble the CMS-ready draft from the last iteration's outputs."""
  final_article = FinalArticle(
    title=article.title,
    slug=article.slug,
    content=article.content,
    excerpt=article.excerpt,
    meta_title=seo.meta_title if seo is not None else truncate(article.title, 60),
    meta_description=seo.meta_description if seo is not None else article.excerpt,
    schema_markup=seo.schema_markup if seo is not None else {},
    template=settings.template,
    focus_keyword=keyword,
    word_count=article.word_count,
  )
  return FinalOutput(research=research, article=article, seo=seo, qa=qa, iterations=iterations, passed=qa is not None and qa.passed, final_article=final_article)
