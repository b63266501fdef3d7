"""Postgres-backed repositories for the article pipeline using SQLAlchemy."""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import asdict
from typing import Any

from sqlalchemy import and_, func, select, update

from copydesk.core.database import get_session_factory
from copydesk.jobs.models import AgentType, EvaluationRecord, GoldenExampleRecord, JobRecord, JobStatus, PersonaRecord, StepLogEntry, StepRecord, StepStatus
from copydesk.schema.pipeline import AgentPersona, ArticleEval, ArticleJob, ArticleJobStep, GoldenExample
from copydesk.storage.repos import EvalsRepository, GoldenExamplesRepository, JobsRepository, PersonasRepository, StepsRepository
from copydesk.utils.ids import now_iso


class PostgresJobsRepository(JobsRepository):
  """Persist article jobs to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()

  async def create_job(self, record: JobRecord) -> None:
    async with self._session_factory() as session:
      session.add(
        ArticleJob(
          job_id=record.job_id,
          keyword=record.keyword,
          status=record.status,
          max_iterations=record.max_iterations,
          current_iteration=record.current_iteration,
          current_agent=record.current_agent.value if record.current_agent else None,
          progress_percent=record.progress_percent,
          total_tokens_used=record.total_tokens_used,
          estimated_cost_usd=record.estimated_cost_usd,
          final_output=record.final_output,
          page_id=record.page_id,
          last_error=record.last_error,
          priority=record.priority,
          settings_json=record.settings,
          created_by=record.created_by,
          created_at=record.created_at,
          updated_at=record.updated_at,
          started_at=record.started_at,
          completed_at=record.completed_at,
        )
      )
      await session.commit()

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(ArticleJob, job_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def update_job(  # pylint: disable=too-many-arguments
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
    async with self._session_factory() as session:
      row = await session.get(ArticleJob, job_id, with_for_update=expected_status is not None)
      if row is None or (expected_status is not None and row.status != expected_status):
        return None
      if status is not None:
        row.status = status
      if current_iteration is not None:
        row.current_iteration = current_iteration
      if clear_current_agent:
        row.current_agent = None
      elif current_agent is not None:
        row.current_agent = current_agent.value
      if progress_percent is not None:
        row.progress_percent = progress_percent
      if total_tokens_used is not None:
        row.total_tokens_used = total_tokens_used
      if estimated_cost_usd is not None:
        row.estimated_cost_usd = estimated_cost_usd
      if final_output is not None:
        row.final_output = final_output
      if page_id is not None:
        row.page_id = page_id
      if last_error is not None:
        row.last_error = last_error
      if started_at is not None:
        row.started_at = started_at
      if completed_at is not None:
        row.completed_at = completed_at
      row.updated_at = now_iso()
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

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
    values: dict[str, Any] = {"status": to_status, "updated_at": now_iso()}
    optional = {
      "last_error": last_error,
      "started_at": started_at,
      "completed_at": completed_at,
      "final_output": final_output,
      "progress_percent": progress_percent,
      "total_tokens_used": total_tokens_used,
      "estimated_cost_usd": estimated_cost_usd,
      "page_id": page_id,
    }
    values.update({key: value for key, value in optional.items() if value is not None})
    if clear_current_agent:
      values["current_agent"] = None
    async with self._session_factory() as session:
      stmt = update(ArticleJob).where(ArticleJob.job_id == job_id, ArticleJob.status.in_(tuple(from_statuses))).values(**values).returning(ArticleJob)
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._model_to_record(row)

  async def list_jobs(self, limit: int, offset: int, status: JobStatus | None = None, created_by: str | None = None) -> tuple[list[JobRecord], int]:
    async with self._session_factory() as session:
      stmt = select(ArticleJob).order_by(ArticleJob.created_at.desc(), ArticleJob.job_id.desc()).limit(limit).offset(offset)
      count_stmt = select(func.count()).select_from(ArticleJob)
      filters = []
      if status:
        filters.append(ArticleJob.status == status)
      if created_by:
        filters.append(ArticleJob.created_by == created_by)
      if filters:
        stmt = stmt.where(and_(*filters))
        count_stmt = count_stmt.where(and_(*filters))
      total = await session.scalar(count_stmt)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows], int(total or 0)

  async def claim_next_pending(self) -> JobRecord | None:
    async with self._session_factory() as session:
      stmt = select(ArticleJob).where(ArticleJob.status == "pending").order_by(ArticleJob.priority.desc(), ArticleJob.created_at.asc()).with_for_update(skip_locked=True).limit(1)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      timestamp = now_iso()
      row.status = "processing"
      row.started_at = row.started_at or timestamp
      row.updated_at = timestamp
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  async def count_by_status(self, status: JobStatus) -> int:
    async with self._session_factory() as session:
      total = await session.scalar(select(func.count()).select_from(ArticleJob).where(ArticleJob.status == status))
      return int(total or 0)

  def _model_to_record(self, row: ArticleJob) -> JobRecord:
    return JobRecord(
      job_id=row.job_id,
      keyword=row.keyword,
      status=row.status,  # type: ignore[arg-type]
      created_at=row.created_at,
      updated_at=row.updated_at,
      max_iterations=row.max_iterations,
      current_iteration=row.current_iteration,
      current_agent=AgentType(row.current_agent) if row.current_agent else None,
      progress_percent=row.progress_percent,
      total_tokens_used=row.total_tokens_used,
      estimated_cost_usd=float(row.estimated_cost_usd),
      final_output=row.final_output,
      page_id=row.page_id,
      last_error=row.last_error,
      priority=row.priority,
      settings=dict(row.settings_json or {}),
      created_by=row.created_by,
      started_at=row.started_at,
      completed_at=row.completed_at,
    )


class PostgresStepsRepository(StepsRepository):
  """Persist agent steps to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()

  async def create_step(self, record: StepRecord) -> None:
    async with self._session_factory() as session:
      session.add(
        ArticleJobStep(
          step_id=record.step_id,
          job_id=record.job_id,
          agent_type=record.agent_type.value,
          iteration=record.iteration,
          sequence=record.sequence,
          status=record.status,
          input_json=record.input,
          output_json=record.output,
          prompt_tokens=record.prompt_tokens,
          completion_tokens=record.completion_tokens,
          total_tokens=record.total_tokens,
          estimated_cost_usd=record.estimated_cost_usd,
          duration_ms=record.duration_ms,
          logs_json=[asdict(entry) for entry in record.logs],
          error=record.error,
          created_at=record.created_at,
          started_at=record.started_at,
          completed_at=record.completed_at,
        )
      )
      await session.commit()

  async def update_step(  # pylint: disable=too-many-arguments
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
    async with self._session_factory() as session:
      row = await session.get(ArticleJobStep, step_id)
      if row is None:
        return None
      if status is not None:
        row.status = status
      if output is not None:
        row.output_json = output
      if prompt_tokens is not None:
        row.prompt_tokens = prompt_tokens
      if completion_tokens is not None:
        row.completion_tokens = completion_tokens
      row.total_tokens = row.prompt_tokens + row.completion_tokens
      if estimated_cost_usd is not None:
        row.estimated_cost_usd = estimated_cost_usd
      if duration_ms is not None:
        row.duration_ms = duration_ms
      if logs is not None:
        row.logs_json = [asdict(entry) for entry in logs]
      if error is not None:
        row.error = error
      if started_at is not None:
        row.started_at = started_at
      if completed_at is not None:
        row.completed_at = completed_at
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  async def list_steps(self, job_id: str) -> list[StepRecord]:
    async with self._session_factory() as session:
      stmt = select(ArticleJobStep).where(ArticleJobStep.job_id == job_id).order_by(ArticleJobStep.sequence.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  def _model_to_record(self, row: ArticleJobStep) -> StepRecord:
    return StepRecord(
      step_id=row.step_id,
      job_id=row.job_id,
      agent_type=AgentType(row.agent_type),
      iteration=row.iteration,
      sequence=row.sequence,
      status=row.status,  # type: ignore[arg-type]
      created_at=row.created_at,
      input=dict(row.input_json or {}),
      output=row.output_json,
      prompt_tokens=row.prompt_tokens,
      completion_tokens=row.completion_tokens,
      total_tokens=row.total_tokens,
      estimated_cost_usd=float(row.estimated_cost_usd),
      duration_ms=row.duration_ms,
      logs=[StepLogEntry(**entry) for entry in row.logs_json or []],
      error=row.error,
      started_at=row.started_at,
      completed_at=row.completed_at,
    )


class PostgresEvalsRepository(EvalsRepository):
  """Persist evaluations to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()

  async def create_eval(self, record: EvaluationRecord) -> None:
    async with self._session_factory() as session:
      session.add(
        ArticleEval(
          eval_id=record.eval_id,
          job_id=record.job_id,
          eval_type=record.eval_type,
          iteration=record.iteration,
          overall_score=record.overall_score,
          dimension_scores=record.dimension_scores,
          passed=record.passed,
          issues_json=record.issues,
          feedback=record.feedback,
          rated_by=record.rated_by,
          rated_at=record.rated_at,
          created_at=record.created_at,
        )
      )
      await session.commit()

  async def list_evals(self, job_id: str) -> list[EvaluationRecord]:
    async with self._session_factory() as session:
      stmt = select(ArticleEval).where(ArticleEval.job_id == job_id).order_by(ArticleEval.created_at.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def list_recent_automated(self, limit: int) -> list[EvaluationRecord]:
    async with self._session_factory() as session:
      stmt = select(ArticleEval).where(ArticleEval.eval_type == "automated").order_by(ArticleEval.created_at.desc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  def _model_to_record(self, row: ArticleEval) -> EvaluationRecord:
    return EvaluationRecord(
      eval_id=row.eval_id,
      job_id=row.job_id,
      eval_type=row.eval_type,  # type: ignore[arg-type]
      iteration=row.iteration,
      overall_score=row.overall_score,
      dimension_scores=dict(row.dimension_scores or {}),
      passed=row.passed,
      created_at=row.created_at,
      issues=list(row.issues_json or []),
      feedback=row.feedback,
      rated_by=row.rated_by,
      rated_at=row.rated_at,
    )


class PostgresGoldenExamplesRepository(GoldenExamplesRepository):
  """Persist golden examples to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()

  async def create_examples(self, records: list[GoldenExampleRecord]) -> None:
    async with self._session_factory() as session:
      for record in records:
        session.add(
          GoldenExample(
            example_id=record.example_id,
            agent_type=record.agent_type.value,
            title=record.title,
            description=record.description,
            input_example=record.input_example,
            output_example=record.output_example,
            source_job_id=record.source_job_id,
            source_step_id=record.source_step_id,
            quality_score=record.quality_score,
            tags=record.tags,
            created_by=record.created_by,
            is_active=record.is_active,
            usage_count=record.usage_count,
            created_at=record.created_at,
          )
        )
      await session.commit()

  async def find_for_agent(self, agent_type: AgentType, limit: int) -> list[GoldenExampleRecord]:
    async with self._session_factory() as session:
      stmt = (
        select(GoldenExample)
        .where(GoldenExample.agent_type == agent_type.value, GoldenExample.is_active.is_(True))
        .order_by(GoldenExample.quality_score.desc(), GoldenExample.created_at.desc())
        .limit(limit)
      )
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def increment_usage(self, example_ids: list[str]) -> None:
    if not example_ids:
      return
    async with self._session_factory() as session:
      await session.execute(update(GoldenExample).where(GoldenExample.example_id.in_(example_ids)).values(usage_count=GoldenExample.usage_count + 1))
      await session.commit()

  def _model_to_record(self, row: GoldenExample) -> GoldenExampleRecord:
    return GoldenExampleRecord(
      example_id=row.example_id,
      agent_type=AgentType(row.agent_type),
      title=row.title,
      input_example=dict(row.input_example or {}),
      output_example=dict(row.output_example or {}),
      created_at=row.created_at,
      description=row.description,
      source_job_id=row.source_job_id,
      source_step_id=row.source_step_id,
      quality_score=row.quality_score,
      tags=list(row.tags or []),
      created_by=row.created_by,
      is_active=row.is_active,
      usage_count=row.usage_count,
    )


class PostgresPersonasRepository(PersonasRepository):
  """Persist personas to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()

  async def get_persona(self, persona_id: str) -> PersonaRecord | None:
    async with self._session_factory() as session:
      row = await session.get(AgentPersona, persona_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def get_default(self, agent_type: AgentType) -> PersonaRecord | None:
    async with self._session_factory() as session:
      stmt = select(AgentPersona).where(AgentPersona.agent_type == agent_type.value, AgentPersona.is_default.is_(True), AgentPersona.is_enabled.is_(True)).limit(1)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      return self._model_to_record(row)

  async def create_persona(self, record: PersonaRecord) -> None:
    async with self._session_factory() as session:
      session.add(
        AgentPersona(
          persona_id=record.persona_id,
          agent_type=record.agent_type.value,
          name=record.name,
          model=record.model,
          temperature=record.temperature,
          max_tokens=record.max_tokens,
          system_prompt=record.system_prompt,
          is_default=record.is_default,
          is_enabled=record.is_enabled,
        )
      )
      await session.commit()

  def _model_to_record(self, row: AgentPersona) -> PersonaRecord:
    return PersonaRecord(
      persona_id=row.persona_id,
      agent_type=AgentType(row.agent_type),
      name=row.name,
      model=row.model,
      temperature=row.temperature,
      max_tokens=row.max_tokens,
      system_prompt=row.system_prompt,
      is_default=row.is_default,
      is_enabled=row.is_enabled,
    )
