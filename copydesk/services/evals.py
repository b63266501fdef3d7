"""Evaluation recording, golden-example promotion and issue statistics."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Final

from copydesk.ai.pipeline.contracts import DimensionScores, QaOutput
from copydesk.core.errors import InvalidStateError, NotFoundError
from copydesk.jobs.models import EvaluationRecord, GoldenExampleRecord
from copydesk.storage.repos import EvalsRepository, GoldenExamplesRepository, JobsRepository, StepsRepository
from copydesk.utils.ids import generate_record_id, now_iso

logger = logging.getLogger(__name__)

PASS_SCORE: Final[int] = 70
GOLDEN_QUALITY_SCORE: Final[int] = 90
_SEVERITY_RANK: Final[dict[str, int]] = {"low": 0, "medium": 1, "high": 2, "critical": 3}


@dataclass(frozen=True)
class CommonIssue:
  category: str
  description: str
  severity: str
  count: int


class EvalService:
  """Records quality judgments and curates reference material from good jobs."""

  def __init__(self, *, jobs_repo: JobsRepository, steps_repo: StepsRepository, evals_repo: EvalsRepository, golden_repo: GoldenExamplesRepository) -> None:
    self._jobs = jobs_repo
    self._steps = steps_repo
    self._evals = evals_repo
    self._golden = golden_repo

  async def record_automated_eval(self, *, job_id: str, iteration: int, output: QaOutput) -> EvaluationRecord:
    record = EvaluationRecord(
      eval_id=generate_record_id(),
      job_id=job_id,
      eval_type="automated",
      iteration=iteration,
      overall_score=output.overall_score,
      dimension_scores=output.dimension_scores.model_dump(),
      passed=output.passed,
      created_at=now_iso(),
      issues=[issue.model_dump(exclude_none=True) for issue in output.issues],
      feedback=output.feedback or None,
    )
    await self._evals.create_eval(record)
    logger.debug("Automated eval recorded job_id=%s iteration=%d score=%d passed=%s", job_id, iteration, record.overall_score, record.passed)
    return record

  async def record_human_eval(self, job_id: str, *, dimension_scores: DimensionScores, feedback: str | None = None, issues: list[dict[str, Any]] | None = None, rated_by: str | None = None) -> EvaluationRecord:
    """Store a reviewer's scores against the job's current iteration."""
    job = await self._jobs.get_job(job_id)
    if job is None:
      raise NotFoundError(f"Job not found: {job_id}")

    scores = dimension_scores.model_dump()
    overall = round(sum(scores.values()) / len(scores))
    timestamp = now_iso()
    record = EvaluationRecord(
      eval_id=generate_record_id(),
      job_id=job_id,
      eval_type="human",
      iteration=job.current_iteration,
      overall_score=overall,
      dimension_scores=scores,
      passed=overall >= PASS_SCORE,
      created_at=timestamp,
      issues=list(issues or []),
      feedback=feedback,
      rated_by=rated_by,
      rated_at=timestamp,
    )
    await self._evals.create_eval(record)
    logger.info("Human eval recorded job_id=%s score=%d rated_by=%s", job_id, overall, rated_by)
    return record

  async def promote_to_golden(self, job_id: str, *, title: str, description: str | None = None, tags: list[str] | None = None, created_by: str | None = None) -> list[GoldenExampleRecord]:
    """Turn every completed step of a completed job into an active golden example."""
    job = await self._jobs.get_job(job_id)
    if job is None:
      raise NotFoundError(f"Job not found: {job_id}")
    if job.status != "completed":
      raise InvalidStateError(f"Only completed jobs can be promoted (status: {job.status})")

    steps = [step for step in await self._steps.list_steps(job_id) if step.status == "completed" and step.output]
    if not steps:
      raise InvalidStateError(f"Job {job_id} has no completed steps with output")

    timestamp = now_iso()
    examples = [
      GoldenExampleRecord(
        example_id=generate_record_id(),
        agent_type=step.agent_type,
        title=f"{title} - {step.agent_type.value}",
        input_example=step.input,
        output_example=step.output or {},
        created_at=timestamp,
        description=description,
        source_job_id=job_id,
        source_step_id=step.step_id,
        quality_score=GOLDEN_QUALITY_SCORE,
        tags=list(tags) if tags else [job.keyword],
        created_by=created_by,
      )
      for step in steps
    ]
    await self._golden.create_examples(examples)
    logger.info("Promoted job_id=%s to %d golden examples", job_id, len(examples))
    return examples

  async def list_evals(self, job_id: str) -> list[EvaluationRecord]:
    return await self._evals.list_evals(job_id)

  async def get_common_issues(self, limit: int = 5, sample_size: int = 50) -> list[CommonIssue]:
    """Most frequent issues across recent automated evals."""
    counts: Counter[tuple[str, str]] = Counter()
    severities: dict[tuple[str, str], str] = {}
    for record in await self._evals.list_recent_automated(sample_size):
      for issue in record.issues:
        description = str(issue.get("description", "")).strip()
        if not description:
          continue
        key = (str(issue.get("category", "")), description)
        counts[key] += 1
        severity = str(issue.get("severity", "low"))
        if _SEVERITY_RANK.get(severity, 0) >= _SEVERITY_RANK.get(severities.get(key, "low"), 0):
          severities[key] = severity
    return [CommonIssue(category=category, description=description, severity=severities[(category, description)], count=count) for (category, description), count in counts.most_common(limit)]
