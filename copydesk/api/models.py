from __future__ import annotations

from dataclasses import asdict
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

from copydesk.ai.pipeline.contracts import DimensionScores, JobSettings, QaIssue
from copydesk.jobs.models import AgentType, EvalType, EvaluationRecord, GoldenExampleRecord, JobDetail, JobRecord, JobStatus, StepRecord, StepStatus


class CreateArticleJobRequest(BaseModel):
  """Request payload for enqueueing a keyword-to-article job."""

  keyword: StrictStr = Field(min_length=1, max_length=200, description="Target keyword for the article.", examples=["best running shoes for flat feet"])
  settings: JobSettings | None = Field(default=None, description="Optional per-job options; camelCase keys are accepted.")
  priority: int = Field(default=0, ge=0, le=100, description="Higher values are picked up first.")
  model_config = ConfigDict(extra="forbid")

  @field_validator("keyword")
  @classmethod
  def _strip_keyword(cls, value: str) -> str:
    stripped = value.strip()
    if not stripped:
      raise ValueError("Keyword must not be blank.")
    return stripped


class HumanEvalRequest(BaseModel):
  """Human rating for the latest iteration of a job."""

  dimension_scores: DimensionScores
  feedback: StrictStr | None = Field(default=None, max_length=4000)
  issues: list[QaIssue] = Field(default_factory=list)
  model_config = ConfigDict(extra="forbid")


class PromoteGoldenRequest(BaseModel):
  """Promote a completed job's step outputs to golden examples."""

  title: StrictStr = Field(min_length=1, max_length=200)
  description: StrictStr | None = Field(default=None, max_length=2000)
  tags: list[StrictStr] | None = Field(default=None, max_length=20)
  model_config = ConfigDict(extra="forbid")


class ArticleJobResponse(BaseModel):
  """Status and result payload for an article job."""

  job_id: StrictStr
  keyword: StrictStr
  status: JobStatus
  priority: int
  max_iterations: int
  current_iteration: int
  current_agent: AgentType | None = None
  progress_percent: int
  total_tokens_used: int
  estimated_cost_usd: float
  settings: dict[str, Any] = Field(default_factory=dict)
  final_output: dict[str, Any] | None = None
  page_id: StrictStr | None = None
  last_error: StrictStr | None = None
  created_by: StrictStr | None = None
  created_at: StrictStr
  updated_at: StrictStr
  started_at: StrictStr | None = None
  completed_at: StrictStr | None = None
  model_config = ConfigDict(populate_by_name=True)

  @classmethod
  def from_record(cls, record: JobRecord) -> ArticleJobResponse:
    return cls.model_validate(asdict(record))


class ArticleJobListResponse(BaseModel):
  items: list[ArticleJobResponse]
  total: int
  limit: int
  offset: int


class StepLogResponse(BaseModel):
  timestamp: StrictStr
  level: Literal["debug", "info", "warn", "error"]
  message: StrictStr
  data: dict[str, Any] | None = None


class ArticleStepResponse(BaseModel):
  """One persisted agent invocation."""

  step_id: StrictStr
  agent_type: AgentType
  iteration: int
  sequence: int
  status: StepStatus
  input: dict[str, Any] = Field(default_factory=dict)
  output: dict[str, Any] | None = None
  prompt_tokens: int
  completion_tokens: int
  total_tokens: int
  estimated_cost_usd: float
  duration_ms: int | None = None
  logs: list[StepLogResponse] = Field(default_factory=list)
  error: StrictStr | None = None
  created_at: StrictStr
  started_at: StrictStr | None = None
  completed_at: StrictStr | None = None

  @classmethod
  def from_record(cls, record: StepRecord) -> ArticleStepResponse:
    return cls.model_validate(asdict(record))


class EvaluationResponse(BaseModel):
  eval_id: StrictStr
  job_id: StrictStr
  eval_type: EvalType
  iteration: int
  overall_score: int
  dimension_scores: dict[str, int]
  passed: bool
  issues: list[dict[str, Any]] = Field(default_factory=list)
  feedback: StrictStr | None = None
  rated_by: StrictStr | None = None
  rated_at: StrictStr | None = None
  created_at: StrictStr

  @classmethod
  def from_record(cls, record: EvaluationRecord) -> EvaluationResponse:
    return cls.model_validate(asdict(record))


class ArticleJobDetailResponse(BaseModel):
  job: ArticleJobResponse
  steps: list[ArticleStepResponse]
  evals: list[EvaluationResponse]

  @classmethod
  def from_detail(cls, detail: JobDetail) -> ArticleJobDetailResponse:
    return cls(
      job=ArticleJobResponse.from_record(detail.job),
      steps=[ArticleStepResponse.from_record(step) for step in detail.steps],
      evals=[EvaluationResponse.from_record(record) for record in detail.evals],
    )


class GoldenExampleResponse(BaseModel):
  example_id: StrictStr
  agent_type: AgentType
  title: StrictStr
  description: StrictStr | None = None
  source_job_id: StrictStr | None = None
  source_step_id: StrictStr | None = None
  quality_score: int
  tags: list[str] = Field(default_factory=list)
  is_active: bool
  created_at: StrictStr

  @classmethod
  def from_record(cls, record: GoldenExampleRecord) -> GoldenExampleResponse:
    payload = asdict(record)
    payload.pop("input_example", None)
    payload.pop("output_example", None)
    payload.pop("created_by", None)
    payload.pop("usage_count", None)
    return cls.model_validate(payload)


class ExecuteJobResponse(BaseModel):
  job_id: StrictStr
  status: Literal["accepted"] = "accepted"
