"""Domain models for article generation jobs and their history."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from copydesk.ai.utils.cost import TokenUsage

JobStatus = Literal["pending", "processing", "completed", "failed", "cancelled"]
StepStatus = Literal["pending", "running", "completed", "failed"]
EvalType = Literal["automated", "human"]
LogLevel = Literal["debug", "info", "warn", "error"]

TERMINAL_JOB_STATUSES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})
ACTIVE_JOB_STATUSES: frozenset[str] = frozenset({"pending", "processing"})


class AgentType(str, Enum):
  """The four pipeline roles, in no particular order."""

  RESEARCH = "research"
  WRITER = "writer"
  SEO = "seo"
  QA = "qa"


@dataclass
class JobRecord:
  """Represents one keyword-to-article generation request."""

  job_id: str
  keyword: str
  status: JobStatus
  created_at: str
  updated_at: str
  max_iterations: int = 3
  current_iteration: int = 1
  current_agent: AgentType | None = None
  progress_percent: int = 0
  total_tokens_used: int = 0
  estimated_cost_usd: float = 0.0
  final_output: dict[str, Any] | None = None
  page_id: str | None = None
  last_error: str | None = None
  priority: int = 0
  settings: dict[str, Any] = field(default_factory=dict)
  created_by: str | None = None
  started_at: str | None = None
  completed_at: str | None = None

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_JOB_STATUSES


@dataclass
class StepLogEntry:
  timestamp: str
  level: LogLevel
  message: str
  data: dict[str, Any] | None = None


@dataclass
class StepRecord:
  """One agent invocation within a job; append-only per job, ordered by `sequence`."""

  step_id: str
  job_id: str
  agent_type: AgentType
  iteration: int
  sequence: int
  status: StepStatus
  created_at: str
  input: dict[str, Any] = field(default_factory=dict)
  output: dict[str, Any] | None = None
  prompt_tokens: int = 0
  completion_tokens: int = 0
  total_tokens: int = 0
  estimated_cost_usd: float = 0.0
  duration_ms: int | None = None
  logs: list[StepLogEntry] = field(default_factory=list)
  error: str | None = None
  started_at: str | None = None
  completed_at: str | None = None

  @property
  def usage(self) -> TokenUsage:
    return TokenUsage(prompt_tokens=self.prompt_tokens, completion_tokens=self.completion_tokens)


@dataclass
class EvaluationRecord:
  """A quality judgment for one job iteration; never mutated after creation."""

  eval_id: str
  job_id: str
  eval_type: EvalType
  iteration: int
  overall_score: int
  dimension_scores: dict[str, int]
  passed: bool
  created_at: str
  issues: list[dict[str, Any]] = field(default_factory=list)
  feedback: str | None = None
  rated_by: str | None = None
  rated_at: str | None = None


@dataclass
class GoldenExampleRecord:
  """A curated input/output pair kept as reference material for one agent role."""

  example_id: str
  agent_type: AgentType
  title: str
  input_example: dict[str, Any]
  output_example: dict[str, Any]
  created_at: str
  description: str | None = None
  source_job_id: str | None = None
  source_step_id: str | None = None
  quality_score: int = 90
  tags: list[str] = field(default_factory=list)
  created_by: str | None = None
  is_active: bool = True
  usage_count: int = 0


@dataclass
class PersonaRecord:
  """Model configuration bound to an agent role."""

  persona_id: str
  agent_type: AgentType
  name: str
  model: str
  temperature: float | None = None
  max_tokens: int | None = None
  system_prompt: str | None = None
  is_default: bool = False
  is_enabled: bool = True


@dataclass
class JobDetail:
  job: JobRecord
  steps: list[StepRecord]
  evals: list[EvaluationRecord]
