from __future__ import annotations

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from copydesk.core.database import Base

_NOW_ISO = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


class ArticleJob(Base):
  __tablename__ = "article_jobs"
  __table_args__ = (Index("ix_article_jobs_pending_queue", "priority", "created_at", postgresql_where=text("status = 'pending'")),)

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  keyword: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  max_iterations: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
  current_iteration: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
  current_agent: Mapped[str | None] = mapped_column(String, nullable=True)
  progress_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  total_tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  estimated_cost_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
  final_output: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  page_id: Mapped[str | None] = mapped_column(String, nullable=True)
  last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
  priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  settings_json: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
  created_by: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_NOW_ISO)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_NOW_ISO)
  started_at: Mapped[str | None] = mapped_column(String, nullable=True)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)


class ArticleJobStep(Base):
  __tablename__ = "article_job_steps"
  __table_args__ = (UniqueConstraint("job_id", "sequence", name="ux_article_job_steps_job_sequence"),)

  step_id: Mapped[str] = mapped_column(String, primary_key=True)
  job_id: Mapped[str] = mapped_column(ForeignKey("article_jobs.job_id", ondelete="CASCADE"), nullable=False, index=True)
  agent_type: Mapped[str] = mapped_column(String, nullable=False)
  iteration: Mapped[int] = mapped_column(Integer, nullable=False)
  sequence: Mapped[int] = mapped_column(Integer, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False)
  input_json: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
  output_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  prompt_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  completion_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  total_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  estimated_cost_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
  duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
  logs_json: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_NOW_ISO)
  started_at: Mapped[str | None] = mapped_column(String, nullable=True)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)


class ArticleEval(Base):
  __tablename__ = "article_evals"

  eval_id: Mapped[str] = mapped_column(String, primary_key=True)
  job_id: Mapped[str] = mapped_column(ForeignKey("article_jobs.job_id", ondelete="CASCADE"), nullable=False, index=True)
  eval_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
  iteration: Mapped[int] = mapped_column(Integer, nullable=False)
  overall_score: Mapped[int] = mapped_column(Integer, nullable=False)
  dimension_scores: Mapped[dict] = mapped_column(JSONB, nullable=False)
  passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
  issues_json: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
  rated_by: Mapped[str | None] = mapped_column(String, nullable=True)
  rated_at: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_NOW_ISO, index=True)


class GoldenExample(Base):
  __tablename__ = "golden_examples"

  example_id: Mapped[str] = mapped_column(String, primary_key=True)
  agent_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  input_example: Mapped[dict] = mapped_column(JSONB, nullable=False)
  output_example: Mapped[dict] = mapped_column(JSONB, nullable=False)
  source_job_id: Mapped[str | None] = mapped_column(ForeignKey("article_jobs.job_id", ondelete="SET NULL"), nullable=True)
  source_step_id: Mapped[str | None] = mapped_column(String, nullable=True)
  quality_score: Mapped[int] = mapped_column(Integer, nullable=False, default=90)
  tags: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  created_by: Mapped[str | None] = mapped_column(String, nullable=True)
  is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_NOW_ISO)


class AgentPersona(Base):
  __tablename__ = "agent_personas"
  __table_args__ = (Index("ux_agent_personas_default", "agent_type", unique=True, postgresql_where=text("is_default")),)

  persona_id: Mapped[str] = mapped_column(String, primary_key=True)
  agent_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  model: Mapped[str] = mapped_column(String, nullable=False)
  temperature: Mapped[float | None] = mapped_column(Float, nullable=True)
  max_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
  system_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
  is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_NOW_ISO)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_NOW_ISO)
