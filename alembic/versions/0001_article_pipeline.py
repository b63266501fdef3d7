"""Create article pipeline tables and seed default personas.

Revision ID: 0001_article_pipeline
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001_article_pipeline"
down_revision = None
branch_labels = None
depends_on = None

_NOW_ISO = sa.text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")
_DEFAULT_MODEL = "claude-sonnet-4-5"

_DEFAULT_PERSONAS = [
  (
    "research",
    "Default Research Agent",
    0.3,
    "You are a research analyst for an SEO content team. Analyze the keyword's search intent, the top-ranking pages and the questions searchers ask. "
    "Recommend a word count based on what already ranks and point out topics competitors miss.",
  ),
  (
    "writer",
    "Default Writer Agent",
    0.7,
    "You are a staff writer producing SEO articles in Markdown. Write at a 7th grade reading level. "
    "Never use emojis or em dashes. Avoid hype and generic marketing phrases. Use one H1 followed by a clear H2/H3 hierarchy.",
  ),
  (
    "seo",
    "Default SEO Agent",
    0.5,
    "You are an on-page SEO specialist. Write a meta title under 60 characters with the keyword near the front "
    "and a meta description under 160 characters. Suggest internal links and give specific recommendations.",
  ),
  (
    "qa",
    "Default QA Agent",
    0.3,
    "You are a strict but constructive editor. Score readability, SEO, accuracy, engagement and brand voice from 0 to 100. "
    "List concrete issues with a severity and a suggestion for each, and write feedback the writer can act on.",
  ),
]


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "article_jobs",
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("keyword", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("max_iterations", sa.Integer(), server_default=sa.text("3"), nullable=False),
    sa.Column("current_iteration", sa.Integer(), server_default=sa.text("1"), nullable=False),
    sa.Column("current_agent", sa.String(), nullable=True),
    sa.Column("progress_percent", sa.Integer(), server_default=sa.text("0"), nullable=False),
    sa.Column("total_tokens_used", sa.Integer(), server_default=sa.text("0"), nullable=False),
    sa.Column("estimated_cost_usd", sa.Float(), server_default=sa.text("0"), nullable=False),
    sa.Column("final_output", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("page_id", sa.String(), nullable=True),
    sa.Column("last_error", sa.Text(), nullable=True),
    sa.Column("priority", sa.Integer(), server_default=sa.text("0"), nullable=False),
    sa.Column("settings_json", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
    sa.Column("created_by", sa.String(), nullable=True),
    sa.Column("created_at", sa.String(), server_default=_NOW_ISO, nullable=False),
    sa.Column("updated_at", sa.String(), server_default=_NOW_ISO, nullable=False),
    sa.Column("started_at", sa.String(), nullable=True),
    sa.Column("completed_at", sa.String(), nullable=True),
    sa.PrimaryKeyConstraint("job_id"),
  )
  op.create_index(op.f("ix_article_jobs_status"), "article_jobs", ["status"], unique=False)
  op.create_index(op.f("ix_article_jobs_created_by"), "article_jobs", ["created_by"], unique=False)
  op.create_index("ix_article_jobs_pending_queue", "article_jobs", ["priority", "created_at"], unique=False, postgresql_where=sa.text("status = 'pending'"))

  op.create_table(
    "article_job_steps",
    sa.Column("step_id", sa.String(), nullable=False),
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("agent_type", sa.String(), nullable=False),
    sa.Column("iteration", sa.Integer(), nullable=False),
    sa.Column("sequence", sa.Integer(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("input_json", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
    sa.Column("output_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("prompt_tokens", sa.Integer(), server_default=sa.text("0"), nullable=False),
    sa.Column("completion_tokens", sa.Integer(), server_default=sa.text("0"), nullable=False),
    sa.Column("total_tokens", sa.Integer(), server_default=sa.text("0"), nullable=False),
    sa.Column("estimated_cost_usd", sa.Float(), server_default=sa.text("0"), nullable=False),
    sa.Column("duration_ms", sa.Integer(), nullable=True),
    sa.Column("logs_json", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
    sa.Column("error", sa.Text(), nullable=True),
    sa.Column("created_at", sa.String(), server_default=_NOW_ISO, nullable=False),
    sa.Column("started_at", sa.String(), nullable=True),
    sa.Column("completed_at", sa.String(), nullable=True),
    sa.ForeignKeyConstraint(["job_id"], ["article_jobs.job_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("step_id"),
    sa.UniqueConstraint("job_id", "sequence", name="ux_article_job_steps_job_sequence"),
  )
  op.create_index(op.f("ix_article_job_steps_job_id"), "article_job_steps", ["job_id"], unique=False)

  op.create_table(
    "article_evals",
    sa.Column("eval_id", sa.String(), nullable=False),
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("eval_type", sa.String(), nullable=False),
    sa.Column("iteration", sa.Integer(), nullable=False),
    sa.Column("overall_score", sa.Integer(), nullable=False),
    sa.Column("dimension_scores", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("passed", sa.Boolean(), nullable=False),
    sa.Column("issues_json", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
    sa.Column("feedback", sa.Text(), nullable=True),
    sa.Column("rated_by", sa.String(), nullable=True),
    sa.Column("rated_at", sa.String(), nullable=True),
    sa.Column("created_at", sa.String(), server_default=_NOW_ISO, nullable=False),
    sa.ForeignKeyConstraint(["job_id"], ["article_jobs.job_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("eval_id"),
  )
  op.create_index(op.f("ix_article_evals_job_id"), "article_evals", ["job_id"], unique=False)
  op.create_index(op.f("ix_article_evals_eval_type"), "article_evals", ["eval_type"], unique=False)
  op.create_index(op.f("ix_article_evals_created_at"), "article_evals", ["created_at"], unique=False)

  op.create_table(
    "golden_examples",
    sa.Column("example_id", sa.String(), nullable=False),
    sa.Column("agent_type", sa.String(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("input_example", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("output_example", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("source_job_id", sa.String(), nullable=True),
    sa.Column("source_step_id", sa.String(), nullable=True),
    sa.Column("quality_score", sa.Integer(), server_default=sa.text("90"), nullable=False),
    sa.Column("tags", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
    sa.Column("created_by", sa.String(), nullable=True),
    sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
    sa.Column("usage_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
    sa.Column("created_at", sa.String(), server_default=_NOW_ISO, nullable=False),
    sa.ForeignKeyConstraint(["source_job_id"], ["article_jobs.job_id"], ondelete="SET NULL"),
    sa.PrimaryKeyConstraint("example_id"),
  )
  op.create_index(op.f("ix_golden_examples_agent_type"), "golden_examples", ["agent_type"], unique=False)

  personas = op.create_table(
    "agent_personas",
    sa.Column("persona_id", sa.String(), nullable=False),
    sa.Column("agent_type", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("model", sa.String(), nullable=False),
    sa.Column("temperature", sa.Float(), nullable=True),
    sa.Column("max_tokens", sa.Integer(), nullable=True),
    sa.Column("system_prompt", sa.Text(), nullable=True),
    sa.Column("is_default", sa.Boolean(), server_default=sa.text("false"), nullable=False),
    sa.Column("is_enabled", sa.Boolean(), server_default=sa.text("true"), nullable=False),
    sa.Column("created_at", sa.String(), server_default=_NOW_ISO, nullable=False),
    sa.Column("updated_at", sa.String(), server_default=_NOW_ISO, nullable=False),
    sa.PrimaryKeyConstraint("persona_id"),
  )
  op.create_index(op.f("ix_agent_personas_agent_type"), "agent_personas", ["agent_type"], unique=False)
  op.create_index("ux_agent_personas_default", "agent_personas", ["agent_type"], unique=True, postgresql_where=sa.text("is_default"))

  op.bulk_insert(
    personas,
    [
      {"persona_id": f"persona-default-{agent_type}", "agent_type": agent_type, "name": name, "model": _DEFAULT_MODEL, "temperature": temperature, "system_prompt": prompt, "is_default": True, "is_enabled": True}
      for agent_type, name, temperature, prompt in _DEFAULT_PERSONAS
    ],
  )


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index("ux_agent_personas_default", table_name="agent_personas")
  op.drop_index(op.f("ix_agent_personas_agent_type"), table_name="agent_personas")
  op.drop_table("agent_personas")
  op.drop_index(op.f("ix_golden_examples_agent_type"), table_name="golden_examples")
  op.drop_table("golden_examples")
  op.drop_index(op.f("ix_article_evals_created_at"), table_name="article_evals")
  op.drop_index(op.f("ix_article_evals_eval_type"), table_name="article_evals")
  op.drop_index(op.f("ix_article_evals_job_id"), table_name="article_evals")
  op.drop_table("article_evals")
  op.drop_index(op.f("ix_article_job_steps_job_id"), table_name="article_job_steps")
  op.drop_table("article_job_steps")
  op.drop_index("ix_article_jobs_pending_queue", table_name="article_jobs")
  op.drop_index(op.f("ix_article_jobs_created_by"), table_name="article_jobs")
  op.drop_index(op.f("ix_article_jobs_status"), table_name="article_jobs")
  op.drop_table("article_jobs")
