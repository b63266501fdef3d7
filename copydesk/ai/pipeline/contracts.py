"""Shared data contracts for the article pipeline."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from copydesk.jobs.models import AgentType

IssueCategory = Literal["readability", "seo", "accuracy", "engagement", "brand_voice"]
IssueSeverity = Literal["low", "medium", "high", "critical"]
DensityStatus = Literal["too_low", "optimal", "too_high"]


class ContractModel(BaseModel):
  """Base for pipeline payloads; accepts camelCase from models and snake_case from code."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobSettings(ContractModel):
  """Per-job options stored alongside the keyword."""

  auto_post: bool = False
  target_word_count: int = Field(default=0, ge=0, le=10000, description="0 uses the research recommendation.")
  max_iterations: int | None = Field(default=None, ge=1, le=10)
  template: str = "article"
  parent_page_id: str | None = None
  persona_overrides: dict[AgentType, str] = Field(default_factory=dict)
  skip_agents: list[AgentType] = Field(default_factory=list)
  context: str | None = Field(default=None, max_length=2000)
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

  @field_validator("skip_agents")
  @classmethod
  def _writer_required(cls, value: list[AgentType]) -> list[AgentType]:
    # SEO, QA and the final article all read the writer's draft.
    if AgentType.WRITER in value:
      raise ValueError("The writer agent cannot be skipped")
    return list(dict.fromkeys(value))


# Research


class KeywordData(ContractModel):
  search_volume: int | None = None
  difficulty: float | None = None
  intent: str | None = None
  cpc: float | None = None


class CompetitorPage(ContractModel):
  url: str
  title: str
  description: str | None = None
  word_count: int | None = None
  headings: list[str] = Field(default_factory=list)


class ResearchFindings(ContractModel):
  """Raw research as returned by the model, before normalization."""

  keyword_data: KeywordData = Field(default_factory=KeywordData)
  competitors: list[CompetitorPage] = Field(default_factory=list)
  related_keywords: list[str] = Field(default_factory=list)
  paa_questions: list[str] = Field(default_factory=list)
  content_gaps: list[str] = Field(default_factory=list)


class ResearchOutput(ContractModel):
  keyword: str
  keyword_data: KeywordData = Field(default_factory=KeywordData)
  competitors: list[CompetitorPage] = Field(default_factory=list, max_length=10)
  related_keywords: list[str] = Field(default_factory=list)
  paa_questions: list[str] = Field(default_factory=list)
  recommended_word_count: int = Field(default=1500, ge=300, le=10000)
  content_gaps: list[str] = Field(default_factory=list)


class ResearchInput(ContractModel):
  keyword: str
  context: str | None = None


# Writer


class Heading(ContractModel):
  level: int = Field(ge=1, le=6)
  text: str


class ArticleDraft(ContractModel):
  """Article as returned by the model, before normalization."""

  title: str
  slug: str | None = None
  content: str
  excerpt: str | None = None


class WriterOutput(ContractModel):
  title: str = Field(max_length=60)
  slug: str
  content: str
  excerpt: str = Field(max_length=160)
  word_count: int = Field(ge=0)
  headings: list[Heading] = Field(default_factory=list)


# QA issues are shared by writer revisions and the QA gate.


class QaIssue(ContractModel):
  issue_id: str | None = None
  category: IssueCategory
  severity: IssueSeverity
  description: str
  suggestion: str = ""
  location: str | None = None

  @field_validator("category", mode="before")
  @classmethod
  def _normalize_category(cls, value: Any) -> Any:
    # Models tend to echo the camelCase dimension name.
    if isinstance(value, str):
      return value.strip().replace("brandVoice", "brand_voice").replace(" ", "_").lower()
    return value

  @field_validator("severity", mode="before")
  @classmethod
  def _normalize_severity(cls, value: Any) -> Any:
    if isinstance(value, str):
      return value.strip().lower()
    return value


class WriterInput(ContractModel):
  keyword: str
  research: ResearchOutput | None = None
  target_word_count: int
  context: str | None = None
  qa_feedback: str | None = None
  previous_article: WriterOutput | None = None
  previous_issues: list[QaIssue] = Field(default_factory=list)
  iteration: int = Field(default=1, ge=1)


# SEO


class HeadingAnalysis(ContractModel):
  h1_count: int
  h2_count: int
  h3_count: int
  issues: list[str] = Field(default_factory=list)
  suggestions: list[str] = Field(default_factory=list)
  is_valid: bool


class KeywordDensity(ContractModel):
  keyword: str
  occurrences: int
  total_words: int
  density: float
  status: DensityStatus


class InternalLink(ContractModel):
  anchor_text: str
  suggested_target: str
  reason: str | None = None


class SeoSuggestions(ContractModel):
  """Model-authored SEO metadata; computed analyses are layered on afterward."""

  meta_title: str
  meta_description: str
  internal_links: list[InternalLink] = Field(default_factory=list)
  optimization_score: int = Field(ge=0, le=100)
  recommendations: list[str] = Field(default_factory=list)


class SeoOutput(ContractModel):
  meta_title: str = Field(max_length=60)
  meta_description: str = Field(max_length=160)
  heading_analysis: HeadingAnalysis
  keyword_density: KeywordDensity
  schema_markup: dict[str, Any]
  internal_links: list[InternalLink] = Field(default_factory=list)
  optimization_score: int = Field(ge=0, le=100)
  recommendations: list[str] = Field(default_factory=list)


class SeoInput(ContractModel):
  keyword: str
  article: WriterOutput
  research: ResearchOutput | None = None


# QA


class DimensionScores(ContractModel):
  readability: int = Field(ge=0, le=100)
  seo: int = Field(ge=0, le=100)
  accuracy: int = Field(ge=0, le=100)
  engagement: int = Field(ge=0, le=100)
  brand_voice: int = Field(ge=0, le=100)


class QaReview(ContractModel):
  """Model-authored review before rule-based checks and score adjustment."""

  overall_score: int = Field(ge=0, le=100)
  dimension_scores: DimensionScores
  issues: list[QaIssue] = Field(default_factory=list)
  feedback: str = ""


class QaOutput(ContractModel):
  passed: bool
  overall_score: int = Field(ge=0, le=100)
  dimension_scores: DimensionScores
  issues: list[QaIssue] = Field(default_factory=list)
  feedback: str = ""
  reading_level: float = 0.0
  fixed_issue_ids: list[str] = Field(default_factory=list)
  persisting_issue_ids: list[str] = Field(default_factory=list)


class QaInput(ContractModel):
  keyword: str
  article: WriterOutput
  seo: SeoOutput | None = None
  iteration: int = Field(default=1, ge=1)
  previous_issues: list[QaIssue] = Field(default_factory=list)


# Final output


class FinalArticle(ContractModel):
  """CMS-ready article assembled from the last iteration."""

  title: str
  slug: str
  content: str
  excerpt: str
  meta_title: str
  meta_description: str
  schema_markup: dict[str, Any] = Field(default_factory=dict)
  template: str = "article"
  status: Literal["draft"] = "draft"
  focus_keyword: str
  word_count: int = 0


class FinalOutput(ContractModel):
  research: ResearchOutput | None = None
  article: WriterOutput | None = None
  seo: SeoOutput | None = None
  qa: QaOutput | None = None
  iterations: int
  passed: bool
  final_article: FinalArticle
