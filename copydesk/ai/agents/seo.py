"""SEO agent: heading analysis, keyword density, metadata and JSON-LD."""

from __future__ import annotations

import logging
import re
from typing import Any, Final

from copydesk.ai.agents.base import AgentContext, AgentResult, BaseAgent
from copydesk.ai.pipeline.contracts import DensityStatus, HeadingAnalysis, KeywordDensity, SeoInput, SeoOutput, SeoSuggestions, WriterOutput
from copydesk.ai.providers.base import GenerationProvider
from copydesk.ai.utils.text import extract_headings, strip_markdown, truncate
from copydesk.jobs.models import AgentType
from copydesk.utils.ids import now_iso

logger = logging.getLogger(__name__)

META_TITLE_LIMIT: Final[int] = 60
META_DESCRIPTION_LIMIT: Final[int] = 160
DENSITY_LOW: Final[float] = 0.5
DENSITY_HIGH: Final[float] = 2.5
MIN_H2_COUNT: Final[int] = 3
_TOKEN_RE = re.compile(r"\S+")

SEO_SYSTEM_PROMPT = """You are an on-page SEO specialist. Given an article and pre-computed analysis you write:
- a meta title under 60 characters that contains the keyword near the start;
- a meta description under 160 characters with a clear reason to click, no hype;
- internal link suggestions (anchor text plus the kind of page it should point to);
- an optimization score from 0 to 100 and concrete recommendations.
Do not contradict the pre-computed heading and keyword density figures."""


class SeoAgent(BaseAgent[SeoInput, SeoOutput]):
  """Optimizes metadata for the current draft; computed analyses always win over the model's."""

  agent_type = AgentType.SEO
  input_model = SeoInput
  output_model = SeoOutput
  default_system_prompt = SEO_SYSTEM_PROMPT
  default_temperature = 0.5
  default_max_tokens = 4000

  def __init__(self, *, provider: GenerationProvider, json_max_retries: int = 2, publisher_name: str | None = None, site_url: str | None = None) -> None:
    super().__init__(provider=provider, json_max_retries=json_max_retries)
    self._publisher_name = publisher_name
    self._site_url = site_url

  def validate_input(self, context: AgentContext[SeoInput]) -> bool:
    if not super().validate_input(context):
      return False
    return bool(context.input.keyword.strip()) and bool(context.input.article.content.strip())

  async def run(self, context: AgentContext[SeoInput]) -> AgentResult[SeoOutput]:
    data = context.input
    article = data.article
    await context.progress("Analyzing heading structure and keyword density")

    heading_analysis = analyze_headings(extract_headings(article.content))
    density = keyword_density(article.content, data.keyword)
    context.log("info", f"Heading structure valid: {heading_analysis.is_valid}. Keyword density: {density.density}% ({density.status})")

    result = await self._generate(context, _build_prompt(data, heading_analysis, density), SeoSuggestions)
    suggestions = result.data

    meta_title = suggestions.meta_title.strip() or article.title
    meta_description = suggestions.meta_description.strip() or article.excerpt
    if len(meta_title) > META_TITLE_LIMIT:
      context.log("warn", f"Meta title too long ({len(meta_title)} chars), truncating")
    if len(meta_description) > META_DESCRIPTION_LIMIT:
      context.log("warn", f"Meta description too long ({len(meta_description)} chars), truncating")

    output = SeoOutput(
      meta_title=truncate(meta_title, META_TITLE_LIMIT),
      meta_description=truncate(meta_description, META_DESCRIPTION_LIMIT),
      heading_analysis=heading_analysis,
      keyword_density=density,
      schema_markup=build_article_schema(article, data.keyword, publisher_name=self._publisher_name, site_url=self._site_url),
      internal_links=suggestions.internal_links,
      optimization_score=suggestions.optimization_score,
      recommendations=suggestions.recommendations,
    )
    context.log("info", f"SEO optimization complete. Score: {output.optimization_score}/100")
    return AgentResult(success=True, output=output, usage=result.usage, estimated_cost_usd=result.estimated_cost_usd)


def analyze_headings(headings: list[tuple[int, str]]) -> HeadingAnalysis:
  """Check H1 uniqueness and level skips; a thin H2 outline is only a suggestion."""
  issues: list[str] = []
  suggestions: list[str] = []
  levels = [level for level, _ in headings]
  h1_count = levels.count(1)
  h2_count = levels.count(2)

  if h1_count == 0:
    issues.append("Missing H1 heading")
    suggestions.append("Add a single H1 heading at the beginning of the article")
  elif h1_count > 1:
    issues.append(f"Multiple H1 headings found ({h1_count})")
    suggestions.append("Use only one H1 heading per page")

  previous = 0
  for level, text in headings:
    if previous and level > previous + 1:
      issues.append(f"Heading level skip: H{previous} to H{level}")
      suggestions.append(f'Consider adding H{previous + 1} before "{text}"')
    previous = level

  if h2_count < MIN_H2_COUNT:
    suggestions.append("Consider adding more H2 subheadings to break up content")

  return HeadingAnalysis(h1_count=h1_count, h2_count=h2_count, h3_count=levels.count(3), issues=issues, suggestions=suggestions, is_valid=not issues)


def keyword_density(content: str, keyword: str) -> KeywordDensity:
  """Keyword share of all words, as a percentage rounded to two decimals."""
  text = strip_markdown(content).lower()
  tokens = _TOKEN_RE.findall(text)
  needle = " ".join(keyword.lower().split())
  if not needle:
    occurrences = 0
  elif " " in needle:
    occurrences = " ".join(tokens).count(needle)
  else:
    occurrences = sum(1 for token in tokens if needle in token)

  total = len(tokens)
  density = round(occurrences / total * 100, 2) if total else 0.0
  return KeywordDensity(keyword=keyword, occurrences=occurrences, total_words=total, density=density, status=density_status(density))


def density_status(density: float) -> DensityStatus:
  if density < DENSITY_LOW:
    return "too_low"
  if density > DENSITY_HIGH:
    return "too_high"
  return "optimal"


def build_article_schema(article: WriterOutput, keyword: str, *, publisher_name: str | None = None, site_url: str | None = None) -> dict[str, Any]:
  """Article JSON-LD for the page head."""
  timestamp = now_iso()
  schema: dict[str, Any] = {
    "@context": "https://schema.org",
    "@type": "Article",
    "headline": article.title,
    "description": article.excerpt,
    "keywords": keyword,
    "wordCount": article.word_count,
    "datePublished": timestamp,
    "dateModified": timestamp,
  }
  if publisher_name:
    organization = {"@type": "Organization", "name": publisher_name}
    schema["author"] = organization
    schema["publisher"] = dict(organization)
  if site_url:
    schema["mainEntityOfPage"] = {"@type": "WebPage", "@id": f"{site_url.rstrip('/')}/{article.slug}"}
  return schema


def _build_prompt(data: SeoInput, analysis: HeadingAnalysis, density: KeywordDensity) -> str:
  article = data.article
  lines = [
    f'Target keyword: "{data.keyword}"',
    "",
    "## Article",
    f"Title: {article.title}",
    f"Word count: {article.word_count}",
    f"Excerpt: {article.excerpt}",
    "",
    "## Heading outline",
  ]
  lines.extend(f"{'  ' * (level - 1)}H{level}: {text}" for level, text in extract_headings(article.content))
  lines.extend(["", "## Pre-computed analysis", f"Heading structure valid: {analysis.is_valid}"])
  lines.extend(f"- Issue: {issue}" for issue in analysis.issues)
  lines.extend(f"- Suggestion: {suggestion}" for suggestion in analysis.suggestions)
  lines.append(f"Keyword density: {density.density}% ({density.status}, target {DENSITY_LOW}-{DENSITY_HIGH}%)")
  if data.research is not None and data.research.related_keywords:
    lines.extend(["", "## Related keywords", ", ".join(data.research.related_keywords)])
  lines.extend(["", "Return metaTitle, metaDescription, internalLinks (anchorText, suggestedTarget, reason), optimizationScore and recommendations."])
  return "\n".join(lines)
