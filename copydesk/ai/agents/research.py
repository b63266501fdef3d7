"""Research agent: keyword, competitor and intent analysis."""

from __future__ import annotations

import logging
from typing import Final

from copydesk.ai.agents.base import AgentContext, AgentResult, BaseAgent
from copydesk.ai.pipeline.contracts import CompetitorPage, ResearchFindings, ResearchInput, ResearchOutput
from copydesk.jobs.models import AgentType

logger = logging.getLogger(__name__)

MAX_COMPETITORS: Final[int] = 10
MAX_CONTENT_GAPS: Final[int] = 5
DEFAULT_WORD_COUNT: Final[int] = 1500
_GAP_QUESTION_WORDS: Final[tuple[str, ...]] = ("how", "what", "why")

RESEARCH_SYSTEM_PROMPT = """You are an SEO research analyst. Given a target keyword you describe the search landscape:
keyword metrics, search intent, the pages that currently rank, related keywords, "People Also Ask" questions,
and topics competitors cover poorly. Base estimates on your knowledge of the topic; leave numeric fields null
rather than inventing precise figures you cannot support."""


class ResearchAgent(BaseAgent[ResearchInput, ResearchOutput]):
  """Produces the research brief consumed by the writer and SEO agents."""

  agent_type = AgentType.RESEARCH
  input_model = ResearchInput
  output_model = ResearchOutput
  default_system_prompt = RESEARCH_SYSTEM_PROMPT
  default_temperature = 0.3
  default_max_tokens = 4000

  def validate_input(self, context: AgentContext[ResearchInput]) -> bool:
    if not super().validate_input(context):
      return False
    return bool(context.input.keyword.strip())

  async def run(self, context: AgentContext[ResearchInput]) -> AgentResult[ResearchOutput]:
    keyword = context.input.keyword.strip()
    await context.progress(f"Researching keyword '{keyword}'")
    result = await self._generate(context, _build_prompt(keyword, context.input.context), ResearchFindings)
    findings = result.data

    competitors = [_with_estimated_word_count(page) for page in findings.competitors[:MAX_COMPETITORS]]
    recommended = recommend_word_count([page.word_count for page in competitors if page.word_count])
    gaps = merge_content_gaps(findings.content_gaps, findings.paa_questions)

    output = ResearchOutput(
      keyword=keyword,
      keyword_data=findings.keyword_data,
      competitors=competitors,
      related_keywords=_dedupe(findings.related_keywords)[:15],
      paa_questions=_dedupe(findings.paa_questions)[:10],
      recommended_word_count=recommended,
      content_gaps=gaps,
    )
    context.log("info", f"Research complete. Recommended word count: {recommended}", {"competitors": len(competitors), "paa_questions": len(output.paa_questions)})
    return AgentResult(success=True, output=output, usage=result.usage, estimated_cost_usd=result.estimated_cost_usd)


def estimate_competitor_word_count(description: str | None) -> int:
  """Rough length estimate from a SERP description when the page was not measured."""
  return max(800, min(len(description or "") * 12, 4000))


def recommend_word_count(competitor_word_counts: list[int]) -> int:
  """Beat the competitor average by 15%, capped at 5000 words."""
  if not competitor_word_counts:
    return DEFAULT_WORD_COUNT
  average = sum(competitor_word_counts) / len(competitor_word_counts)
  recommended = min(round(average * 1.15), 5000)
  return max(300, recommended)


def merge_content_gaps(model_gaps: list[str], paa_questions: list[str]) -> list[str]:
  """Prefer explicit question gaps from PAA, then the model's own gap list."""
  gaps: list[str] = []
  for question in paa_questions[:MAX_CONTENT_GAPS]:
    lowered = question.lower()
    if any(word in lowered for word in _GAP_QUESTION_WORDS):
      gaps.append(f"Answer: {question}")
  gaps.extend(model_gaps)
  return _dedupe(gaps)[:MAX_CONTENT_GAPS]


def _with_estimated_word_count(page: CompetitorPage) -> CompetitorPage:
  if page.word_count:
    return page
  return page.model_copy(update={"word_count": estimate_competitor_word_count(page.description)})


def _dedupe(values: list[str]) -> list[str]:
  seen: set[str] = set()
  unique: list[str] = []
  for value in values:
    key = value.strip().lower()
    if key and key not in seen:
      seen.add(key)
      unique.append(value.strip())
  return unique


def _build_prompt(keyword: str, extra_context: str | None) -> str:
  lines = [
    f'Target keyword: "{keyword}"',
    "",
    "Return:",
    "- keywordData: searchVolume (monthly), difficulty (0-100), intent (informational, commercial, transactional or navigational), cpc (USD)",
    "- competitors: up to 10 ranking pages with url, title, description and headings; include wordCount only if known",
    "- relatedKeywords: up to 15 closely related search terms",
    "- paaQuestions: up to 10 'People Also Ask' questions",
    "- contentGaps: subtopics the ranking pages answer poorly",
  ]
  if extra_context:
    lines.extend(["", f"Additional context from the editor: {extra_context}"])
  return "\n".join(lines)
