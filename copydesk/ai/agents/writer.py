"""Writer agent: drafts and revises the article body."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Final

from copydesk.ai.agents.base import AgentContext, AgentResult, BaseAgent
from copydesk.ai.pipeline.contracts import ArticleDraft, Heading, WriterInput, WriterOutput
from copydesk.ai.providers.base import GenerationProvider
from copydesk.ai.utils.text import count_words, extract_headings, preview_words, slugify, strip_markdown, truncate
from copydesk.jobs.models import AgentType, GoldenExampleRecord

if TYPE_CHECKING:
  from copydesk.services.evals import CommonIssue, EvalService
  from copydesk.storage.repos import GoldenExamplesRepository

logger = logging.getLogger(__name__)

GOLDEN_EXAMPLE_LIMIT: Final[int] = 2
GOLDEN_PREVIEW_WORDS: Final[int] = 500
COMMON_ISSUE_LIMIT: Final[int] = 5

WRITER_SYSTEM_PROMPT = """You are an expert SEO content writer. You write articles that rank well and give readers genuine value.

Reading level:
- Write at a 7th grade Flesch-Kincaid reading level.
- Use short, clear sentences and prefer simple words.

Style:
- No emojis under any circumstances.
- No sensational or clickbait language, no hyperbole.
- No em dashes; use commas, periods or "to" instead.
- Natural, conversational tone.

SEO:
- Use the keyword naturally in the title and in some H2/H3 headings.
- Aim for 1-2% keyword density without stuffing.
- Answer relevant "People Also Ask" questions.

Structure:
- Start the content with a single "# " title heading, then organize with ## and ### headings.
- End with a clear conclusion.

Respond with JSON: title (under 60 characters), slug, content (markdown), excerpt (under 160 characters)."""


class WriterAgent(BaseAgent[WriterInput, WriterOutput]):
  """Drafts the article, or revises the previous draft using QA feedback."""

  agent_type = AgentType.WRITER
  input_model = WriterInput
  output_model = WriterOutput
  default_system_prompt = WRITER_SYSTEM_PROMPT
  default_temperature = 0.7
  default_max_tokens = 8000

  def __init__(self, *, provider: GenerationProvider, json_max_retries: int = 2, golden_repo: GoldenExamplesRepository | None = None, eval_service: EvalService | None = None) -> None:
    super().__init__(provider=provider, json_max_retries=json_max_retries)
    self._golden_repo = golden_repo
    self._eval_service = eval_service

  def validate_input(self, context: AgentContext[WriterInput]) -> bool:
    if not super().validate_input(context):
      return False
    data = context.input
    return bool(data.keyword.strip()) and data.target_word_count > 0 and data.research is not None

  async def run(self, context: AgentContext[WriterInput]) -> AgentResult[WriterOutput]:
    data = context.input
    revision = is_revision(data)
    await context.progress("Revising article" if revision else "Writing article")

    examples = await self._load_golden_examples(context)
    common_issues = await self._load_common_issues(context)
    prompt = build_writer_prompt(data, examples=examples, common_issues=common_issues, today=datetime.now(UTC).date().isoformat())

    result = await self._generate(context, prompt, ArticleDraft)
    output = normalize_draft(result.data, keyword=data.keyword)
    context.log("info", f"Article {'revised' if revision else 'generated'}: '{output.title}' ({output.word_count} words)", {"target_word_count": data.target_word_count})
    return AgentResult(success=True, output=output, usage=result.usage, estimated_cost_usd=result.estimated_cost_usd)

  async def _load_golden_examples(self, context: AgentContext[WriterInput]) -> list[GoldenExampleRecord]:
    if self._golden_repo is None:
      return []
    try:
      examples = await self._golden_repo.find_for_agent(AgentType.WRITER, limit=GOLDEN_EXAMPLE_LIMIT)
      if examples:
        await self._golden_repo.increment_usage([example.example_id for example in examples])
    except Exception as exc:  # noqa: BLE001
      logger.warning("Golden example lookup failed job_id=%s: %s", context.job_id, exc)
      context.log("warn", f"Failed to load golden examples (non-fatal): {exc}")
      return []
    if examples:
      context.log("debug", f"Using {len(examples)} golden examples", {"example_ids": [example.example_id for example in examples]})
    return examples

  async def _load_common_issues(self, context: AgentContext[WriterInput]) -> list[CommonIssue]:
    # Revisions already carry targeted QA feedback.
    if self._eval_service is None or is_revision(context.input):
      return []
    try:
      issues = await self._eval_service.get_common_issues(limit=COMMON_ISSUE_LIMIT)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Common issue lookup failed job_id=%s: %s", context.job_id, exc)
      context.log("warn", f"Failed to load common issues (non-fatal): {exc}")
      return []
    if issues:
      context.log("debug", f"Loaded {len(issues)} common issues to avoid")
    return issues


def is_revision(data: WriterInput) -> bool:
  return bool(data.qa_feedback) and data.previous_article is not None and data.iteration > 1


def normalize_draft(draft: ArticleDraft, *, keyword: str) -> WriterOutput:
  """Recompute derived fields so they always match the content."""
  content = draft.content.strip()
  title = truncate(draft.title, 60)
  slug = slugify(draft.slug or "") or slugify(title) or slugify(keyword)
  excerpt_source = draft.excerpt or _first_paragraph(content)
  headings = [Heading(level=level, text=text) for level, text in extract_headings(content) if 2 <= level <= 4]
  return WriterOutput(title=title, slug=slug, content=content, excerpt=truncate(excerpt_source, 160), word_count=count_words(content), headings=headings)


def build_writer_prompt(data: WriterInput, *, examples: list[GoldenExampleRecord], common_issues: list[CommonIssue], today: str) -> str:
  sections: list[str] = [f"Today's date: {today}", f'Target keyword: "{data.keyword}"', f"Target length: about {data.target_word_count} words"]

  if is_revision(data) and data.previous_article is not None:
    revision = [
      f"## REVISION REQUEST (iteration {data.iteration})",
      "The previous draft did not pass quality review. Revise it to address every point below while keeping what works.",
      "",
      "QA feedback:",
      data.qa_feedback or "",
    ]
    if data.previous_issues:
      revision.append("")
      revision.append("Specific issues:")
      revision.extend(f"- [{issue.severity}] {issue.category}: {issue.description} -> {issue.suggestion}" for issue in data.previous_issues)
    revision.extend(["", "Previous draft:", data.previous_article.content])
    sections.append("\n".join(revision))

  research = data.research
  if research is not None:
    keyword_data = research.keyword_data.model_dump(exclude_none=True, by_alias=True)
    if keyword_data:
      sections.append("## Keyword data\n" + json.dumps(keyword_data))
    if research.related_keywords:
      sections.append("## Related keywords\n" + ", ".join(research.related_keywords))
    if research.paa_questions:
      sections.append("## People Also Ask\n" + "\n".join(f"- {question}" for question in research.paa_questions))
    if research.content_gaps:
      sections.append("## Content gaps to cover\n" + "\n".join(f"- {gap}" for gap in research.content_gaps))
    if research.competitors:
      sections.append("## Competing titles\n" + "\n".join(f"- {page.title}" for page in research.competitors))

  if data.context:
    sections.append("## Editor context\n" + data.context)

  if examples:
    blocks = []
    for example in examples:
      content = str(example.output_example.get("content", ""))
      blocks.append(f"### {example.title}\n{preview_words(content, GOLDEN_PREVIEW_WORDS)}")
    sections.append("## Reference examples of approved articles\n" + "\n\n".join(blocks))

  if common_issues:
    sections.append("## Avoid these recurring problems\n" + "\n".join(f"- [{issue.severity}] {issue.category}: {issue.description}" for issue in common_issues))

  return "\n\n".join(sections)


def _first_paragraph(content: str) -> str:
  for block in content.split("\n\n"):
    text = strip_markdown(block).strip()
    if text and not block.lstrip().startswith("#"):
      return text
  return ""
