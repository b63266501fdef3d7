"""QA agent: rule checks plus model review, producing the pass/fail gate."""

from __future__ import annotations

import hashlib
import logging
import re
from typing import TYPE_CHECKING, Final

from copydesk.ai.agents.base import AgentContext, AgentResult, BaseAgent
from copydesk.ai.pipeline.contracts import DimensionScores, QaInput, QaIssue, QaOutput, QaReview
from copydesk.ai.providers.base import GenerationProvider
from copydesk.ai.utils.text import extract_headings, strip_markdown, words
from copydesk.jobs.models import AgentType

if TYPE_CHECKING:
  from copydesk.services.evals import EvalService

logger = logging.getLogger(__name__)

PASS_THRESHOLD: Final[int] = 70
TARGET_READING_LEVEL: Final[float] = 7.0
READING_LEVEL_TOLERANCE: Final[float] = 2.0
CONTENT_PREVIEW_CHARS: Final[int] = 2000

DIMENSION_WEIGHTS: Final[dict[str, float]] = {"readability": 0.25, "seo": 0.2, "accuracy": 0.2, "engagement": 0.2, "brand_voice": 0.15}

EMOJI_RE = re.compile("[\U0001f600-\U0001f64f\U0001f300-\U0001f5ff\U0001f680-\U0001f6ff\U0001f1e0-\U0001f1ff\u2600-\u26ff\u2700-\u27bf]")
EM_DASH = "\u2014"
SENSATIONAL_WORDS: Final[tuple[str, ...]] = (
  "amazing",
  "incredible",
  "unbelievable",
  "shocking",
  "mind-blowing",
  "jaw-dropping",
  "game-changing",
  "revolutionary",
  "unprecedented",
  "you won't believe",
  "secret",
  "hack",
  "insane",
  "crazy",
)
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_VOWEL_GROUP_RE = re.compile(r"[aeiouy]+")
_NON_ALPHA_RE = re.compile(r"[^a-z]")
_CATEGORY_SLUG_RE = re.compile(r"[^a-z0-9]")

QA_SYSTEM_PROMPT = """You are a content quality analyst. You review articles against strict standards and give the writer actionable feedback.

Standards:
- 7th grade Flesch-Kincaid reading level, short sentences and paragraphs.
- Professional but approachable voice, no sensationalism or clickbait.
- Accurate, well structured content with genuine value.
- No emojis, no em dashes, no filler phrases.

Score each dimension from 0 to 100: readability, seo, accuracy, engagement, brandVoice.
List every issue with category (readability, seo, accuracy, engagement, brand_voice), severity (low, medium, high, critical),
description, suggestion and optional location. Finish with a feedback paragraph the writer can act on."""


class QaAgent(BaseAgent[QaInput, QaOutput]):
  """Scores the draft and decides whether the job loops back to the writer."""

  agent_type = AgentType.QA
  input_model = QaInput
  output_model = QaOutput
  default_system_prompt = QA_SYSTEM_PROMPT
  default_temperature = 0.3
  default_max_tokens = 4000

  def __init__(self, *, provider: GenerationProvider, json_max_retries: int = 2, eval_service: EvalService | None = None) -> None:
    super().__init__(provider=provider, json_max_retries=json_max_retries)
    self._eval_service = eval_service

  def validate_input(self, context: AgentContext[QaInput]) -> bool:
    if not super().validate_input(context):
      return False
    return bool(context.input.keyword.strip()) and bool(context.input.article.content.strip())

  async def run(self, context: AgentContext[QaInput]) -> AgentResult[QaOutput]:
    data = context.input
    content = data.article.content
    await context.progress(f"Checking quality (iteration {data.iteration})")

    reading_level = flesch_kincaid_grade(content)
    rule_issues = detect_rule_issues(content, reading_level)
    for issue in rule_issues:
      context.log("warn", f"Prohibited pattern: {issue.description}")

    result = await self._generate(context, _build_prompt(data, reading_level, rule_issues), QaReview)
    review = result.data

    issues = assign_issue_ids(dedupe_issues([*rule_issues, *review.issues]))
    fixed, persisting = track_issues(data.previous_issues, issues)
    score = adjusted_score(review.dimension_scores, issues, reading_level)
    critical = sum(1 for issue in issues if issue.severity == "critical")
    high = sum(1 for issue in issues if issue.severity == "high")
    passed = score >= PASS_THRESHOLD and critical == 0 and high == 0

    output = QaOutput(
      passed=passed,
      overall_score=score,
      dimension_scores=review.dimension_scores,
      issues=issues,
      feedback=review.feedback.strip() or summarize_issues(issues),
      reading_level=round(reading_level, 1),
      fixed_issue_ids=fixed,
      persisting_issue_ids=persisting,
    )
    context.log("info", f"QA score {score}/100 passed={passed}", {"issues": len(issues), "critical": critical, "high": high, "fixed": len(fixed), "persisting": len(persisting)})

    await self._record_eval(context, output)

    if passed:
      return AgentResult(success=True, output=output, usage=result.usage, estimated_cost_usd=result.estimated_cost_usd)

    reasons = _fail_reasons(score, critical, high)
    context.log("warn", f"QA failed: {', '.join(reasons)}")
    await context.progress(f"QA failed: {', '.join(reasons)}. Revision needed.")
    return AgentResult(success=True, output=output, usage=result.usage, estimated_cost_usd=result.estimated_cost_usd, continue_to_next=False, feedback=output.feedback)

  async def _record_eval(self, context: AgentContext[QaInput], output: QaOutput) -> None:
    if self._eval_service is None:
      return
    try:
      await self._eval_service.record_automated_eval(job_id=context.job_id, iteration=context.iteration, output=output)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Failed to record automated eval job_id=%s: %s", context.job_id, exc)
      context.log("warn", f"Failed to record eval (non-fatal): {exc}")


def count_syllables(word: str) -> int:
  """Vowel-group approximation with silent-e and consonant-le adjustments."""
  word = _NON_ALPHA_RE.sub("", word.lower())
  if len(word) <= 3:
    return 1
  count = len(_VOWEL_GROUP_RE.findall(word)) or 1
  if word.endswith("e"):
    count -= 1
  if word.endswith("le") and word[-3] not in "aeiouy":
    count += 1
  return max(1, count)


def flesch_kincaid_grade(content: str) -> float:
  """Grade level clamped to 0..20; empty text scores 0."""
  plain = strip_markdown(content)
  tokens = words(plain)
  sentences = [sentence for sentence in _SENTENCE_SPLIT_RE.split(plain) if sentence.strip()]
  if not tokens or not sentences:
    return 0.0
  syllables = sum(count_syllables(token) for token in tokens)
  grade = 0.39 * (len(tokens) / len(sentences)) + 11.8 * (syllables / len(tokens)) - 15.59
  return max(0.0, min(20.0, grade))


def detect_rule_issues(content: str, reading_level: float) -> list[QaIssue]:
  issues: list[QaIssue] = []
  emoji_count = len(EMOJI_RE.findall(content))
  if emoji_count:
    issues.append(QaIssue(category="brand_voice", severity="critical", description=f"Found {emoji_count} emoji(s) in content", suggestion="Remove all emojis from the content"))

  dash_count = content.count(EM_DASH)
  if dash_count:
    issues.append(QaIssue(category="brand_voice", severity="high", description=f"Found {dash_count} em dash(es) in content", suggestion="Replace em dashes with commas, periods or regular dashes"))

  lowered = content.lower()
  for word in SENSATIONAL_WORDS:
    if re.search(rf"\b{re.escape(word)}\b", lowered):
      issues.append(QaIssue(category="brand_voice", severity="medium", description=f'Sensational word detected: "{word}"', suggestion=f'Replace "{word}" with more measured language'))

  if reading_level > TARGET_READING_LEVEL + READING_LEVEL_TOLERANCE:
    issues.append(
      QaIssue(
        category="readability",
        severity="medium",
        description=f"Reading level ({reading_level:.1f}) exceeds target ({TARGET_READING_LEVEL:.0f})",
        suggestion="Simplify vocabulary and shorten sentences",
      )
    )
  return issues


def dedupe_issues(issues: list[QaIssue]) -> list[QaIssue]:
  seen: set[tuple[str, str]] = set()
  unique: list[QaIssue] = []
  for issue in issues:
    key = (issue.category, issue.description[:50])
    if key not in seen:
      seen.add(key)
      unique.append(issue)
  return unique


def issue_id(category: str, description: str) -> str:
  """Stable id so the same problem can be followed across iterations."""
  digest = hashlib.sha1(f"{category.strip().lower()}:{description.strip().lower()}".encode()).hexdigest()[:8]
  slug = _CATEGORY_SLUG_RE.sub("-", category.lower())[:20]
  return f"{slug}-{digest}"


def assign_issue_ids(issues: list[QaIssue]) -> list[QaIssue]:
  return [issue if issue.issue_id else issue.model_copy(update={"issue_id": issue_id(issue.category, issue.description)}) for issue in issues]


def track_issues(previous: list[QaIssue], current: list[QaIssue]) -> tuple[list[str], list[str]]:
  """Split the previous iteration's issue ids into fixed and persisting."""
  current_ids = {issue.issue_id for issue in current}
  fixed: list[str] = []
  persisting: list[str] = []
  for issue in previous:
    previous_id = issue.issue_id or issue_id(issue.category, issue.description)
    (persisting if previous_id in current_ids else fixed).append(previous_id)
  return fixed, persisting


def adjusted_score(scores: DimensionScores, issues: list[QaIssue], reading_level: float) -> int:
  base = sum(getattr(scores, dimension) * weight for dimension, weight in DIMENSION_WEIGHTS.items())
  critical = sum(1 for issue in issues if issue.severity == "critical")
  high = sum(1 for issue in issues if issue.severity == "high")
  base -= min(critical * 15, 45)
  base -= min(high * 5, 20)
  difference = abs(reading_level - TARGET_READING_LEVEL)
  if difference > 3:
    base -= (difference - 3) * 2
  return max(0, min(100, round(base)))


def summarize_issues(issues: list[QaIssue]) -> str:
  if not issues:
    return ""
  return "Address the following: " + "; ".join(f"{issue.description} ({issue.suggestion})" if issue.suggestion else issue.description for issue in issues)


def _fail_reasons(score: int, critical: int, high: int) -> list[str]:
  reasons = []
  if score < PASS_THRESHOLD:
    reasons.append(f"score below {PASS_THRESHOLD}")
  if critical:
    reasons.append(f"{critical} critical issue(s)")
  if high:
    reasons.append(f"{high} high severity issue(s)")
  return reasons


def _build_prompt(data: QaInput, reading_level: float, rule_issues: list[QaIssue]) -> str:
  article = data.article
  content = article.content
  lines = [
    f"## QA review request (iteration {data.iteration})",
    f'Target keyword: "{data.keyword}"',
    "",
    "## Article",
    f"Title: {article.title}",
    f"Word count: {article.word_count}",
    "",
    content[:CONTENT_PREVIEW_CHARS],
  ]
  if len(content) > CONTENT_PREVIEW_CHARS:
    lines.append("...[content truncated]...")

  paragraphs = [block for block in content.split("\n\n") if block.strip()]
  lines.extend(
    [
      "",
      "## Pre-computed metrics",
      f"- Reading level: {reading_level:.1f} (target: {TARGET_READING_LEVEL:.0f})",
      f"- Heading count: {len(extract_headings(content))}",
      f"- Paragraph count: {len(paragraphs)}",
    ]
  )
  if rule_issues:
    lines.extend(["", "## Pre-detected issues"])
    lines.extend(f"- [{issue.severity.upper()}] {issue.description}" for issue in rule_issues)
  if data.seo is not None:
    lines.extend(
      [
        "",
        "## SEO analysis",
        f"- Optimization score: {data.seo.optimization_score}/100",
        f"- Heading structure valid: {data.seo.heading_analysis.is_valid}",
        f"- Keyword density: {data.seo.keyword_density.density}%",
      ]
    )
  if data.previous_issues:
    lines.extend(["", "## Issues raised in the previous iteration"])
    lines.extend(f"- {issue.description}" for issue in data.previous_issues)
  lines.extend(["", "Return overallScore, dimensionScores, issues and feedback."])
  return "\n".join(lines)
