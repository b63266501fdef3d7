from __future__ import annotations

import pytest
from conftest import SIMPLE_ARTICLE, ScriptedProvider, make_persona, seo_json

from copydesk.ai.agents.base import AgentContext
from copydesk.ai.agents.seo import SeoAgent, analyze_headings, build_article_schema, density_status, keyword_density
from copydesk.ai.agents.writer import normalize_draft
from copydesk.ai.pipeline.contracts import ArticleDraft, ResearchOutput, SeoInput
from copydesk.jobs.models import AgentType


def _article(content: str = SIMPLE_ARTICLE):
  return normalize_draft(ArticleDraft(title="How to Pour a Concrete Patio", content=content, excerpt="A simple patio guide."), keyword="concrete patio")


def _context(content: str = SIMPLE_ARTICLE) -> AgentContext[SeoInput]:
  data = SeoInput(keyword="concrete patio", article=_article(content), research=ResearchOutput(keyword="concrete patio", related_keywords=["patio slab"]))
  return AgentContext(job_id="job-1", step_id="step-3", iteration=1, persona=make_persona(AgentType.SEO), input=data)


def test_analyze_headings_accepts_a_clean_outline() -> None:
  analysis = analyze_headings([(1, "Title"), (2, "One"), (3, "Detail"), (2, "Two"), (2, "Three")])
  assert analysis.is_valid
  assert (analysis.h1_count, analysis.h2_count, analysis.h3_count) == (1, 3, 1)
  assert analysis.suggestions == []


def test_analyze_headings_flags_missing_h1_and_level_skips() -> None:
  analysis = analyze_headings([(2, "One"), (4, "Deep")])
  assert not analysis.is_valid
  assert analysis.issues == ["Missing H1 heading", "Heading level skip: H2 to H4"]
  assert 'Consider adding H3 before "Deep"' in analysis.suggestions
  assert "Consider adding more H2 subheadings to break up content" in analysis.suggestions


def test_analyze_headings_flags_multiple_h1() -> None:
  analysis = analyze_headings([(1, "A"), (1, "B"), (2, "C"), (2, "D"), (2, "E")])
  assert analysis.issues == ["Multiple H1 headings found (2)"]


def test_keyword_density_counts_phrases_and_single_words() -> None:
  phrase = keyword_density("A concrete patio is a concrete patio", "Concrete Patio")
  assert (phrase.occurrences, phrase.total_words, phrase.density, phrase.status) == (2, 7, 28.57, "too_high")
  single = keyword_density("## Patios\n\nOne patio here.", "patio")
  assert single.occurrences == 2
  assert keyword_density("", "patio").density == 0.0


def test_density_status_boundaries() -> None:
  assert density_status(0.49) == "too_low"
  assert density_status(0.5) == "optimal"
  assert density_status(2.5) == "optimal"
  assert density_status(2.51) == "too_high"


def test_article_schema_includes_publisher_and_page_when_configured() -> None:
  article = _article()
  bare = build_article_schema(article, "concrete patio")
  assert bare["@type"] == "Article"
  assert bare["headline"] == article.title
  assert "publisher" not in bare

  full = build_article_schema(article, "concrete patio", publisher_name="Patio Pros", site_url="https://patio.test/")
  assert full["publisher"] == {"@type": "Organization", "name": "Patio Pros"}
  assert full["author"] == full["publisher"]
  assert full["mainEntityOfPage"]["@id"] == f"https://patio.test/{article.slug}"


@pytest.mark.anyio
async def test_seo_agent_layers_computed_analysis_over_model_output() -> None:
  provider = ScriptedProvider([seo_json(metaTitle="T" * 80, metaDescription="")])
  context = _context()
  result = await SeoAgent(provider=provider, site_url="https://patio.test").execute(context)

  assert result.success
  output = result.output
  assert len(output.meta_title) == 60
  assert output.meta_description == "A simple patio guide."
  assert output.heading_analysis.h2_count == 4
  assert output.keyword_density.keyword == "concrete patio"
  assert output.schema_markup["mainEntityOfPage"]["@id"].startswith("https://patio.test/")
  assert output.optimization_score == 82
  assert any("Meta title too long" in entry.message for entry in context.logs)
  assert "## Related keywords\npatio slab" in provider.prompts[0]
  assert provider.calls[0]["temperature"] == 0.5


@pytest.mark.anyio
async def test_seo_agent_rejects_empty_article() -> None:
  provider = ScriptedProvider()
  result = await SeoAgent(provider=provider).execute(_context(content="   "))
  assert not result.success
  assert provider.calls == []
