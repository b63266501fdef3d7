"""Pipeline agents and the default registry wiring."""

from __future__ import annotations

from typing import TYPE_CHECKING

from copydesk.ai.agents.base import AgentContext, AgentResult, BaseAgent
from copydesk.ai.agents.qa import QaAgent
from copydesk.ai.agents.registry import LOOP_AGENTS, PIPELINE_ORDER, AgentRegistry
from copydesk.ai.agents.research import ResearchAgent
from copydesk.ai.agents.seo import SeoAgent
from copydesk.ai.agents.writer import WriterAgent
from copydesk.ai.providers.base import GenerationProvider

if TYPE_CHECKING:
  from copydesk.services.evals import EvalService
  from copydesk.storage.repos import GoldenExamplesRepository


def build_default_registry(
  provider: GenerationProvider,
  *,
  golden_repo: GoldenExamplesRepository | None = None,
  eval_service: EvalService | None = None,
  json_max_retries: int = 2,
  publisher_name: str | None = None,
  site_url: str | None = None,
) -> AgentRegistry:
  """Register one instance of each pipeline role against a shared provider."""
  return AgentRegistry(
    [
      ResearchAgent(provider=provider, json_max_retries=json_max_retries),
      WriterAgent(provider=provider, json_max_retries=json_max_retries, golden_repo=golden_repo, eval_service=eval_service),
      SeoAgent(provider=provider, json_max_retries=json_max_retries, publisher_name=publisher_name, site_url=site_url),
      QaAgent(provider=provider, json_max_retries=json_max_retries, eval_service=eval_service),
    ]
  )


__all__ = [
  "LOOP_AGENTS",
  "PIPELINE_ORDER",
  "AgentContext",
  "AgentRegistry",
  "AgentResult",
  "BaseAgent",
  "QaAgent",
  "ResearchAgent",
  "SeoAgent",
  "WriterAgent",
  "build_default_registry",
]
