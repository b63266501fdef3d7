from __future__ import annotations

import pytest
from conftest import ScriptedProvider

from copydesk.ai.agents import PIPELINE_ORDER, AgentRegistry, QaAgent, ResearchAgent, WriterAgent, build_default_registry
from copydesk.ai.pipeline.contracts import JobSettings
from copydesk.jobs.models import AgentType


def test_default_registry_covers_every_role_in_order() -> None:
  registry = build_default_registry(ScriptedProvider())
  assert registry.registered_types() == list(PIPELINE_ORDER)
  assert registry.validate_pipeline() == []
  assert isinstance(registry.get(AgentType.WRITER), WriterAgent)


def test_register_rejects_duplicate_roles() -> None:
  provider = ScriptedProvider()
  registry = AgentRegistry([ResearchAgent(provider=provider)])
  with pytest.raises(ValueError, match="already registered"):
    registry.register(ResearchAgent(provider=provider))


def test_pipeline_agents_skips_roles_and_keeps_order() -> None:
  registry = AgentRegistry()
  assert registry.pipeline_agents([AgentType.SEO, AgentType.RESEARCH]) == [AgentType.WRITER, AgentType.QA]


def test_validate_pipeline_reports_missing_roles() -> None:
  provider = ScriptedProvider()
  registry = AgentRegistry([ResearchAgent(provider=provider), QaAgent(provider=provider)])
  assert registry.validate_pipeline() == [AgentType.WRITER, AgentType.SEO]
  assert registry.validate_pipeline([AgentType.RESEARCH]) == []


def test_agent_info_exposes_output_schema() -> None:
  registry = build_default_registry(ScriptedProvider())
  info = {entry["type"]: entry for entry in registry.agent_info()}
  assert info["qa"]["class"] == "QaAgent"
  assert "passed" in info["qa"]["output_schema"]["properties"]
  registry.clear()
  assert registry.registered_types() == []


def test_job_settings_refuse_to_skip_the_writer() -> None:
  with pytest.raises(ValueError, match="writer agent cannot be skipped"):
    JobSettings(skip_agents=[AgentType.WRITER])
  assert JobSettings.model_validate({"skipAgents": ["seo", "seo"]}).skip_agents == [AgentType.SEO]
