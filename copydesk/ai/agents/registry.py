"""Registry mapping agent roles to their implementations."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Final

from copydesk.ai.agents.base import BaseAgent
from copydesk.jobs.models import AgentType

logger = logging.getLogger(__name__)

PIPELINE_ORDER: Final[tuple[AgentType, ...]] = (AgentType.RESEARCH, AgentType.WRITER, AgentType.SEO, AgentType.QA)
LOOP_AGENTS: Final[tuple[AgentType, ...]] = (AgentType.WRITER, AgentType.SEO, AgentType.QA)

AnyAgent = BaseAgent[Any, Any]


class AgentRegistry:
  """Holds one agent instance per role."""

  def __init__(self, agents: Iterable[AnyAgent] = ()) -> None:
    self._agents: dict[AgentType, AnyAgent] = {}
    for agent in agents:
      self.register(agent)

  def register(self, agent: AnyAgent) -> None:
    if agent.agent_type in self._agents:
      raise ValueError(f"Agent already registered: {agent.agent_type.value}")
    self._agents[agent.agent_type] = agent
    logger.debug("Registered agent %s (%s)", agent.agent_type.value, type(agent).__name__)

  def get(self, agent_type: AgentType) -> AnyAgent | None:
    return self._agents.get(agent_type)

  def has(self, agent_type: AgentType) -> bool:
    return agent_type in self._agents

  def registered_types(self) -> list[AgentType]:
    return [agent_type for agent_type in PIPELINE_ORDER if agent_type in self._agents]

  def pipeline_agents(self, skip: Iterable[AgentType] = ()) -> list[AgentType]:
    """Return pipeline roles in execution order, minus skipped ones."""
    skipped = set(skip)
    return [agent_type for agent_type in PIPELINE_ORDER if agent_type not in skipped]

  def validate_pipeline(self, required: Iterable[AgentType] | None = None) -> list[AgentType]:
    """Return the required roles that have no registered implementation."""
    roles = PIPELINE_ORDER if required is None else tuple(required)
    return [agent_type for agent_type in roles if agent_type not in self._agents]

  def agent_info(self) -> list[dict[str, Any]]:
    return [{"type": agent_type.value, "class": type(agent).__name__, "output_schema": agent.output_schema()} for agent_type, agent in self._agents.items()]

  def clear(self) -> None:
    self._agents.clear()
