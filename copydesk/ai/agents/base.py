"""Base class for pipeline agents."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel

from copydesk.ai.errors import classify_error
from copydesk.ai.providers.base import GenerationProvider, JsonResult
from copydesk.ai.utils.cost import TokenUsage
from copydesk.jobs.models import AgentType, LogLevel, PersonaRecord, StepLogEntry
from copydesk.utils.ids import now_iso

InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT", bound=BaseModel)
SchemaT = TypeVar("SchemaT", bound=BaseModel)
ProgressHook = Callable[[str], Awaitable[None]] | None

logger = logging.getLogger(__name__)


@dataclass
class AgentContext(Generic[InputT]):
  """Everything one agent invocation needs; `logs` become the step's log entries."""

  job_id: str
  step_id: str
  iteration: int
  persona: PersonaRecord
  input: InputT
  logs: list[StepLogEntry] = field(default_factory=list)
  on_progress: ProgressHook = None

  def log(self, level: LogLevel, message: str, data: dict[str, Any] | None = None) -> None:
    self.logs.append(StepLogEntry(timestamp=now_iso(), level=level, message=message, data=data))

  async def progress(self, message: str) -> None:
    if self.on_progress is not None:
      await self.on_progress(message)


@dataclass(frozen=True)
class AgentResult(Generic[OutputT]):
  """Outcome of one agent run. `success=False` is a hard failure, not a QA verdict."""

  success: bool
  output: OutputT | None = None
  usage: TokenUsage = field(default_factory=TokenUsage)
  estimated_cost_usd: float = 0.0
  error: str | None = None
  continue_to_next: bool = True
  feedback: str | None = None


class BaseAgent(ABC, Generic[InputT, OutputT]):
  """Base agent with shared provider access and failure handling."""

  agent_type: ClassVar[AgentType]
  input_model: ClassVar[type[BaseModel]]
  output_model: ClassVar[type[BaseModel]]
  default_system_prompt: ClassVar[str]
  default_temperature: ClassVar[float] = 0.7
  default_max_tokens: ClassVar[int] = 4096

  def __init__(self, *, provider: GenerationProvider, json_max_retries: int = 2) -> None:
    self._provider = provider
    self._json_max_retries = json_max_retries

  @property
  def name(self) -> str:
    return self.agent_type.value

  def validate_input(self, context: AgentContext[InputT]) -> bool:
    """Return True when the context carries what this agent needs."""
    return isinstance(context.input, self.input_model)

  def output_schema(self) -> dict[str, Any]:
    """Return the JSON schema of this agent's output."""
    return self.output_model.model_json_schema()

  async def execute(self, context: AgentContext[InputT]) -> AgentResult[OutputT]:
    """Validate, run and time the agent, converting raised errors into failed results."""
    if not self.validate_input(context):
      context.log("error", f"Invalid input for {self.name} agent")
      return AgentResult(success=False, error=f"Invalid input for {self.name} agent")

    started = time.monotonic()
    context.log("info", f"{self.name} agent started", {"model": context.persona.model, "iteration": context.iteration})
    try:
      result = await self.run(context)
    except Exception as exc:  # noqa: BLE001
      kind = classify_error(exc)
      logger.error("Agent %s failed job_id=%s kind=%s: %s", self.name, context.job_id, kind, exc, exc_info=True)
      context.log("error", f"{self.name} agent failed: {exc}", {"kind": kind})
      return AgentResult(success=False, error=str(exc) or type(exc).__name__)

    duration_ms = int((time.monotonic() - started) * 1000)
    context.log("info", f"{self.name} agent finished", {"duration_ms": duration_ms, "total_tokens": result.usage.total_tokens, "cost_usd": round(result.estimated_cost_usd, 6)})
    logger.info("Agent %s finished job_id=%s tokens=%d duration_ms=%d", self.name, context.job_id, result.usage.total_tokens, duration_ms)
    return result

  @abstractmethod
  async def run(self, context: AgentContext[InputT]) -> AgentResult[OutputT]:
    """Run the agent on validated input."""

  async def _generate(self, context: AgentContext[InputT], prompt: str, schema: type[SchemaT]) -> JsonResult[SchemaT]:
    """Request structured output using the persona's model settings."""
    persona = context.persona
    temperature = persona.temperature if persona.temperature is not None else self.default_temperature
    max_tokens = persona.max_tokens or self.default_max_tokens
    system = persona.system_prompt or self.default_system_prompt
    context.log("debug", f"Requesting {schema.__name__} from {persona.model}", {"temperature": temperature, "max_tokens": max_tokens, "prompt_tokens_estimate": self._provider.estimate_tokens(prompt)})
    result = await self._provider.generate_json(prompt, persona.model, schema, max_retries=self._json_max_retries, system=system, temperature=temperature, max_tokens=max_tokens)
    if result.attempts > 1 or result.strategy not in (None, "as-is"):
      context.log("warn", f"Structured output needed recovery attempts={result.attempts} strategy={result.strategy}")
    return result
