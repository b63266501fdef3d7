"""Base interfaces for text and JSON generation providers."""

from __future__ import annotations

import json
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel

from copydesk.ai.backoff import RetryConfig, with_retry
from copydesk.ai.errors import StructuredOutputError
from copydesk.ai.json_repair import repair_json
from copydesk.ai.utils.cost import PricingTable, TokenUsage, calculate_cost, sum_usage

SchemaT = TypeVar("SchemaT", bound=BaseModel)
logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 200


@dataclass(frozen=True)
class ChatMessage:
  """One conversational turn sent to a model."""

  role: Literal["user", "assistant"]
  content: str


@dataclass(frozen=True)
class RawCompletion:
  """Provider-native completion normalized before cost is attached."""

  content: str
  model: str
  stop_reason: str | None
  usage: TokenUsage


@dataclass(frozen=True)
class CompletionResult:
  """Completion returned to agents, including token usage and cost."""

  content: str
  model: str
  stop_reason: str | None
  usage: TokenUsage
  estimated_cost_usd: float


@dataclass(frozen=True)
class JsonResult(Generic[SchemaT]):
  """Validated structured output plus the usage of every attempt that produced it."""

  data: SchemaT
  usage: TokenUsage
  estimated_cost_usd: float
  attempts: int
  strategy: str | None = None


class GenerationProvider(ABC):
  """Uniform interface over a text-generating backend."""

  name: str

  def __init__(self, *, retry_config: RetryConfig | None = None, pricing_table: PricingTable | None = None) -> None:
    config = retry_config or RetryConfig()
    base_predicate = config.is_retryable
    # SDK-specific transport errors extend whatever predicate the caller configured.
    self._retry_config = replace(config, is_retryable=lambda exc: base_predicate(exc) or self._is_transient(exc))
    self._pricing_table = pricing_table

  def _is_transient(self, exc: BaseException) -> bool:
    """Return True for backend-specific errors that should be retried."""
    return False

  @abstractmethod
  async def _complete(self, messages: list[ChatMessage], *, model: str, temperature: float, max_tokens: int, system: str | None, stop: list[str] | None) -> RawCompletion:
    """Issue one backend call without retries."""

  async def complete(
    self,
    messages: list[ChatMessage],
    model: str,
    *,
    temperature: float = 0.7,
    max_tokens: int = 4096,
    system: str | None = None,
    stop: list[str] | None = None,
  ) -> CompletionResult:
    """Generate a completion, retrying transient backend failures."""

    async def _call() -> RawCompletion:
      return await self._complete(messages, model=model, temperature=temperature, max_tokens=max_tokens, system=system, stop=stop)

    raw = await with_retry(_call, self._retry_config, operation=f"{self.name}.complete")
    cost = self.calculate_cost(raw.model or model, raw.usage)
    logger.debug("%s completion model=%s tokens=%d cost=%.6f", self.name, raw.model, raw.usage.total_tokens, cost)
    return CompletionResult(content=raw.content, model=raw.model or model, stop_reason=raw.stop_reason, usage=raw.usage, estimated_cost_usd=cost)

  async def generate_json(
    self,
    prompt: str,
    model: str,
    schema: type[SchemaT],
    *,
    max_retries: int = 2,
    system: str | None = None,
    temperature: float = 0.3,
    max_tokens: int = 4096,
  ) -> JsonResult[SchemaT]:
    """Generate JSON matching `schema`, re-asking the model when the output cannot be repaired."""
    system_prompt = _json_system_prompt(system, schema)
    attempts: list[TokenUsage] = []
    last_error = "no attempts made"
    last_content = ""

    for attempt in range(max_retries + 1):
      completion = await self.complete([ChatMessage(role="user", content=prompt)], model, temperature=temperature, max_tokens=max_tokens, system=system_prompt)
      attempts.append(completion.usage)
      last_content = completion.content

      result = repair_json(completion.content, schema)
      if result.success:
        usage = sum_usage(attempts)
        return JsonResult(data=result.data, usage=usage, estimated_cost_usd=self.calculate_cost(model, usage), attempts=attempt + 1, strategy=result.strategy)

      last_error = result.error or "unknown JSON error"
      logger.warning("Structured output rejected model=%s schema=%s attempt=%d/%d", model, schema.__name__, attempt + 1, max_retries + 1)

    preview = last_content[:_PREVIEW_CHARS]
    raise StructuredOutputError(
      f"Failed to generate valid JSON for {schema.__name__} after {max_retries + 1} attempts: {last_error}. Output preview: {preview!r}",
      attempts=max_retries + 1,
      preview=preview,
    )

  def estimate_tokens(self, text: str) -> int:
    """Approximate token count at four characters per token."""
    return math.ceil(len(text) / 4)

  def calculate_cost(self, model: str, usage: TokenUsage) -> float:
    return calculate_cost(model, usage, self._pricing_table)


def _json_system_prompt(system: str | None, schema: type[BaseModel]) -> str:
  """Append schema instructions so the model returns bare JSON."""
  schema_str = json.dumps(schema.model_json_schema(), indent=2)
  instructions = f"You MUST respond with a single JSON object adhering to this schema:\n```json\n{schema_str}\n```\nOutput valid JSON only, no markdown formatting or commentary."
  if system:
    return f"{system}\n\n{instructions}"
  return instructions
