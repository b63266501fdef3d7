"""Anthropic provider implementation using the anthropic SDK."""

from __future__ import annotations

import logging
import os
from typing import Any, Final

import anthropic
from anthropic import AsyncAnthropic

from copydesk.ai.backoff import RetryConfig
from copydesk.ai.errors import ProviderError
from copydesk.ai.providers.base import ChatMessage, GenerationProvider, RawCompletion
from copydesk.ai.utils.cost import PricingTable, TokenUsage

logger = logging.getLogger(__name__)


class AnthropicProvider(GenerationProvider):
  """Claude models through the Messages API."""

  DEFAULT_MODEL: Final[str] = "claude-sonnet-4-5"

  def __init__(
    self,
    api_key: str | None = None,
    *,
    client: AsyncAnthropic | None = None,
    retry_config: RetryConfig | None = None,
    pricing_table: PricingTable | None = None,
  ) -> None:
    super().__init__(retry_config=retry_config, pricing_table=pricing_table)
    self.name = "anthropic"
    if client is not None:
      self._client = client
      return

    api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
    if not api_key:
      raise ValueError("ANTHROPIC_API_KEY environment variable is required")
    # Retries are handled by with_retry so backoff stays consistent across providers.
    self._client = AsyncAnthropic(api_key=api_key, max_retries=0)

  def _is_transient(self, exc: BaseException) -> bool:
    return isinstance(exc, anthropic.APIConnectionError | anthropic.RateLimitError | anthropic.InternalServerError)

  async def _complete(self, messages: list[ChatMessage], *, model: str, temperature: float, max_tokens: int, system: str | None, stop: list[str] | None) -> RawCompletion:
    request: dict[str, Any] = {
      "model": model,
      "max_tokens": max_tokens,
      "temperature": temperature,
      "messages": [{"role": message.role, "content": message.content} for message in messages],
    }
    if system:
      request["system"] = system
    if stop:
      request["stop_sequences"] = stop

    response = await self._client.messages.create(**request)

    # Concatenate text blocks; tool-use blocks are never requested.
    content = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
    if not content:
      raise ProviderError(f"Anthropic returned no text content (stop_reason={response.stop_reason}).")

    usage = TokenUsage()
    if response.usage:
      usage = TokenUsage(prompt_tokens=response.usage.input_tokens, completion_tokens=response.usage.output_tokens)

    logger.info("Anthropic response model=%s stop_reason=%s tokens=%d", response.model, response.stop_reason, usage.total_tokens)
    return RawCompletion(content=content, model=response.model or model, stop_reason=response.stop_reason, usage=usage)
