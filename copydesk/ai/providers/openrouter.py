"""OpenRouter provider implementation using openai SDK."""

from __future__ import annotations

import logging
import os
from typing import Any, Final

import openai
from openai import AsyncOpenAI

from copydesk.ai.backoff import RetryConfig
from copydesk.ai.errors import ProviderError
from copydesk.ai.providers.base import ChatMessage, GenerationProvider, RawCompletion
from copydesk.ai.utils.cost import PricingTable, TokenUsage

logger = logging.getLogger(__name__)


class OpenRouterProvider(GenerationProvider):
  """Any OpenAI-compatible chat completions endpoint, OpenRouter by default."""

  DEFAULT_BASE_URL: Final[str] = "https://openrouter.ai/api/v1"

  def __init__(
    self,
    api_key: str | None = None,
    base_url: str | None = None,
    *,
    client: AsyncOpenAI | None = None,
    retry_config: RetryConfig | None = None,
    pricing_table: PricingTable | None = None,
  ) -> None:
    super().__init__(retry_config=retry_config, pricing_table=pricing_table)
    self.name = "openrouter"
    if client is not None:
      self._client = client
      return

    api_key = api_key or os.getenv("OPENROUTER_API_KEY")
    if not api_key:
      raise ValueError("OPENROUTER_API_KEY environment variable is required")

    # OpenRouter uses the OpenAI-compatible API; we add optional attribution headers.
    default_headers = {}
    referer = os.getenv("OPENROUTER_HTTP_REFERER")
    if referer:
      default_headers["HTTP-Referer"] = referer
    title = os.getenv("OPENROUTER_TITLE")
    if title:
      default_headers["X-Title"] = title

    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url or self.DEFAULT_BASE_URL, default_headers=default_headers or None, max_retries=0)

  def _is_transient(self, exc: BaseException) -> bool:
    return isinstance(exc, openai.APIConnectionError | openai.RateLimitError | openai.InternalServerError)

  async def _complete(self, messages: list[ChatMessage], *, model: str, temperature: float, max_tokens: int, system: str | None, stop: list[str] | None) -> RawCompletion:
    chat: list[dict[str, Any]] = []
    if system:
      chat.append({"role": "system", "content": system})
    chat.extend({"role": message.role, "content": message.content} for message in messages)

    request: dict[str, Any] = {"model": model, "messages": chat, "temperature": temperature, "max_tokens": max_tokens}
    if stop:
      request["stop"] = stop

    response = await self._client.chat.completions.create(**request)
    if not response.choices:
      raise ProviderError(f"OpenRouter returned no choices for model '{model}'.")

    choice = response.choices[0]
    content = choice.message.content or ""
    usage = TokenUsage()
    if response.usage:
      usage = TokenUsage(prompt_tokens=response.usage.prompt_tokens, completion_tokens=response.usage.completion_tokens)

    logger.info("OpenRouter response model=%s finish_reason=%s tokens=%d", response.model, choice.finish_reason, usage.total_tokens)
    return RawCompletion(content=content, model=response.model or model, stop_reason=choice.finish_reason, usage=usage)
