"""Routing utilities for provider selection."""

from __future__ import annotations

from enum import Enum

from copydesk.ai.backoff import RetryConfig
from copydesk.ai.providers.anthropic import AnthropicProvider
from copydesk.ai.providers.base import GenerationProvider
from copydesk.ai.providers.openrouter import OpenRouterProvider
from copydesk.config import Settings


class ProviderMode(str, Enum):
  """Supported provider modes."""

  ANTHROPIC = "anthropic"
  OPENROUTER = "openrouter"


def retry_config_from_settings(settings: Settings) -> RetryConfig:
  """Build the backoff policy shared by every provider call."""
  return RetryConfig(max_retries=settings.retry_max_retries, base_delay_ms=settings.retry_base_delay_ms, max_delay_ms=settings.retry_max_delay_ms)


def get_provider(settings: Settings, mode: str | ProviderMode | None = None) -> GenerationProvider:
  """Return a provider instance for the given (or configured) mode."""
  key = mode.value if isinstance(mode, ProviderMode) else (mode or settings.provider)
  retry_config = retry_config_from_settings(settings)
  if key == ProviderMode.ANTHROPIC.value:
    return AnthropicProvider(settings.anthropic_api_key, retry_config=retry_config)
  if key == ProviderMode.OPENROUTER.value:
    return OpenRouterProvider(settings.openrouter_api_key, settings.openai_base_url, retry_config=retry_config)
  raise ValueError(f"Unsupported provider mode '{key}'.")
