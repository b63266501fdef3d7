"""Provider implementations."""

from copydesk.ai.providers.anthropic import AnthropicProvider
from copydesk.ai.providers.base import ChatMessage, CompletionResult, GenerationProvider, JsonResult, RawCompletion
from copydesk.ai.providers.openrouter import OpenRouterProvider

__all__ = ["AnthropicProvider", "ChatMessage", "CompletionResult", "GenerationProvider", "JsonResult", "OpenRouterProvider", "RawCompletion"]
