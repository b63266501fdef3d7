"""Shared error types and classification helpers for AI provider handling."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Literal

ErrorKind = Literal["provider", "output", "agent"]

_PROVIDER_HINTS: tuple[str, ...] = (
  "model not found",
  "no such model",
  "rate limit",
  "too many requests",
  "overloaded",
  "quota",
  "timeout",
  "timed out",
  "connection",
  "network",
  "api key",
  "unauthorized",
  "forbidden",
  "service unavailable",
  "bad gateway",
  "anthropic",
  "openrouter",
)

_OUTPUT_HINTS: tuple[str, ...] = (
  "invalid json",
  "failed to parse",
  "json repair",
  "schema",
  "validation",
)


class ProviderError(RuntimeError):
  """Raised when a generation backend cannot produce a response."""


class StructuredOutputError(ProviderError):
  """Raised when model output cannot be coerced into the requested schema."""

  def __init__(self, message: str, *, attempts: int, preview: str) -> None:
    super().__init__(message)
    self.attempts = attempts
    self.preview = preview


def _match_hint(message: str, hints: Iterable[str]) -> bool:
  """Return True when any hint appears in the message."""
  return any(hint in message for hint in hints)


def is_provider_error(exc: BaseException) -> bool:
  """Return True when an exception indicates a provider or model availability failure."""
  if isinstance(exc, ProviderError) and not isinstance(exc, StructuredOutputError):
    return True
  return _match_hint(str(exc).lower(), _PROVIDER_HINTS)


def is_output_error(exc: BaseException) -> bool:
  """Return True when an exception indicates invalid output formatting."""
  if isinstance(exc, StructuredOutputError):
    return True
  return _match_hint(str(exc).lower(), _OUTPUT_HINTS)


def classify_error(exc: BaseException) -> ErrorKind:
  """Bucket a failure for step logs and operator diagnostics."""
  if is_output_error(exc):
    return "output"
  if is_provider_error(exc):
    return "provider"
  return "agent"
