"""Retry logic with exponential backoff for transient provider failures."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

_RATE_LIMIT_HINTS = ("rate limit", "too many requests")
_NETWORK_HINTS = ("network", "timeout", "econnreset", "enotfound")


def is_rate_limit_error(error: BaseException) -> bool:
  """Return True when an error carries a 429 status or a rate-limit message."""
  for attr in ("status", "status_code", "code"):
    value = getattr(error, attr, None)
    if value == 429 or value == "429":
      return True
  message = str(error).lower()
  return any(hint in message for hint in _RATE_LIMIT_HINTS)


def is_network_error(error: BaseException) -> bool:
  """Return True for connection-class failures worth retrying."""
  if isinstance(error, TimeoutError | ConnectionError):
    return True
  message = str(error).lower()
  return any(hint in message for hint in _NETWORK_HINTS)


def default_is_retryable(error: BaseException) -> bool:
  """Retry rate limits and network failures, never generic application errors."""
  return is_rate_limit_error(error) or is_network_error(error)


@dataclass(frozen=True)
class RetryConfig:
  """Backoff settings; delays are in milliseconds."""

  max_retries: int = 3
  base_delay_ms: int = 1000
  max_delay_ms: int = 60000
  use_jitter: bool = True
  is_retryable: Callable[[BaseException], bool] = field(default=default_is_retryable)


def compute_delay_ms(attempt: int, config: RetryConfig) -> float:
  """Return the wait before retry `attempt` (0-based), capped at `max_delay_ms`."""
  delay = float(min(config.base_delay_ms * (2**attempt), config.max_delay_ms))
  if config.use_jitter:
    # Up to 25% extra spreads out concurrent callers hitting the same limit.
    delay += random.uniform(0, 0.25 * delay)
  return delay


async def with_retry(func: Callable[[], Awaitable[T]], config: RetryConfig | None = None, *, operation: str | None = None) -> T:
  """Await `func` until it succeeds, retrying retryable errors with exponential backoff."""
  config = config or RetryConfig()
  label = operation or getattr(func, "__name__", "operation")
  attempt = 0

  while True:
    try:
      return await func()
    except Exception as exc:
      if not config.is_retryable(exc):
        raise
      if attempt >= config.max_retries:
        logger.warning("Retries exhausted for %s after %d attempts: %s", label, attempt + 1, exc)
        raise
      delay_ms = compute_delay_ms(attempt, config)
      logger.warning(f"Retry attempt {attempt + 1}/{config.max_retries} for {label}. Error: {exc}. Retrying in {delay_ms / 1000:.2f}s...")
      await asyncio.sleep(delay_ms / 1000)
      attempt += 1
