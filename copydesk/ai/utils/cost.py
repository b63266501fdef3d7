from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# USD per million tokens: (input, output).
PricingTable = dict[str, tuple[float, float]]

TOKEN_COSTS: PricingTable = {
  "claude-opus-4-5": (5.0, 25.0),
  "claude-sonnet-4-5": (3.0, 15.0),
  "claude-haiku-4-5": (1.0, 5.0),
  "claude-sonnet-4-20250514": (3.0, 15.0),
  "claude-opus-4-20250514": (15.0, 75.0),
  "claude-3-5-haiku-20241022": (0.8, 4.0),
  "gpt-4o": (2.5, 10.0),
  "gpt-4o-mini": (0.15, 0.6),
}


@dataclass(frozen=True)
class TokenUsage:
  """Token counts for one or more model calls."""

  prompt_tokens: int = 0
  completion_tokens: int = 0

  @property
  def total_tokens(self) -> int:
    return self.prompt_tokens + self.completion_tokens

  def __add__(self, other: TokenUsage) -> TokenUsage:
    return TokenUsage(prompt_tokens=self.prompt_tokens + other.prompt_tokens, completion_tokens=self.completion_tokens + other.completion_tokens)

  def as_dict(self) -> dict[str, int]:
    return {"prompt_tokens": self.prompt_tokens, "completion_tokens": self.completion_tokens, "total_tokens": self.total_tokens}


def calculate_cost(model: str, usage: TokenUsage, pricing_table: PricingTable | None = None) -> float:
  """Estimate the USD cost of a call; unknown models cost 0."""
  pricing = pricing_table if pricing_table is not None else TOKEN_COSTS
  rates = pricing.get(model.strip())
  if rates is None:
    logger.warning("No pricing configured for model '%s'; reporting cost as 0.", model)
    return 0.0

  price_in, price_out = rates
  call_cost = (usage.prompt_tokens / 1_000_000) * price_in
  call_cost += (usage.completion_tokens / 1_000_000) * price_out
  return call_cost


def sum_usage(entries: Iterable[TokenUsage]) -> TokenUsage:
  """Fold per-call usage into a single total."""
  total = TokenUsage()
  for entry in entries:
    total = total + entry
  return total
