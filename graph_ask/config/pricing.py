"""
Completion-model prices for cost telemetry.

Prices are estimated USD per 1M tokens. Dated snapshots
("gpt-4o-mini-2024-07-18") and provider-prefixed names ("openai/gpt-4o")
resolve to their base model. Unknown models cost 0.0 and are flagged.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

PRICING_VERSION = "2026-10-estimate-v1"

_SNAPSHOT_SUFFIX = re.compile(r"-\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class ModelPrice:
    """USD per 1M prompt and completion tokens."""

    prompt: float
    completion: float

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        return (input_tokens * self.prompt + output_tokens * self.completion) / 1_000_000


MODEL_PRICES: dict[str, ModelPrice] = {
    "gpt-5.1": ModelPrice(prompt=1.25, completion=10.0),
    "gpt-5": ModelPrice(prompt=1.25, completion=10.0),
    "gpt-5-mini": ModelPrice(prompt=0.25, completion=2.0),
    "gpt-4.1": ModelPrice(prompt=2.0, completion=8.0),
    "gpt-4.1-mini": ModelPrice(prompt=0.4, completion=1.6),
    "gpt-4o": ModelPrice(prompt=2.5, completion=10.0),
    "gpt-4o-mini": ModelPrice(prompt=0.15, completion=0.6),
}


def price_for(model: str) -> ModelPrice | None:
    """Price of a model name, snapshot or provider-prefixed name."""
    name = model.strip().lower().rsplit("/", 1)[-1]
    return MODEL_PRICES.get(name) or MODEL_PRICES.get(_SNAPSHOT_SUFFIX.sub("", name))


def estimate_llm_cost_usd(
    model: str,
    *,
    input_tokens: int,
    output_tokens: int,
) -> tuple[float, bool]:
    """
    Estimate the cost of one completion call.

    Returns:
        (cost_usd, priced); priced is False for unknown models
    """
    price = price_for(model)
    if price is None:
        return 0.0, False
    return price.cost(input_tokens, output_tokens), True
