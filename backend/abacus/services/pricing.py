"""Token cost estimation from a per-model price table."""

from collections.abc import Mapping

from abacus.config import ModelPrice

PER_MILLION = 1_000_000


def find_price(model: str, pricing: Mapping[str, ModelPrice]) -> ModelPrice | None:
    """
    Look up the price entry for a normalized model name.

    Falls back to the longest table key the model starts with, so
    'sonnet-4.5-preview' prices as 'sonnet-4.5'.
    """
    if model in pricing:
        return pricing[model]

    candidates = [key for key in pricing if model.startswith(key)]
    if not candidates:
        return None
    return pricing[max(candidates, key=len)]


def estimate_cost(
    model: str,
    pricing: Mapping[str, ModelPrice],
    input_tokens: int = 0,
    output_tokens: int = 0,
    cache_write_tokens: int = 0,
    cache_read_tokens: int = 0,
) -> float:
    """Estimated USD cost, or 0.0 for models missing from the table."""
    price = find_price(model, pricing)
    if price is None:
        return 0.0

    cost = (
        input_tokens * price.input
        + output_tokens * price.output
        + cache_write_tokens * price.cache_write
        + cache_read_tokens * price.cache_read
    ) / PER_MILLION
    return round(cost, 6)
