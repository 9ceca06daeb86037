"""Rough token accounting used to report TOON savings."""

from __future__ import annotations

import json
import math
from typing import Any, Callable, Mapping

from pydantic import BaseModel

from .codec import encode

DEFAULT_TOKENS_PER_CHAR = 0.25

# Characters-to-tokens rates per model family
MODEL_TOKEN_RATES: dict[str, float] = {
    "gpt-4": 0.25,
    "gpt-3.5": 0.25,
    "claude": 0.25,
    "gemini": 0.25,
}

TokenEstimator = Callable[[str], int]


class TokenSavings(BaseModel):
    """Size comparison between pretty-printed JSON and TOON for one value."""

    json_tokens: int
    toon_tokens: int
    savings: int
    savings_percent: float
    compression_ratio: float


def estimate_tokens(
    text: str,
    model: str | None = None,
    rates: Mapping[str, float] | None = None,
) -> int:
    """Estimate the token count of ``text`` from its length."""
    rates = MODEL_TOKEN_RATES if rates is None else rates
    rate = rates.get(model, DEFAULT_TOKENS_PER_CHAR) if model else DEFAULT_TOKENS_PER_CHAR
    return math.ceil(len(text) * rate)


def calculate_token_savings(
    value: Any,
    root_name: str = "data",
    estimator: TokenEstimator | None = None,
) -> TokenSavings:
    """Compare the JSON and TOON footprints of ``value``."""
    estimator = estimator or estimate_tokens
    json_text = json.dumps(value, indent=2, default=str)
    toon_text = encode(value, root_name)

    json_tokens = estimator(json_text)
    toon_tokens = estimator(toon_text)
    savings = json_tokens - toon_tokens

    return TokenSavings(
        json_tokens=json_tokens,
        toon_tokens=toon_tokens,
        savings=savings,
        savings_percent=round(savings / json_tokens * 100, 1) if json_tokens else 0.0,
        compression_ratio=round(len(json_text) / len(toon_text), 2) if toon_text else 0.0,
    )
