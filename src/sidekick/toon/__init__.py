"""TOON codec: compact text notation for JSON-like values."""

from .codec import UNDEFINED, decode, decode_value, encode, encode_many, format_value, parse_value
from .tokens import TokenSavings, calculate_token_savings, estimate_tokens

__all__ = [
    "UNDEFINED",
    "TokenSavings",
    "calculate_token_savings",
    "decode",
    "decode_value",
    "encode",
    "encode_many",
    "estimate_tokens",
    "format_value",
    "parse_value",
]
