"""LLM provider registry.

Importing this package registers the built-in providers.
"""

from . import google, ollama, openai_compat  # noqa: F401
from .base import BaseProvider, ProviderRequest, get_provider, list_providers, register
from .credentials import check_credential

__all__ = [
    "BaseProvider",
    "ProviderRequest",
    "check_credential",
    "get_provider",
    "list_providers",
    "register",
]
