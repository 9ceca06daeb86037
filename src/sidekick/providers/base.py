"""Provider interface and registry for LLM completion backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Type

from pydantic import BaseModel

from ..errors import ParseError, UnsupportedProviderError

if TYPE_CHECKING:
    from ..config import Settings


# Provider class registry, populated via @register
_PROVIDER_REGISTRY: dict[str, Type[BaseProvider]] = {}


def register(cls: Type[BaseProvider]) -> Type[BaseProvider]:
    """Class decorator that registers a provider under its ``name``."""
    _PROVIDER_REGISTRY[cls.name] = cls
    return cls


def get_provider(name: str) -> BaseProvider:
    """Return a provider instance, or raise UnsupportedProviderError."""
    cls = _PROVIDER_REGISTRY.get(name.lower())
    if cls is None:
        raise UnsupportedProviderError(name)
    return cls()


def list_providers() -> list[str]:
    return sorted(_PROVIDER_REGISTRY)


class ProviderRequest(BaseModel):
    """A fully built outbound HTTP request."""

    url: str
    headers: dict[str, str] = {}
    json_body: dict[str, Any] | None = None


class BaseProvider(ABC):
    """Abstract base for completion backends.

    A provider only knows how to shape one request and read one response;
    the HTTP call itself is made by the pipeline.
    """

    name: str = ""
    default_model: str = ""
    requires_credential: bool = True

    @abstractmethod
    def build_request(
        self,
        system: str,
        user: str,
        credential: str | None,
        model: str,
        settings: Settings,
    ) -> ProviderRequest:
        ...

    @abstractmethod
    def parse_response(self, data: Any) -> str:
        """Return the completion text from a decoded response body."""
        ...

    @abstractmethod
    def models_request(self, credential: str | None, settings: Settings) -> ProviderRequest:
        """Build a GET request against the model listing endpoint."""
        ...

    def resolve_model(self, model: str | None, settings: Settings) -> str:
        if model:
            return model
        if settings.default_model and settings.default_provider == self.name:
            return settings.default_model
        return self.default_model

    def _missing(self, what: str) -> ParseError:
        return ParseError(f"{self.name} response has no {what}", error_type="empty_completion")
