"""Local Ollama backend (no authentication)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .base import BaseProvider, ProviderRequest, register

if TYPE_CHECKING:
    from ..config import Settings


@register
class OllamaProvider(BaseProvider):
    name = "ollama"
    default_model = "llama3.2"
    requires_credential = False

    def build_request(
        self,
        system: str,
        user: str,
        credential: str | None,
        model: str,
        settings: Settings,
    ) -> ProviderRequest:
        return ProviderRequest(
            url=f"{settings.ollama_base_url.rstrip('/')}/api/generate",
            headers={"Content-Type": "application/json"},
            json_body={
                "model": model,
                "prompt": f"{system}\n\n{user}",
                "stream": False,
                "options": {
                    "temperature": settings.temperature,
                    "top_p": 0.9,
                    "num_predict": settings.max_tokens,
                },
            },
        )

    def parse_response(self, data: Any) -> str:
        content = data.get("response") if isinstance(data, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise self._missing("response text")
        return content

    def models_request(self, credential: str | None, settings: Settings) -> ProviderRequest:
        return ProviderRequest(url=f"{settings.ollama_base_url.rstrip('/')}/api/tags")
