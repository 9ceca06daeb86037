"""OpenAI-compatible chat completion providers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .base import BaseProvider, ProviderRequest, register

if TYPE_CHECKING:
    from ..config import Settings


class OpenAICompatibleProvider(BaseProvider):
    """Bearer-authenticated ``/chat/completions`` backends."""

    base_url_setting: str = ""
    json_mode: bool = True

    def base_url(self, settings: Settings) -> str:
        return getattr(settings, self.base_url_setting).rstrip("/")

    def headers(self, credential: str | None, settings: Settings) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {credential or ''}",
            "Content-Type": "application/json",
        }

    def build_request(
        self,
        system: str,
        user: str,
        credential: str | None,
        model: str,
        settings: Settings,
    ) -> ProviderRequest:
        body: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": settings.temperature,
            "max_tokens": settings.max_tokens,
        }
        if self.json_mode:
            body["response_format"] = {"type": "json_object"}
        return ProviderRequest(
            url=f"{self.base_url(settings)}/chat/completions",
            headers=self.headers(credential, settings),
            json_body=body,
        )

    def parse_response(self, data: Any) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise self._missing("choices[0].message.content") from None
        if not isinstance(content, str) or not content.strip():
            raise self._missing("completion text")
        return content

    def models_request(self, credential: str | None, settings: Settings) -> ProviderRequest:
        return ProviderRequest(
            url=f"{self.base_url(settings)}/models",
            headers=self.headers(credential, settings),
        )


@register
class OpenRouterProvider(OpenAICompatibleProvider):
    name = "openrouter"
    default_model = "openai/gpt-4o-mini"
    base_url_setting = "openrouter_base_url"

    def headers(self, credential: str | None, settings: Settings) -> dict[str, str]:
        headers = super().headers(credential, settings)
        headers["HTTP-Referer"] = settings.openrouter_referer
        headers["X-Title"] = settings.openrouter_title
        return headers


@register
class OpenAIProvider(OpenAICompatibleProvider):
    name = "openai"
    default_model = "gpt-4o-mini"
    base_url_setting = "openai_base_url"


@register
class GroqProvider(OpenAICompatibleProvider):
    name = "groq"
    default_model = "llama-3.1-70b-versatile"
    base_url_setting = "groq_base_url"
    json_mode = False
