"""Google Gemini ``generateContent`` backend."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .base import BaseProvider, ProviderRequest, register

if TYPE_CHECKING:
    from ..config import Settings


@register
class GoogleProvider(BaseProvider):
    name = "google"
    default_model = "gemini-2.0-flash-exp"

    def _headers(self, credential: str | None) -> dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": credential or ""}

    def build_request(
        self,
        system: str,
        user: str,
        credential: str | None,
        model: str,
        settings: Settings,
    ) -> ProviderRequest:
        return ProviderRequest(
            url=f"{settings.google_base_url.rstrip('/')}/models/{model}:generateContent",
            headers=self._headers(credential),
            json_body={
                "systemInstruction": {"parts": [{"text": system}]},
                "contents": [{"role": "user", "parts": [{"text": user}]}],
                "generationConfig": {
                    "temperature": settings.temperature,
                    "maxOutputTokens": settings.max_tokens,
                    "responseMimeType": "application/json",
                },
            },
        )

    def parse_response(self, data: Any) -> str:
        try:
            content = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise self._missing("candidates[0].content.parts[0].text") from None
        if not isinstance(content, str) or not content.strip():
            raise self._missing("completion text")
        return content

    def models_request(self, credential: str | None, settings: Settings) -> ProviderRequest:
        return ProviderRequest(
            url=f"{settings.google_base_url.rstrip('/')}/models",
            headers=self._headers(credential),
        )
