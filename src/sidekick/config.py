import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ------------------------------------------------------------------
    # Provider credentials
    # ------------------------------------------------------------------
    openrouter_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    groq_api_key: Optional[str] = None
    google_api_key: Optional[str] = None

    # ------------------------------------------------------------------
    # Provider endpoints (override for proxies or self-hosted gateways)
    # ------------------------------------------------------------------
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openai_base_url: str = "https://api.openai.com/v1"
    groq_base_url: str = "https://api.groq.com/openai/v1"
    google_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    ollama_base_url: str = "http://localhost:11434"

    # Sent to OpenRouter for attribution
    openrouter_referer: str = "https://workflow-sidekick.dev"
    openrouter_title: str = "Workflow Sidekick"

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    default_provider: str = "openrouter"
    default_model: Optional[str] = None  # falls back to the provider default
    temperature: float = 0.7
    max_tokens: int = 4000
    request_timeout: float = 60.0  # seconds, deadline for one provider call
    use_toon: bool = False

    # Refinement loop
    max_fix_attempts: int = 2
    retry_backoff_seconds: float = 1.0

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    # Empty list accepts any "<namespace>.<nodeType>" type string
    node_namespaces: list[str] = []
    require_parameters: bool = False

    # ------------------------------------------------------------------
    # Storage / runtime
    # ------------------------------------------------------------------
    workflows_dir: Path = Path("workflows")
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False

    def credential_for(self, provider: str) -> Optional[str]:
        """Return the configured API key for ``provider`` (None for keyless ones)."""
        return getattr(self, f"{provider.lower()}_api_key", None)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Apply the configured log level to the root logger."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
