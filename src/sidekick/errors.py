"""Exception types shared across the codec, providers and pipeline."""

from __future__ import annotations


class SidekickError(Exception):
    """Base error carrying a machine-readable ``error_type``."""

    error_type = "sidekick_error"

    def __init__(self, message: str, error_type: str | None = None):
        if error_type is not None:
            self.error_type = error_type
        super().__init__(message)


class ProviderError(SidekickError):
    """Raised when an LLM backend answers with a non-2xx status."""

    error_type = "provider_error"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
        error_type: str | None = None,
    ):
        self.status_code = status_code
        self.body = body
        super().__init__(message, error_type)


class UnsupportedProviderError(ProviderError):
    """Raised when no provider is registered under the requested name."""

    error_type = "unsupported_provider"

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Unsupported provider: {provider}")


class ParseError(SidekickError):
    """Raised when a completion contains no extractable workflow JSON."""

    error_type = "parse_error"


class CodecError(SidekickError):
    """Raised for TOON input that cannot be reconstructed even tolerantly."""

    error_type = "codec_error"
