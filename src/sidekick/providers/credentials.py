"""Credential checks against each provider's model listing endpoint."""

from __future__ import annotations

import logging

import httpx

from ..config import Settings, get_settings
from .base import get_provider

logger = logging.getLogger(__name__)


async def check_credential(
    provider: str,
    credential: str | None,
    *,
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> bool:
    """Return True when ``credential`` can list models on ``provider``.

    Raises UnsupportedProviderError for unknown providers.
    """
    settings = settings or get_settings()
    backend = get_provider(provider)
    if backend.requires_credential and not credential:
        return False

    request = backend.models_request(credential, settings)
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=settings.request_timeout)
    try:
        response = await client.get(request.url, headers=request.headers, timeout=settings.request_timeout)
    except httpx.HTTPError as exc:
        logger.warning("Credential check for %s failed: %s", backend.name, exc)
        return False
    finally:
        if owns_client:
            await client.aclose()

    if not response.is_success:
        logger.info("Credential check for %s returned HTTP %d", backend.name, response.status_code)
    return response.is_success
