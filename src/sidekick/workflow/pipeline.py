"""Workflow generation pipeline: prompt → provider → extract → validate → self-correct."""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional

import httpx
from pydantic import BaseModel, ValidationError

from ..collaborators import AuthProvider, WorkflowStorage
from ..config import Settings, get_settings
from ..errors import ParseError, ProviderError, SidekickError
from ..providers import get_provider
from ..providers.base import BaseProvider, ProviderRequest
from .catalog import NodeCatalog
from .extraction import extract_workflow
from .prompts import build_correction_prompt, build_prompt
from .report import ValidationResult
from .schema import WorkflowGraph
from .validator import GraphValidator

logger = logging.getLogger(__name__)

DEFAULT_WORKFLOW_NAME = "Generated Workflow"

# Failures that will not change on a second attempt
_FATAL_ERROR_TYPES = {"unsupported_provider", "missing_credential"}
_FATAL_STATUS_CODES = {400, 401, 403, 404}


class GenerationResult(BaseModel):
    """Tagged outcome of one generation call; failures never raise."""

    success: bool
    workflow: Optional[dict[str, Any]] = None
    provider: str
    model: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    status_code: Optional[int] = None
    usage: Optional[dict[str, Any]] = None
    validation: Optional[ValidationResult] = None


def normalize_positions(workflow: dict[str, Any]) -> dict[str, Any]:
    """Return a copy with ``{x, y}`` node positions rewritten as ``[x, y]``."""
    normalized = copy.deepcopy(workflow)
    for node in normalized.get("nodes") or []:
        if not isinstance(node, dict):
            continue
        position = node.get("position")
        if isinstance(position, dict) and "x" in position and "y" in position:
            node["position"] = [position["x"], position["y"]]
    return normalized


def default_validator(settings: Settings, catalog: NodeCatalog | None = None) -> GraphValidator:
    return GraphValidator(
        catalog,
        namespaces=settings.node_namespaces or None,
        require_parameters=settings.require_parameters,
    )


async def generate_workflow(
    description: str,
    provider: str | None = None,
    credential: str | None = None,
    model: str | None = None,
    *,
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
    use_toon: bool | None = None,
    context: dict[str, Any] | None = None,
    validator: GraphValidator | None = None,
) -> GenerationResult:
    """Generate a workflow graph from a natural-language description.

    Makes exactly one provider call. Network, HTTP, and parse failures are
    returned as ``GenerationResult(success=False, ...)``. When ``validator``
    is given its report is attached to a successful result.
    """
    settings = settings or get_settings()
    provider_name = (provider or settings.default_provider).lower()
    use_toon = settings.use_toon if use_toon is None else use_toon
    resolved_model = model

    try:
        backend = get_provider(provider_name)
        resolved_model = backend.resolve_model(model, settings)

        if credential is None:
            credential = settings.credential_for(provider_name)
        if backend.requires_credential and not credential:
            raise SidekickError(f"No API key configured for {provider_name}", error_type="missing_credential")

        system, user = build_prompt(description, provider_name, use_toon=use_toon, context=context)
        request = backend.build_request(system, user, credential, resolved_model, settings)
        data = await _post(backend, request, settings, http_client)

        text = backend.parse_response(data)
        workflow = extract_workflow(text, allow_toon=use_toon)
        if not isinstance(workflow.get("nodes"), list):
            raise ParseError("Response is not a workflow: missing nodes array")

        workflow = normalize_positions(workflow)
        if not workflow.get("name"):
            workflow["name"] = DEFAULT_WORKFLOW_NAME
    except httpx.HTTPError as exc:
        logger.warning("Request to %s failed: %s", provider_name, exc)
        return GenerationResult(
            success=False,
            provider=provider_name,
            model=resolved_model,
            error=f"Network error: {exc}",
            error_type="network_error",
        )
    except SidekickError as exc:
        logger.warning("Generation with %s failed: %s", provider_name, exc)
        return GenerationResult(
            success=False,
            provider=provider_name,
            model=resolved_model,
            error=str(exc),
            error_type=exc.error_type,
            status_code=getattr(exc, "status_code", None),
        )
    except Exception as exc:
        logger.exception("Unexpected failure generating workflow with %s", provider_name)
        return GenerationResult(
            success=False,
            provider=provider_name,
            model=resolved_model,
            error=f"Unexpected error: {exc}",
            error_type="unexpected_error",
        )

    return GenerationResult(
        success=True,
        workflow=workflow,
        provider=provider_name,
        model=resolved_model,
        usage=_usage(data),
        validation=validator.validate(workflow) if validator else None,
    )


async def _post(
    backend: BaseProvider,
    request: ProviderRequest,
    settings: Settings,
    http_client: httpx.AsyncClient | None,
) -> Any:
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=settings.request_timeout)
    try:
        response = await client.post(
            request.url,
            headers=request.headers,
            json=request.json_body,
            timeout=settings.request_timeout,
        )
    finally:
        if owns_client:
            await client.aclose()

    if not response.is_success:
        raise ProviderError(
            f"{backend.name} API error: {response.status_code} - {response.text[:500]}",
            status_code=response.status_code,
            body=response.text,
        )

    try:
        return response.json()
    except ValueError as exc:
        raise ParseError(f"{backend.name} returned a non-JSON response body") from exc


def _usage(data: Any) -> dict[str, Any] | None:
    if not isinstance(data, dict):
        return None
    usage = data.get("usage") or data.get("usageMetadata")
    if isinstance(usage, dict):
        return usage
    if "prompt_eval_count" in data or "eval_count" in data:
        return {"prompt_tokens": data.get("prompt_eval_count"), "completion_tokens": data.get("eval_count")}
    return None


def _is_retryable(result: GenerationResult) -> bool:
    if result.error_type in _FATAL_ERROR_TYPES:
        return False
    return result.status_code not in _FATAL_STATUS_CODES


async def refine_workflow(
    description: str,
    provider: str | None = None,
    credential: str | None = None,
    model: str | None = None,
    *,
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
    use_toon: bool | None = None,
    context: dict[str, Any] | None = None,
    validator: GraphValidator | None = None,
    storage: WorkflowStorage | None = None,
    auth: AuthProvider | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> AsyncGenerator[dict[str, Any], None]:
    """Generate, validate and re-prompt until the workflow is valid.

    Yields ``{"type": ..., "content": ...}`` events. Failed attempts are
    retried with exponential backoff; invalid workflows are sent back with
    the validation report. A valid result is saved when ``storage`` is given.
    """
    settings = settings or get_settings()
    validator = validator or default_validator(settings)
    max_fix_attempts = settings.max_fix_attempts

    prompt = description
    final_workflow: dict[str, Any] | None = None
    final_report: ValidationResult | None = None
    final_result: GenerationResult | None = None
    attempt = 0

    for attempt_idx in range(max_fix_attempts + 1):
        attempt = attempt_idx + 1

        if attempt_idx > 0:
            delay = settings.retry_backoff_seconds * 2 ** (attempt_idx - 1)
            logger.info("Retrying generation in %.1fs (attempt %d)", delay, attempt)
            await sleep(delay)

        result = await generate_workflow(
            prompt,
            provider,
            credential,
            model,
            settings=settings,
            http_client=http_client,
            use_toon=use_toon,
            context=context,
            validator=validator,
        )
        yield {
            "type": "generation",
            "content": {
                "attempt": attempt,
                "success": result.success,
                "provider": result.provider,
                "model": result.model,
                "usage": result.usage,
            },
        }

        if not result.success:
            yield {"type": "error", "content": f"Generation failed (attempt {attempt}): {result.error}"}
            if not _is_retryable(result) or attempt_idx >= max_fix_attempts:
                break
            continue

        report = result.validation
        final_workflow, final_report, final_result = result.workflow, report, result

        yield {"type": "workflow", "content": result.workflow}
        yield {
            "type": "validation_report",
            "content": {
                "report": report.to_dict(),
                "markdown": report.to_markdown(result.workflow.get("name", DEFAULT_WORKFLOW_NAME)),
                "attempt": attempt,
            },
        }

        if report.is_valid or attempt_idx >= max_fix_attempts:
            break

        yield {
            "type": "text",
            "content": f"Validation found {len(report.errors)} error(s). "
            f"Requesting a corrected workflow (attempt {attempt}/{max_fix_attempts})...",
        }
        prompt = build_correction_prompt(description, result.workflow, report.to_markdown())

    if storage is None or final_report is None or not final_report.is_valid:
        return

    if auth is not None and not auth.is_authenticated():
        yield {"type": "text", "content": "Not signed in; workflow was not saved."}
        return

    try:
        graph = WorkflowGraph.model_validate(final_workflow)
    except ValidationError as exc:
        yield {"type": "error", "content": f"Workflow could not be saved: {exc}"}
        return

    user = auth.get_current_user() if auth is not None else None
    metadata = {
        "description": description,
        "provider": final_result.provider,
        "model": final_result.model,
        "attempts": attempt,
        "owner": user.id if user else "default",
    }
    try:
        workflow_id = storage.save_workflow(graph, metadata)
    except (ValueError, OSError) as exc:
        logger.warning("Saving workflow for %s failed: %s", metadata["owner"], exc)
        yield {"type": "error", "content": f"Workflow could not be saved: {exc}"}
        return
    yield {
        "type": "workflow_saved",
        "content": {"workflow_id": workflow_id, "name": graph.name, "owner": metadata["owner"]},
    }
