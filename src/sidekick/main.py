import json
from typing import Any

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from . import __version__
from .collaborators import CurrentUser
from .config import Settings, configure_logging, get_settings
from .errors import CodecError, UnsupportedProviderError
from .models import (
    CodecResponse,
    CredentialCheckRequest,
    DecodeRequest,
    EncodeRequest,
    GenerateRequest,
    HealthResponse,
    RefineRequest,
    ValidateRequest,
)
from .providers import check_credential, get_provider, list_providers
from .toon import calculate_token_savings, decode, decode_value, encode
from .workflow.catalog import CATEGORIES, build_default_catalog
from .workflow.pipeline import default_validator, generate_workflow, refine_workflow
from .workflow.store import WorkflowStore
from .workflow.validator import GraphValidator

load_dotenv()
configure_logging()

app = FastAPI(
    title="Workflow Sidekick API",
    description="Generate, validate and compress n8n workflows from natural language",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

catalog = build_default_catalog()


def get_store(settings: Settings = Depends(get_settings)) -> WorkflowStore:
    return WorkflowStore(settings.workflows_dir)


class _OwnerAuth:
    """Treats the request's owner field as the signed-in user."""

    def __init__(self, owner: str):
        self._user = CurrentUser(id=owner)

    def is_authenticated(self) -> bool:
        return True

    def get_current_user(self) -> CurrentUser:
        return self._user


@app.get("/api/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok", version=__version__)


# --- Generation ---

@app.post("/api/workflows/generate")
async def generate_workflow_endpoint(request: GenerateRequest, settings: Settings = Depends(get_settings)):
    """Generate a workflow with a single provider call."""
    validator = None
    if request.validate_result:
        validator = default_validator(settings, catalog)

    result = await generate_workflow(
        request.description,
        request.provider,
        request.credential,
        request.model,
        settings=settings,
        use_toon=request.use_toon,
        context=request.context,
        validator=validator,
    )
    return result.model_dump(mode="json")


@app.post("/api/workflows/refine")
async def refine_workflow_endpoint(
    request: RefineRequest,
    settings: Settings = Depends(get_settings),
    store: WorkflowStore = Depends(get_store),
):
    """Generate, validate and self-correct a workflow, streamed as SSE."""
    validator = default_validator(settings, catalog)

    async def event_stream():
        async for event in refine_workflow(
            request.description,
            request.provider,
            request.credential,
            request.model,
            settings=settings,
            use_toon=request.use_toon,
            context=request.context,
            validator=validator,
            storage=store if request.save else None,
            auth=_OwnerAuth(request.owner),
        ):
            yield f"data: {json.dumps(event, default=str)}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


@app.post("/api/workflows/validate")
def validate_workflow_endpoint(request: ValidateRequest):
    validator = GraphValidator(catalog, request.namespaces, request.require_parameters)
    result = validator.validate(request.workflow)
    return {**result.to_dict(), "markdown": result.to_markdown()}


# --- Stored workflows ---

@app.get("/api/workflows")
def list_workflows(owner: str = "default", store: WorkflowStore = Depends(get_store)):
    return [wf.model_dump(mode="json") for wf in store.list_by_owner(owner)]


@app.get("/api/workflows/{workflow_id}")
def get_workflow(workflow_id: str, owner: str = "default", store: WorkflowStore = Depends(get_store)):
    wf = store.load(workflow_id, owner=owner)
    if wf is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return wf.model_dump(mode="json")


@app.delete("/api/workflows/{workflow_id}")
def delete_workflow(workflow_id: str, owner: str = "default", store: WorkflowStore = Depends(get_store)):
    deleted = store.delete(workflow_id, owner=owner)
    if not deleted:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return {"status": "deleted", "workflow_id": workflow_id}


# --- TOON codec ---

@app.post("/api/toon/encode", response_model=CodecResponse)
def encode_endpoint(request: EncodeRequest):
    try:
        return CodecResponse(toon=encode(request.value, request.root_name))
    except CodecError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


@app.post("/api/toon/decode")
def decode_endpoint(request: DecodeRequest) -> Any:
    try:
        if request.root_name:
            return {"value": decode_value(request.text, request.root_name)}
        return {"value": decode(request.text)}
    except CodecError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


@app.post("/api/toon/savings")
def savings_endpoint(request: EncodeRequest):
    try:
        return calculate_token_savings(request.value, request.root_name).model_dump()
    except CodecError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


# --- Catalog / providers ---

@app.get("/api/nodes")
def list_nodes(category: str | None = None, q: str | None = None):
    if category is not None and category not in CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Unknown category: {category}")
    if q:
        definitions = catalog.search(q)
    elif category:
        definitions = catalog.by_category(category)
    else:
        definitions = catalog.all()
    if q and category:
        definitions = [d for d in definitions if d.category == category]
    return [d.model_dump(mode="json") for d in definitions]


@app.get("/api/providers")
def providers(settings: Settings = Depends(get_settings)):
    result = []
    for name in list_providers():
        backend = get_provider(name)
        result.append(
            {
                "name": name,
                "default_model": backend.default_model,
                "requires_credential": backend.requires_credential,
                "configured": not backend.requires_credential or bool(settings.credential_for(name)),
            }
        )
    return result


@app.post("/api/providers/{name}/check")
async def check_provider_credential(
    name: str,
    request: CredentialCheckRequest,
    settings: Settings = Depends(get_settings),
):
    """Test an API key against the provider's model listing."""
    try:
        get_provider(name)
    except UnsupportedProviderError as exc:
        raise HTTPException(status_code=404, detail=str(exc))

    credential = request.credential or settings.credential_for(name)
    valid = await check_credential(name, credential, settings=settings)
    return {"provider": name, "valid": valid}
