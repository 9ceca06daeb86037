"""API models for Workflow Sidekick."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class GenerateRequest(BaseModel):
    """Request to generate a workflow from a description."""

    description: str = Field(..., min_length=1, description="Natural language description of the automation")
    provider: Optional[str] = Field(None, description="Provider name; defaults to DEFAULT_PROVIDER")
    credential: Optional[str] = Field(None, description="API key; defaults to the configured key")
    model: Optional[str] = Field(None, description="Model name; defaults to the provider default")
    use_toon: Optional[bool] = Field(None, description="Embed the request as TOON in the prompt")
    context: Optional[dict[str, Any]] = Field(None, description="Extra facts for the prompt")
    validate_result: bool = Field(True, description="Attach a validation report to the result")


class RefineRequest(GenerateRequest):
    """Request to generate, validate and self-correct a workflow."""

    save: bool = Field(False, description="Store the workflow once it validates")
    owner: str = Field("default", pattern=r"^[\w-]+$", description="Owner directory for stored workflows")


class ValidateRequest(BaseModel):
    workflow: Any = Field(..., description="Candidate workflow graph")
    namespaces: Optional[list[str]] = Field(None, description="Accepted node type namespaces")
    require_parameters: bool = False


class EncodeRequest(BaseModel):
    value: Any
    root_name: str = Field("data", pattern=r"^\w+$")


class DecodeRequest(BaseModel):
    text: str
    root_name: Optional[str] = Field(None, description="Unwrap this entry instead of returning all entries")


class CodecResponse(BaseModel):
    toon: str


class CredentialCheckRequest(BaseModel):
    credential: Optional[str] = Field(None, description="API key to test; defaults to the configured key")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str = "Workflow Sidekick"
    version: str
