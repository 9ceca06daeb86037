"""Pydantic models describing an importable workflow graph."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ConnectionTarget(BaseModel):
    """One edge endpoint inside a connection branch."""

    node: str  # target node *name*
    type: str = "main"
    index: int = 0

    @model_validator(mode="before")
    @classmethod
    def _from_name(cls, value: Any) -> Any:
        # Bare node names are shorthand for a main-port target
        if isinstance(value, str):
            return {"node": value}
        return value


class WorkflowNode(BaseModel):
    """A single step in the workflow graph."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    type: str  # "<namespace>.<nodeType>"
    typeVersion: int | float
    position: tuple[float, float]  # canonical [x, y]
    parameters: dict[str, Any] = {}


class WorkflowGraph(BaseModel):
    """A complete workflow as imported by the automation tool."""

    model_config = ConfigDict(extra="allow")

    name: str = Field(..., min_length=1)
    nodes: list[WorkflowNode]
    # source node name -> port ("main") -> branches -> targets
    connections: dict[str, dict[str, list[list[ConnectionTarget]]]] = {}
    settings: dict[str, Any] = {}

    def targets_of(self, node_name: str) -> list[str]:
        ports = self.connections.get(node_name, {})
        return [t.node for branches in ports.values() for branch in branches for t in branch]


FieldKind = Literal["text", "email", "url", "password", "number", "select", "textarea", "json"]


class FieldDefinition(BaseModel):
    """A configurable parameter of one node type."""

    model_config = ConfigDict(frozen=True)

    name: str
    label: str
    kind: FieldKind = "text"
    required: bool = False
    default: Any = None
    placeholder: Optional[str] = None
    description: Optional[str] = None
    options: tuple[str, ...] = ()


class NodeDefinition(BaseModel):
    """Static catalog entry for one node type."""

    model_config = ConfigDict(frozen=True)

    key: str
    display_name: str
    category: str  # "triggers" | "actions" | "transform"
    type: str
    description: str
    default_parameters: dict[str, Any] = {}
    fields: tuple[FieldDefinition, ...] = ()

    @property
    def is_trigger(self) -> bool:
        return self.category == "triggers"
