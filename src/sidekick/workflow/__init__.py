"""Workflow graph model, node catalog and validation."""

from .catalog import NodeCatalog, build_default_catalog
from .report import ValidationResult
from .schema import NodeDefinition, WorkflowGraph, WorkflowNode
from .validator import GraphValidator, validate

__all__ = [
    "GraphValidator",
    "NodeCatalog",
    "NodeDefinition",
    "ValidationResult",
    "WorkflowGraph",
    "WorkflowNode",
    "build_default_catalog",
    "validate",
]
