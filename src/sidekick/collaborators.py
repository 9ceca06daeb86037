"""Interfaces for the auth and storage services a host application supplies."""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from pydantic import BaseModel

from .workflow.schema import WorkflowGraph


class CurrentUser(BaseModel):
    id: str
    email: Optional[str] = None


@runtime_checkable
class AuthProvider(Protocol):
    def is_authenticated(self) -> bool: ...

    def get_current_user(self) -> CurrentUser | None: ...


@runtime_checkable
class WorkflowStorage(Protocol):
    def save_workflow(self, graph: WorkflowGraph, metadata: dict[str, Any]) -> str:
        """Persist ``graph`` and return its storage id."""
        ...
