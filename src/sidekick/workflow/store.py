"""File based workflow storage organized by owner."""

import json
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from .schema import WorkflowGraph

_SAFE_SEGMENT = re.compile(r"^[\w-]+$")


class StoredWorkflow(BaseModel):
    """A saved workflow plus the metadata it was saved with."""

    id: str
    owner: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = {}
    workflow: WorkflowGraph


class WorkflowStore:
    """Stores workflows as JSON files, one directory per owner."""

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir

    def save_workflow(self, graph: WorkflowGraph, metadata: dict[str, Any]) -> str:
        """Save a workflow and return its ID."""
        owner = str(metadata.get("owner") or "default")
        if not _SAFE_SEGMENT.match(owner):
            raise ValueError(f"Invalid owner name: {owner!r}")

        owner_dir = self.base_dir / owner
        owner_dir.mkdir(parents=True, exist_ok=True)

        record = StoredWorkflow(
            id=f"{_slug(graph.name)}-{uuid.uuid4().hex[:8]}",
            owner=owner,
            metadata=metadata,
            workflow=graph,
        )
        (owner_dir / f"{record.id}.json").write_text(record.model_dump_json(indent=2))
        return record.id

    def load(self, workflow_id: str, owner: str = "default") -> StoredWorkflow | None:
        path = self._path(workflow_id, owner)
        if path is None or not path.exists():
            return None
        return StoredWorkflow.model_validate(json.loads(path.read_text()))

    def list_by_owner(self, owner: str = "default") -> list[StoredWorkflow]:
        """List an owner's workflows, newest first."""
        if not _SAFE_SEGMENT.match(owner):
            return []
        owner_dir = self.base_dir / owner
        if not owner_dir.exists():
            return []

        records = [
            StoredWorkflow.model_validate(json.loads(path.read_text()))
            for path in owner_dir.glob("*.json")
        ]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    def delete(self, workflow_id: str, owner: str = "default") -> bool:
        """Delete a workflow. Returns True if it existed."""
        path = self._path(workflow_id, owner)
        if path is None or not path.exists():
            return False
        path.unlink()
        return True

    def _path(self, workflow_id: str, owner: str) -> Path | None:
        if not (_SAFE_SEGMENT.match(workflow_id) and _SAFE_SEGMENT.match(owner)):
            return None
        return self.base_dir / owner / f"{workflow_id}.json"


def _slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:40] or "workflow"
