"""Structural validation for candidate workflow graphs.

Every node and connection is checked so the caller receives the complete
defect list in one pass; nothing here raises on bad input.
"""

from __future__ import annotations

import re
from typing import Any, Iterable

from .catalog import NodeCatalog
from .report import ValidationResult

MIN_ID_LENGTH = 5

# Matched against the segment after the namespace; respondToWebhook is an action
TRIGGER_PATTERN = re.compile(r"(?:trigger|^webhook)$", re.IGNORECASE)

# "<namespace>.<nodeType>", e.g. n8n-nodes-base.webhook or @n8n/n8n-nodes-langchain.agent
NAMESPACED_TYPE = re.compile(r"^(@?[\w-]+(?:/[\w-]+)?)\.([A-Za-z_]\w*)$")

# (substring of the lowercased type, label reported in expected_nodes_found)
CATEGORY_HINTS: tuple[tuple[str, str], ...] = (
    ("trigger", "Trigger"),
    ("webhook", "Webhook"),
    ("mail", "Email"),
    ("slack", "Slack"),
)


class GraphValidator:
    """Reusable validator bound to a catalog and namespace policy."""

    def __init__(
        self,
        catalog: NodeCatalog | None = None,
        namespaces: Iterable[str] | None = None,
        require_parameters: bool = False,
    ) -> None:
        self.catalog = catalog
        self.namespaces = frozenset(namespaces) if namespaces else None
        self.require_parameters = require_parameters

    def validate(self, candidate: Any) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []

        if not isinstance(candidate, dict):
            return ValidationResult(is_valid=False, errors=["Workflow must be a JSON object"])

        nodes = candidate.get("nodes")
        if not isinstance(nodes, list):
            return ValidationResult(is_valid=False, errors=["Missing or invalid nodes array"])

        names: set[str] = set()
        ids: set[str] = set()
        found: dict[str, None] = {}
        trigger_count = 0

        for index, node in enumerate(nodes):
            if not isinstance(node, dict):
                errors.append(f"Node {index} is not an object")
                continue

            label = _label(node, index)
            self._check_id(node, label, ids, errors)
            self._check_name(node, label, names, errors)
            self._check_type(node, label, errors)
            self._check_position(node, label, errors)
            self._check_type_version(node, label, errors)
            self._check_parameters(node, label, errors)

            node_type = node.get("type")
            if isinstance(node_type, str):
                if TRIGGER_PATTERN.search(node_type.rsplit(".", 1)[-1]):
                    trigger_count += 1
                lowered = node_type.lower()
                for needle, category in CATEGORY_HINTS:
                    if needle in lowered:
                        found.setdefault(category, None)

        connections = candidate.get("connections")
        has_connections = isinstance(connections, dict) and len(connections) > 0
        if connections is None or (isinstance(connections, (dict, list)) and not connections):
            warnings.append("No connections found between nodes")
        elif not isinstance(connections, dict):
            errors.append("Connections must be an object keyed by source node name")
        else:
            _check_connections(connections, names, ids, errors)

        # A lone disconnected node already carries the connections warning
        if trigger_count == 0 and has_connections:
            warnings.append("No trigger node found")
        elif trigger_count > 1:
            warnings.append(f"Found {trigger_count} trigger nodes; expected exactly one")

        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            node_count=len(nodes),
            has_connections=has_connections,
            expected_nodes_found=list(found),
        )

    # ------------------------------------------------------------------
    # Per-node checks
    # ------------------------------------------------------------------

    def _check_id(self, node: dict, label: str, ids: set[str], errors: list[str]) -> None:
        node_id = node.get("id")
        if node_id is None or node_id == "":
            errors.append(f"{label} is missing an id")
        elif not isinstance(node_id, str) or len(node_id) < MIN_ID_LENGTH:
            errors.append(
                f"{label} has invalid id {node_id!r} (expected a string of at least {MIN_ID_LENGTH} characters)"
            )
        elif node_id in ids:
            errors.append(f"{label} reuses id '{node_id}'")
        else:
            ids.add(node_id)

    def _check_name(self, node: dict, label: str, names: set[str], errors: list[str]) -> None:
        name = node.get("name")
        if name is None or name == "":
            errors.append(f"{label} is missing a name")
        elif not isinstance(name, str):
            errors.append(f"{label} has a non-string name")
        elif name in names:
            errors.append(f"{label} has a duplicate name; names must be unique")
        else:
            names.add(name)

    def _check_type(self, node: dict, label: str, errors: list[str]) -> None:
        node_type = node.get("type")
        if node_type is None or node_type == "":
            errors.append(f"{label} is missing a type")
            return

        match = NAMESPACED_TYPE.match(node_type) if isinstance(node_type, str) else None
        if match is None:
            errors.append(f"{label} has unrecognized type {node_type!r} (expected '<namespace>.<nodeType>')")
        elif self.namespaces is not None and match.group(1) not in self.namespaces:
            errors.append(
                f"{label} has type {node_type!r} outside the recognized namespaces: "
                f"{', '.join(sorted(self.namespaces))}"
            )

    def _check_position(self, node: dict, label: str, errors: list[str]) -> None:
        position = node.get("position")
        if _is_point(position):
            return
        if isinstance(position, dict) and "x" in position and "y" in position:
            errors.append(f"{label} has position as {{x, y}}; expected an [x, y] pair")
        else:
            errors.append(f"{label} has invalid position {position!r} (expected an [x, y] pair)")

    def _check_type_version(self, node: dict, label: str, errors: list[str]) -> None:
        version = node.get("typeVersion")
        if version is None:
            errors.append(f"{label} is missing typeVersion")
        elif not _is_number(version) or version <= 0:
            errors.append(f"{label} has invalid typeVersion {version!r} (expected a positive number)")

    def _check_parameters(self, node: dict, label: str, errors: list[str]) -> None:
        if "parameters" not in node:
            if self.require_parameters:
                errors.append(f"{label} is missing parameters")
            return

        parameters = node["parameters"]
        if not isinstance(parameters, dict):
            errors.append(f"{label} has parameters that are not an object")
            return

        if self.catalog is not None and isinstance(node.get("type"), str):
            for problem in self.catalog.validate_parameters(node["type"], parameters):
                errors.append(f"{label}: {problem}")


def validate(
    candidate: Any,
    *,
    catalog: NodeCatalog | None = None,
    namespaces: Iterable[str] | None = None,
    require_parameters: bool = False,
) -> ValidationResult:
    """Validate ``candidate`` as a workflow graph and list every defect."""
    return GraphValidator(catalog, namespaces, require_parameters).validate(candidate)


def _check_connections(
    connections: dict[str, Any],
    names: set[str],
    ids: set[str],
    errors: list[str],
) -> None:
    for source, ports in connections.items():
        if source not in names:
            errors.append(f"Connection source '{source}' is not a node name{_id_hint(source, ids)}")

        if not isinstance(ports, dict):
            errors.append(f"Connections of '{source}' must be an object of output ports")
            continue

        for port, branches in ports.items():
            if not isinstance(branches, list):
                errors.append(f"Connections '{source}.{port}' must be a list of branches")
                continue
            for branch in branches:
                if not isinstance(branch, list):
                    errors.append(f"Connections '{source}.{port}' contain a branch that is not a list")
                    continue
                for target in branch:
                    _check_target(source, target, names, ids, errors)


def _check_target(source: str, target: Any, names: set[str], ids: set[str], errors: list[str]) -> None:
    if isinstance(target, str):
        target_name = target
    elif isinstance(target, dict):
        target_name = target.get("node")
    else:
        target_name = None

    if not isinstance(target_name, str) or not target_name:
        errors.append(f"Connection from '{source}' has a target without a node name")
    elif target_name not in names:
        errors.append(
            f"Connection from '{source}' references unknown node '{target_name}'{_id_hint(target_name, ids)}"
        )


def _id_hint(reference: str, ids: set[str]) -> str:
    if reference in ids:
        return " (this is a node id; connections must use node names)"
    return ""


def _label(node: dict, index: int) -> str:
    name = node.get("name")
    if isinstance(name, str) and name:
        return f"Node '{name}'"
    return f"Node {index}"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_point(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and len(value) == 2 and all(_is_number(v) for v in value)
