"""Workflow-aware helpers built on the TOON codec."""

from __future__ import annotations

import json
import re
from typing import Any

from .codec import decode, encode
from .tokens import TokenSavings, calculate_token_savings

_VARIABLE = re.compile(r"\{\{([^}]+)\}\}")

PROMPT_PATTERNS: dict[str, re.Pattern[str]] = {
    "trigger": re.compile(r"\b(trigger|when|on|if|as soon as|whenever)\b", re.IGNORECASE),
    "action": re.compile(
        r"\b(send|create|update|delete|add|remove|notify|email|slack|discord)\b", re.IGNORECASE
    ),
    "condition": re.compile(r"\b(if|when|then|else|otherwise|check|validate)\b", re.IGNORECASE),
    "data": re.compile(r"\b(data|information|record|entry|item|object)\b", re.IGNORECASE),
    "service": re.compile(
        r"\b(email|slack|discord|telegram|database|api|webhook|http)\b", re.IGNORECASE
    ),
}

KNOWN_REQUIREMENTS = (
    "error handling",
    "logging",
    "retry mechanism",
    "notification",
    "validation",
    "authentication",
    "rate limiting",
)


def compact_nodes(nodes: Any) -> list[dict[str, Any]]:
    """Keep only the node fields an importer needs, in a fixed order."""
    if not isinstance(nodes, list):
        return []
    return [
        {
            "id": node.get("id"),
            "name": node.get("name"),
            "type": node.get("type"),
            "typeVersion": node.get("typeVersion"),
            "position": node.get("position"),
            "parameters": node.get("parameters") or {},
        }
        for node in nodes
        if isinstance(node, dict)
    ]


def compact_connections(connections: Any) -> dict[str, Any]:
    """Keep only ``main`` connections, in their original branch shape."""
    if not isinstance(connections, dict):
        return {}
    compact: dict[str, Any] = {}
    for source, ports in connections.items():
        main = ports.get("main") if isinstance(ports, dict) else None
        if isinstance(main, list):
            compact[source] = {"main": main}
    return compact


def optimize_workflow(workflow: dict[str, Any]) -> str:
    """Encode a workflow graph as a compact ``workflow`` TOON entry."""
    return encode(
        {
            "name": workflow.get("name") or "Untitled Workflow",
            "nodes": compact_nodes(workflow.get("nodes")),
            "connections": compact_connections(workflow.get("connections")),
            "settings": workflow.get("settings") or {},
        },
        "workflow",
    )


def toon_to_workflow(text: str) -> Any:
    """Decode a TOON reply, unwrapping the ``workflow`` entry when present."""
    decoded = decode(text)
    return decoded.get("workflow", decoded)


def workflow_savings(workflow: dict[str, Any]) -> TokenSavings:
    return calculate_token_savings(workflow, "workflow")


def extract_workflow_info(prompt: str) -> dict[str, Any]:
    """Pull a coarse intent, keyword entities and requirements out of a prompt."""
    entities = [
        {"type": kind, "text": match.group(0).lower()}
        for kind, pattern in PROMPT_PATTERNS.items()
        for match in pattern.finditer(prompt)
    ]

    if PROMPT_PATTERNS["trigger"].search(prompt):
        intent = "create_workflow_with_trigger"
    elif PROMPT_PATTERNS["action"].search(prompt):
        intent = "create_action_workflow"
    else:
        intent = "general_workflow"

    lowered = prompt.lower()
    requirements = [req for req in KNOWN_REQUIREMENTS if req in lowered]

    return {"intent": intent, "entities": entities, "requirements": requirements}


def optimize_user_prompt(prompt: str, context: dict[str, Any] | None = None) -> str:
    """Render the user's request as a ``workflow_request`` TOON entry."""
    info = extract_workflow_info(prompt)
    return encode(
        {
            "prompt": prompt,
            "intent": info["intent"],
            "entities": info["entities"],
            "requirements": info["requirements"],
            "context": context or {},
        },
        "workflow_request",
    )


def extract_variables(workflow: dict[str, Any]) -> list[str]:
    """Return ``{{placeholder}}`` names used in node parameters, first-seen order."""
    found: dict[str, None] = {}
    for node in workflow.get("nodes") or []:
        if not isinstance(node, dict) or not node.get("parameters"):
            continue
        for match in _VARIABLE.finditer(json.dumps(node["parameters"])):
            found.setdefault(match.group(1), None)
    return list(found)


def create_template(workflow: dict[str, Any], template_name: str) -> str:
    """Encode a reusable ``template`` entry derived from an existing workflow."""
    nodes = [node for node in workflow.get("nodes") or [] if isinstance(node, dict)]
    return encode(
        {
            "name": template_name,
            "description": workflow.get("name") or "Generated workflow template",
            "nodes": [
                {
                    "type": node.get("type"),
                    "typeVersion": node.get("typeVersion"),
                    "parameters": node.get("parameters") or {},
                    "displayName": node.get("name"),
                    "description": f"{node.get('type')} node - {node.get('name')}",
                }
                for node in nodes
            ],
            "connections": dict(workflow.get("connections") or {}),
            "variables": extract_variables(workflow),
        },
        "template",
    )
