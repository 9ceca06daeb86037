from __future__ import annotations

import copy
import json
import re
from types import MappingProxyType
from typing import Any, Iterable, Mapping
from urllib.parse import urlparse

from .schema import FieldDefinition, FieldKind, NodeDefinition

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

CATEGORIES: Mapping[str, str] = MappingProxyType(
    {
        "triggers": "Workflow triggers",
        "actions": "Action nodes",
        "transforms": "Data transformation",
    }
)


def _field(
    name: str,
    label: str,
    kind: FieldKind = "text",
    required: bool = False,
    **extra: Any,
) -> FieldDefinition:
    return FieldDefinition(name=name, label=label, kind=kind, required=required, **extra)


DEFAULT_NODE_DEFINITIONS: tuple[NodeDefinition, ...] = (
    # --- Triggers ---
    NodeDefinition(
        key="webhook",
        display_name="Webhook",
        category="triggers",
        type="n8n-nodes-base.webhook",
        description="Triggers workflow when an HTTP request is received",
        default_parameters={"path": "/webhook", "httpMethod": "POST", "responseMode": "onReceived", "options": {}},
        fields=(
            _field("path", "Path", required=True, placeholder="/webhook"),
            _field("httpMethod", "HTTP Method", "select", default="POST", options=("POST", "GET", "PUT", "DELETE")),
        ),
    ),
    NodeDefinition(
        key="schedule",
        display_name="Schedule Trigger",
        category="triggers",
        type="n8n-nodes-base.scheduleTrigger",
        description="Triggers workflow on a schedule",
        default_parameters={"rule": {"interval": [{"field": "cronExpression", "expression": "0 0 * * *"}]}},
    ),
    NodeDefinition(
        key="cron",
        display_name="Cron",
        category="triggers",
        type="n8n-nodes-base.cron",
        description="Triggers workflow on a cron expression (legacy)",
        default_parameters={"cronExpression": "0 0 * * *", "options": {}},
        fields=(
            _field(
                "cronExpression",
                "Cron Expression",
                required=True,
                placeholder="0 0 * * *",
                description="Format: minute hour day month weekday",
            ),
        ),
    ),
    NodeDefinition(
        key="manual",
        display_name="Manual Trigger",
        category="triggers",
        type="n8n-nodes-base.manualTrigger",
        description="Triggers workflow manually",
    ),
    # --- Actions ---
    NodeDefinition(
        key="http",
        display_name="HTTP Request",
        category="actions",
        type="n8n-nodes-base.httpRequest",
        description="Makes HTTP requests to external APIs",
        default_parameters={"method": "GET", "url": "", "options": {}},
        fields=(
            _field("url", "URL", "url", required=True, placeholder="https://api.example.com"),
            _field("method", "Method", "select", default="GET", options=("GET", "POST", "PUT", "DELETE", "PATCH")),
        ),
    ),
    NodeDefinition(
        key="email",
        display_name="Send Email",
        category="actions",
        type="n8n-nodes-base.emailSend",
        description="Sends email notifications",
        default_parameters={"toEmail": "", "subject": "", "text": "", "emailFormat": "text"},
        fields=(
            _field("toEmail", "To Email", "email", required=True, placeholder="recipient@example.com"),
            _field("subject", "Subject", placeholder="Email subject"),
            _field("text", "Body", "textarea", placeholder="Email body"),
        ),
    ),
    NodeDefinition(
        key="slack",
        display_name="Slack",
        category="actions",
        type="n8n-nodes-base.slack",
        description="Posts messages to Slack channels",
        default_parameters={"channel": "", "text": "", "otherOptions": {}},
        fields=(
            _field("channel", "Channel", required=True, placeholder="#general"),
            _field("text", "Message", "textarea", placeholder="Message to send"),
        ),
    ),
    NodeDefinition(
        key="discord",
        display_name="Discord",
        category="actions",
        type="n8n-nodes-base.discord",
        description="Posts messages to Discord channels",
        default_parameters={"channelId": "", "text": ""},
        fields=(
            _field("channelId", "Channel ID", required=True, placeholder="123456789012345678"),
            _field("text", "Message", "textarea", placeholder="Message to send"),
        ),
    ),
    NodeDefinition(
        key="google_sheets",
        display_name="Google Sheets",
        category="actions",
        type="n8n-nodes-base.googleSheets",
        description="Interacts with Google Sheets",
        default_parameters={"operation": "append", "sheetId": "", "columns": []},
        fields=(
            _field("operation", "Operation", "select", default="append", options=("append", "update", "read", "delete")),
            _field("sheetId", "Sheet ID", required=True, placeholder="your-sheet-id"),
        ),
    ),
    NodeDefinition(
        key="database",
        display_name="Database",
        category="actions",
        type="n8n-nodes-base.mysql",
        description="Performs database operations",
        default_parameters={"operation": "executeQuery", "query": ""},
        fields=(
            _field(
                "operation",
                "Operation",
                "select",
                default="executeQuery",
                options=("executeQuery", "insert", "update", "delete", "select"),
            ),
            _field("query", "SQL Query", "textarea", required=True, placeholder="SELECT * FROM table"),
        ),
    ),
    # --- Transforms ---
    NodeDefinition(
        key="code",
        display_name="Code",
        category="transforms",
        type="n8n-nodes-base.code",
        description="Executes custom JavaScript code",
        default_parameters={"jsCode": "return items;"},
        fields=(_field("jsCode", "JavaScript Code", "textarea", required=True, placeholder="return items;"),),
    ),
    NodeDefinition(
        key="filter",
        display_name="Filter",
        category="transforms",
        type="n8n-nodes-base.filter",
        description="Filters data based on conditions",
        default_parameters={"conditions": []},
        fields=(_field("conditions", "Conditions", "json", description="Filter conditions"),),
    ),
    NodeDefinition(
        key="merge",
        display_name="Merge",
        category="transforms",
        type="n8n-nodes-base.merge",
        description="Combines data from multiple branches",
        default_parameters={"mode": "combine", "combineBy": "combineAll"},
        fields=(
            _field(
                "mode",
                "Merge Mode",
                "select",
                default="combine",
                options=("combine", "passThrough", "keepOnlyMatches", "keepNonMatches"),
            ),
        ),
    ),
    NodeDefinition(
        key="switch",
        display_name="Switch",
        category="transforms",
        type="n8n-nodes-base.switch",
        description="Routes data based on conditions",
        default_parameters={"rules": {"values": []}},
        fields=(_field("rules", "Routes", "json", description="Routing rules"),),
    ),
    NodeDefinition(
        key="set",
        display_name="Set",
        category="transforms",
        type="n8n-nodes-base.set",
        description="Sets or modifies data values",
        default_parameters={"mode": "manual", "assignments": {"assignments": []}},
        fields=(_field("assignments", "Values to Set", "json", description="Key-value pairs to set"),),
    ),
)


class NodeCatalog:
    """Read-only lookup over node definitions, keyed by node type."""

    def __init__(self, definitions: Iterable[NodeDefinition]):
        by_type: dict[str, NodeDefinition] = {}
        by_key: dict[str, NodeDefinition] = {}
        for definition in definitions:
            if definition.type in by_type:
                raise ValueError(f"Duplicate node type in catalog: {definition.type}")
            by_type[definition.type] = definition
            by_key[definition.key] = definition
        self._by_type: Mapping[str, NodeDefinition] = MappingProxyType(by_type)
        self._by_key: Mapping[str, NodeDefinition] = MappingProxyType(by_key)

    def __contains__(self, node_type: object) -> bool:
        return node_type in self._by_type

    def __len__(self) -> int:
        return len(self._by_type)

    def get(self, node_type: str) -> NodeDefinition | None:
        return self._by_type.get(node_type)

    def get_by_key(self, key: str) -> NodeDefinition | None:
        return self._by_key.get(key)

    def all(self) -> list[NodeDefinition]:
        return list(self._by_type.values())

    def by_category(self, category: str) -> list[NodeDefinition]:
        return [d for d in self._by_type.values() if d.category == category]

    def categories(self) -> dict[str, str]:
        return dict(CATEGORIES)

    def search(self, query: str) -> list[NodeDefinition]:
        """Case-insensitive substring match on display name and description."""
        needle = query.lower()
        return [
            d
            for d in self._by_type.values()
            if needle in d.display_name.lower() or needle in d.description.lower()
        ]

    def default_parameters(self, node_type: str) -> dict[str, Any]:
        definition = self.get(node_type)
        return copy.deepcopy(definition.default_parameters) if definition else {}

    def validate_parameters(self, node_type: str, parameters: Mapping[str, Any]) -> list[str]:
        """Check ``parameters`` against the field schema of ``node_type``.

        Unknown node types are not an error here; callers decide whether an
        uncatalogued type matters.
        """
        definition = self.get(node_type)
        if definition is None:
            return []

        errors: list[str] = []
        for field in definition.fields:
            value = parameters.get(field.name)
            if value is None or value == "":
                if field.required:
                    errors.append(f"{field.label} is required")
                continue
            problem = _check_field(field, value)
            if problem:
                errors.append(problem)
        return errors


def _check_field(field: FieldDefinition, value: Any) -> str | None:
    # n8n expressions are resolved at run time
    if isinstance(value, str) and ("{{" in value or value.startswith("=")):
        return None

    if field.kind == "email" and not (isinstance(value, str) and _EMAIL.match(value)):
        return f"{field.label} must be a valid email"
    if field.kind == "url" and not _is_url(value):
        return f"{field.label} must be a valid URL"
    if field.kind == "number" and not _is_number(value):
        return f"{field.label} must be a number"
    if field.kind == "select" and field.options and value not in field.options:
        return f"{field.label} must be one of: {', '.join(field.options)}"
    if field.kind == "json" and not _is_json(value):
        return f"{field.label} must be valid JSON"
    return None


def _is_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value)
    return bool(parsed.scheme and parsed.netloc)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        float(value)
    except (TypeError, ValueError):
        return False
    return True


def _is_json(value: Any) -> bool:
    if isinstance(value, (dict, list)):
        return True
    if not isinstance(value, str):
        return False
    try:
        json.loads(value)
    except ValueError:
        return False
    return True


def build_default_catalog() -> NodeCatalog:
    """Construct the built-in catalog. Call once and pass the result around."""
    return NodeCatalog(DEFAULT_NODE_DEFINITIONS)
