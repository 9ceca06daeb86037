"""Prompt templates for workflow generation, keyed by provider."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from ..toon.optimizer import optimize_user_prompt


@dataclass(frozen=True)
class PromptTemplate:
    system: str
    user: str  # formatted with {description}


EXAMPLE_WORKFLOW_JSON = """\
{
  "name": "Webhook to Email",
  "nodes": [
    {
      "id": "webhook-1",
      "name": "Webhook",
      "type": "n8n-nodes-base.webhook",
      "typeVersion": 1,
      "position": [240, 300],
      "parameters": {"path": "/incoming", "httpMethod": "POST"}
    },
    {
      "id": "email-1",
      "name": "Send Email",
      "type": "n8n-nodes-base.emailSend",
      "typeVersion": 2,
      "position": [460, 300],
      "parameters": {"toEmail": "team@example.com", "subject": "New request", "text": "{{$json.body}}"}
    }
  ],
  "connections": {
    "Webhook": {"main": [[{"node": "Send Email", "type": "main", "index": 0}]]}
  },
  "settings": {"executionOrder": "v1"}
}
"""

GRAPH_CONTRACT = """\
## Workflow JSON contract
- Root keys: name, nodes, connections, settings
- Every node needs: id (unique, at least 5 characters), name (unique), type ("<namespace>.<nodeType>", e.g. n8n-nodes-base.webhook), typeVersion (positive number), position ([x, y]), parameters (object)
- connections are keyed by the *source node name*; targets also reference node names, never ids
- Start the graph with exactly one trigger node (webhook, schedule, manual trigger, ...)
- Lay nodes out left to right, about 220 units apart on x
"""

DEFAULT_SYSTEM_PROMPT = f"""\
You are an automation engineer who designs importable n8n workflows.
Answer with a single JSON object and nothing else: no prose, no markdown fences.

{GRAPH_CONTRACT}
Example:
{EXAMPLE_WORKFLOW_JSON}"""

DEFAULT_USER_PROMPT = """\
Design a workflow for this request:

<user_request>
{description}
</user_request>

Return only the workflow JSON."""

DEFAULT_TEMPLATE = PromptTemplate(system=DEFAULT_SYSTEM_PROMPT, user=DEFAULT_USER_PROMPT)

PROMPT_TEMPLATES: dict[str, PromptTemplate] = {
    "openrouter": DEFAULT_TEMPLATE,
    "openai": DEFAULT_TEMPLATE,
    "groq": PromptTemplate(
        system=DEFAULT_SYSTEM_PROMPT + "\nKeep parameter values short; do not add comments inside the JSON.\n",
        user=DEFAULT_USER_PROMPT,
    ),
    # Local models drift into prose without a firmer reminder
    "ollama": PromptTemplate(
        system=DEFAULT_SYSTEM_PROMPT,
        user=DEFAULT_USER_PROMPT + "\nThe first character of your answer must be '{{' and the last must be '}}'.",
    ),
    "google": PromptTemplate(
        system=DEFAULT_SYSTEM_PROMPT,
        user=DEFAULT_USER_PROMPT + "\nDo not wrap the JSON in a code block.",
    ),
}

TOON_HINT = """\
The request is also given below in TOON notation: `name{keys}:` is followed by one
line of comma separated values, `name[N]{keys}:` by N numbered rows.
"""


def get_template(provider: str) -> PromptTemplate:
    """Return the template for ``provider``, or the default one."""
    return PROMPT_TEMPLATES.get(provider.lower(), DEFAULT_TEMPLATE)


def build_prompt(
    description: str,
    provider: str,
    *,
    use_toon: bool = False,
    context: dict[str, Any] | None = None,
) -> tuple[str, str]:
    """Build ``(system, user)`` prompts for one generation request."""
    template = get_template(provider)
    user = template.user.format(description=description)

    if context and not use_toon:
        user += "\n\n<user_context>\n"
        for key, value in context.items():
            user += f"- {key}: {value}\n"
        user += "</user_context>"

    if use_toon:
        user += f"\n\n{TOON_HINT}\n{optimize_user_prompt(description, context)}"

    return template.system, user


def build_correction_prompt(description: str, workflow: dict[str, Any], report_markdown: str) -> str:
    """Ask the model to repair a workflow that failed validation."""
    return (
        "The workflow you produced failed validation.\n\n"
        f"Original request: {description}\n\n"
        f"Previous workflow:\n{json.dumps(workflow, indent=2)}\n\n"
        f"{report_markdown}\n"
        "Fix every error listed above and return the complete corrected workflow JSON only."
    )
