import sys
import unittest
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from sidekick.toon import decode
from sidekick.toon.optimizer import (
    compact_connections,
    compact_nodes,
    create_template,
    extract_variables,
    extract_workflow_info,
    optimize_user_prompt,
    optimize_workflow,
    toon_to_workflow,
    workflow_savings,
)

WORKFLOW = {
    "name": "Webhook to Email",
    "nodes": [
        {
            "id": "webhook1",
            "name": "Webhook",
            "type": "n8n-nodes-base.webhook",
            "typeVersion": 1,
            "position": [240, 300],
            "parameters": {"path": "/incoming"},
            "notes": "dropped by compaction",
        },
        {
            "id": "email1",
            "name": "Send Email",
            "type": "n8n-nodes-base.emailSend",
            "typeVersion": 2,
            "position": [460, 300],
            "parameters": {"toEmail": "{{email}}", "text": "Hello {{name}}, from {{email}}"},
        },
    ],
    "connections": {
        "Webhook": {
            "main": [[{"node": "Send Email", "type": "main", "index": 0}]],
            "error": [[{"node": "Send Email", "type": "main", "index": 0}]],
        }
    },
    "settings": {"executionOrder": "v1"},
}


class OptimizeWorkflowTests(unittest.TestCase):
    def test_compaction_keeps_importer_fields_and_main_connections(self):
        nodes = compact_nodes(WORKFLOW["nodes"])
        self.assertNotIn("notes", nodes[0])
        self.assertEqual(list(nodes[0]), ["id", "name", "type", "typeVersion", "position", "parameters"])
        self.assertEqual(list(compact_connections(WORKFLOW["connections"])["Webhook"]), ["main"])

    def test_optimized_workflow_decodes_back(self):
        text = optimize_workflow(WORKFLOW)
        self.assertTrue(text.startswith("workflow{name,nodes,connections,settings}:"))

        restored = toon_to_workflow(text)
        self.assertEqual(restored["name"], "Webhook to Email")
        self.assertEqual(restored["nodes"], compact_nodes(WORKFLOW["nodes"]))
        self.assertEqual(restored["connections"], compact_connections(WORKFLOW["connections"]))
        self.assertEqual(restored["settings"], {"executionOrder": "v1"})

    def test_workflow_savings_reports_positive_numbers(self):
        savings = workflow_savings(WORKFLOW)
        self.assertGreater(savings.json_tokens, 0)
        self.assertGreater(savings.toon_tokens, 0)


class PromptAnalysisTests(unittest.TestCase):
    def test_trigger_intent_and_requirements(self):
        info = extract_workflow_info("When a webhook is received, send an email with error handling")
        self.assertEqual(info["intent"], "create_workflow_with_trigger")
        self.assertEqual(info["requirements"], ["error handling"])
        self.assertIn({"type": "service", "text": "webhook"}, info["entities"])

    def test_action_intent(self):
        info = extract_workflow_info("Send a slack message")
        self.assertEqual(info["intent"], "create_action_workflow")

    def test_general_intent(self):
        info = extract_workflow_info("Summarize the quarterly numbers")
        self.assertEqual(info["intent"], "general_workflow")
        self.assertEqual(info["entities"], [])

    def test_user_prompt_block_carries_the_request(self):
        text = optimize_user_prompt("Webhook to email", {"team": "ops"})
        self.assertTrue(text.startswith("workflow_request{prompt,intent,entities,requirements,context}:"))
        request = decode(text)["workflow_request"]
        self.assertEqual(request["prompt"], "Webhook to email")
        self.assertEqual(request["context"], {"team": "ops"})
        self.assertEqual(request["requirements"], [])


class TemplateTests(unittest.TestCase):
    def test_extract_variables_in_first_seen_order(self):
        self.assertEqual(extract_variables(WORKFLOW), ["email", "name"])

    def test_create_template(self):
        text = create_template(WORKFLOW, "webhook_mailer")
        template = decode(text)["template"]
        self.assertEqual(template["name"], "webhook_mailer")
        self.assertEqual(template["description"], "Webhook to Email")
        self.assertEqual(template["variables"], ["email", "name"])
        self.assertEqual(template["nodes"][1]["displayName"], "Send Email")


if __name__ == "__main__":
    unittest.main()
