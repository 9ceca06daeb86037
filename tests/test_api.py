import shutil
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from sidekick import main
from sidekick.config import Settings, get_settings
from sidekick.workflow.pipeline import GenerationResult
from sidekick.workflow.schema import WorkflowGraph
from sidekick.workflow.store import WorkflowStore

WEBHOOK_TO_EMAIL = {
    "name": "Webhook to Email",
    "nodes": [
        {"id": "webhook1", "name": "Webhook", "type": "ns.webhook", "typeVersion": 1, "position": [240, 300]},
        {"id": "email1", "name": "Send Email", "type": "ns.emailSend", "typeVersion": 1, "position": [460, 300]},
    ],
    "connections": {"Webhook": {"main": [[{"node": "Send Email", "type": "main", "index": 0}]]}},
}


class ApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp_dir = Path(tempfile.mkdtemp(prefix="sidekick-api-"))
        self.settings = Settings(_env_file=None, workflows_dir=self.tmp_dir, openrouter_api_key="k")
        main.app.dependency_overrides[get_settings] = lambda: self.settings
        self.client = TestClient(main.app)

    def tearDown(self) -> None:
        main.app.dependency_overrides.clear()
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_validate_endpoint(self):
        response = self.client.post("/api/workflows/validate", json={"workflow": WEBHOOK_TO_EMAIL})
        body = response.json()
        self.assertTrue(body["is_valid"])
        self.assertEqual(body["node_count"], 2)
        self.assertIn("# Validation Report", body["markdown"])

        response = self.client.post(
            "/api/workflows/validate", json={"workflow": WEBHOOK_TO_EMAIL, "namespaces": ["n8n-nodes-base"]}
        )
        self.assertEqual(len(response.json()["errors"]), 2)

    def test_toon_encode_and_decode(self):
        response = self.client.post("/api/toon/encode", json={"value": {"a": 1, "b": "x, y"}, "root_name": "obj"})
        self.assertEqual(response.status_code, 200)
        toon = response.json()["toon"]
        self.assertEqual(toon, 'obj{a,b}:\n  1,"x, y"')

        response = self.client.post("/api/toon/decode", json={"text": toon})
        self.assertEqual(response.json()["value"], {"obj": {"a": 1, "b": "x, y"}})

        response = self.client.post("/api/toon/decode", json={"text": toon, "root_name": "obj"})
        self.assertEqual(response.json()["value"], {"a": 1, "b": "x, y"})

    def test_toon_errors(self):
        response = self.client.post("/api/toon/decode", json={"text": "items[1]:\n  1,foo"})
        self.assertEqual(response.status_code, 422)

        response = self.client.post("/api/toon/decode", json={"text": "a: 1", "root_name": "b"})
        self.assertEqual(response.status_code, 422)

        response = self.client.post("/api/toon/encode", json={"value": 1, "root_name": "bad name"})
        self.assertEqual(response.status_code, 422)

    def test_toon_savings(self):
        rows = [{"id": i, "name": f"row {i}"} for i in range(5)]
        response = self.client.post("/api/toon/savings", json={"value": rows, "root_name": "rows"})
        body = response.json()
        self.assertGreater(body["json_tokens"], body["toon_tokens"])

    def test_nodes_endpoint(self):
        self.assertEqual(len(self.client.get("/api/nodes").json()), 15)
        triggers = self.client.get("/api/nodes", params={"category": "triggers"}).json()
        self.assertEqual(len(triggers), 4)
        slack = self.client.get("/api/nodes", params={"q": "slack"}).json()
        self.assertIn("n8n-nodes-base.slack", [n["type"] for n in slack])
        self.assertEqual(self.client.get("/api/nodes", params={"category": "bogus"}).status_code, 400)

    def test_providers_endpoint(self):
        providers = {p["name"]: p for p in self.client.get("/api/providers").json()}
        self.assertEqual(set(providers), {"openrouter", "openai", "groq", "ollama", "google"})
        self.assertTrue(providers["openrouter"]["configured"])
        self.assertTrue(providers["ollama"]["configured"])
        self.assertFalse(providers["ollama"]["requires_credential"])

    def test_generate_endpoint(self):
        result = GenerationResult(success=True, workflow=WEBHOOK_TO_EMAIL, provider="openrouter", model="m")
        with patch.object(main, "generate_workflow", AsyncMock(return_value=result)) as mocked:
            response = self.client.post(
                "/api/workflows/generate", json={"description": "Webhook to email", "provider": "openrouter"}
            )

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["success"])
        args, kwargs = mocked.call_args
        self.assertEqual(args[0], "Webhook to email")
        self.assertIsNotNone(kwargs["validator"].catalog)

    def test_generate_rejects_empty_description(self):
        response = self.client.post("/api/workflows/generate", json={"description": ""})
        self.assertEqual(response.status_code, 422)

    def test_refine_streams_events(self):
        async def fake_refine(*args, **kwargs):
            yield {"type": "text", "content": "working"}
            yield {"type": "workflow", "content": WEBHOOK_TO_EMAIL}

        with patch.object(main, "refine_workflow", fake_refine):
            response = self.client.post("/api/workflows/refine", json={"description": "Webhook to email"})

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("text/event-stream"))
        self.assertIn('data: {"type": "text", "content": "working"}', response.text)
        self.assertIn('"type": "workflow"', response.text)

    def test_refine_rejects_unsafe_owner(self):
        response = self.client.post(
            "/api/workflows/refine",
            json={"description": "Webhook to email", "save": True, "owner": "alice@example.com"},
        )
        self.assertEqual(response.status_code, 422)

    def test_credential_check_endpoint(self):
        with patch.object(main, "check_credential", AsyncMock(return_value=True)) as mocked:
            response = self.client.post("/api/providers/openrouter/check", json={})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"provider": "openrouter", "valid": True})
        args, kwargs = mocked.call_args
        self.assertEqual(args, ("openrouter", "k"))
        self.assertIs(kwargs["settings"], self.settings)

        with patch.object(main, "check_credential", AsyncMock(return_value=False)) as mocked:
            response = self.client.post("/api/providers/openai/check", json={"credential": "sk-bad"})
        self.assertFalse(response.json()["valid"])
        self.assertEqual(mocked.call_args.args, ("openai", "sk-bad"))

        self.assertEqual(self.client.post("/api/providers/bogus/check", json={}).status_code, 404)

    def test_stored_workflows(self):
        store = WorkflowStore(self.tmp_dir)
        workflow_id = store.save_workflow(WorkflowGraph.model_validate(WEBHOOK_TO_EMAIL), {"owner": "alice"})

        listed = self.client.get("/api/workflows", params={"owner": "alice"}).json()
        self.assertEqual([w["id"] for w in listed], [workflow_id])

        fetched = self.client.get(f"/api/workflows/{workflow_id}", params={"owner": "alice"})
        self.assertEqual(fetched.json()["workflow"]["name"], "Webhook to Email")

        self.assertEqual(self.client.get(f"/api/workflows/{workflow_id}").status_code, 404)
        self.assertEqual(self.client.delete(f"/api/workflows/{workflow_id}", params={"owner": "alice"}).status_code, 200)
        self.assertEqual(self.client.delete(f"/api/workflows/{workflow_id}", params={"owner": "alice"}).status_code, 404)


if __name__ == "__main__":
    unittest.main()
