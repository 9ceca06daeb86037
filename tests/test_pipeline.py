import copy
import json
import shutil
import sys
import tempfile
import unittest
from pathlib import Path

import httpx

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from sidekick.collaborators import CurrentUser
from sidekick.config import Settings
from sidekick.toon.optimizer import optimize_workflow
from sidekick.workflow.pipeline import generate_workflow, normalize_positions, refine_workflow
from sidekick.workflow.store import WorkflowStore
from sidekick.workflow.validator import GraphValidator

WEBHOOK_TO_EMAIL = {
    "name": "Webhook to Email",
    "nodes": [
        {"id": "webhook1", "name": "Webhook", "type": "ns.webhook", "typeVersion": 1, "position": [240, 300]},
        {"id": "email1", "name": "Send Email", "type": "ns.emailSend", "typeVersion": 1, "position": [460, 300]},
    ],
    "connections": {"Webhook": {"main": [[{"node": "Send Email", "type": "main", "index": 0}]]}},
}


def _settings(**overrides) -> Settings:
    values = {"openrouter_api_key": "test-key", "retry_backoff_seconds": 0.5}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _chat_response(content: str, status: int = 200) -> httpx.Response:
    return httpx.Response(
        status,
        json={
            "choices": [{"message": {"content": content}}],
            "usage": {"prompt_tokens": 10, "completion_tokens": 20},
        },
    )


class _RecordingTransport:
    """Serves queued responses and records request bodies."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


class GenerateWorkflowTests(unittest.IsolatedAsyncioTestCase):
    async def test_webhook_to_email_end_to_end(self):
        transport = _RecordingTransport(_chat_response(json.dumps(WEBHOOK_TO_EMAIL)))
        async with transport.client() as client:
            result = await generate_workflow(
                "Webhook to email",
                "openrouter",
                "key-123",
                settings=_settings(),
                http_client=client,
                validator=GraphValidator(),
            )

        self.assertTrue(result.success, result.error)
        self.assertEqual(result.provider, "openrouter")
        self.assertEqual(result.model, "openai/gpt-4o-mini")
        self.assertEqual(result.usage, {"prompt_tokens": 10, "completion_tokens": 20})
        self.assertTrue(result.validation.is_valid)
        self.assertEqual(result.validation.node_count, 2)
        self.assertTrue(result.validation.has_connections)

        request = transport.requests[0]
        self.assertEqual(request.headers["Authorization"], "Bearer key-123")
        self.assertIn("Webhook to email", transport.body()["messages"][1]["content"])

    async def test_configured_credential_is_used_when_none_given(self):
        transport = _RecordingTransport(_chat_response(json.dumps(WEBHOOK_TO_EMAIL)))
        async with transport.client() as client:
            result = await generate_workflow("Webhook to email", "openrouter", settings=_settings(), http_client=client)
        self.assertTrue(result.success)
        self.assertIsNone(result.validation)
        self.assertEqual(transport.requests[0].headers["Authorization"], "Bearer test-key")

    async def test_non_2xx_is_a_provider_error(self):
        transport = _RecordingTransport(httpx.Response(503, text="upstream overloaded"))
        async with transport.client() as client:
            result = await generate_workflow("x", "openrouter", "k", settings=_settings(), http_client=client)

        self.assertFalse(result.success)
        self.assertEqual(result.error_type, "provider_error")
        self.assertEqual(result.status_code, 503)
        self.assertIn("upstream overloaded", result.error)

    async def test_completion_without_json_is_a_parse_error(self):
        transport = _RecordingTransport(_chat_response("I cannot help with that."))
        async with transport.client() as client:
            result = await generate_workflow("x", "openrouter", "k", settings=_settings(), http_client=client)
        self.assertFalse(result.success)
        self.assertEqual(result.error_type, "parse_error")

    async def test_object_without_nodes_is_rejected(self):
        transport = _RecordingTransport(_chat_response('{"name": "No nodes"}'))
        async with transport.client() as client:
            result = await generate_workflow("x", "openrouter", "k", settings=_settings(), http_client=client)
        self.assertFalse(result.success)
        self.assertEqual(result.error_type, "parse_error")

    async def test_unsupported_provider_makes_no_request(self):
        transport = _RecordingTransport(_chat_response("{}"))
        async with transport.client() as client:
            result = await generate_workflow("x", "carrier-pigeon", "k", settings=_settings(), http_client=client)
        self.assertFalse(result.success)
        self.assertEqual(result.error_type, "unsupported_provider")
        self.assertEqual(result.error, "Unsupported provider: carrier-pigeon")
        self.assertEqual(transport.requests, [])

    async def test_missing_credential(self):
        transport = _RecordingTransport(_chat_response("{}"))
        async with transport.client() as client:
            result = await generate_workflow(
                "x", "openrouter", settings=_settings(openrouter_api_key=None), http_client=client
            )
        self.assertEqual(result.error_type, "missing_credential")
        self.assertEqual(transport.requests, [])

    async def test_network_failure(self):
        transport = _RecordingTransport(httpx.ConnectError("connection refused"))
        async with transport.client() as client:
            result = await generate_workflow("x", "openrouter", "k", settings=_settings(), http_client=client)
        self.assertFalse(result.success)
        self.assertEqual(result.error_type, "network_error")

    async def test_positions_and_name_are_normalized(self):
        workflow = copy.deepcopy(WEBHOOK_TO_EMAIL)
        del workflow["name"]
        workflow["nodes"][0]["position"] = {"x": 10, "y": 20}
        transport = _RecordingTransport(_chat_response("```json\n" + json.dumps(workflow) + "\n```"))
        async with transport.client() as client:
            result = await generate_workflow("x", "openrouter", "k", settings=_settings(), http_client=client)

        self.assertTrue(result.success)
        self.assertEqual(result.workflow["name"], "Generated Workflow")
        self.assertEqual(result.workflow["nodes"][0]["position"], [10, 20])

    async def test_ollama_needs_no_credential(self):
        transport = _RecordingTransport(
            httpx.Response(200, json={"response": json.dumps(WEBHOOK_TO_EMAIL), "eval_count": 42})
        )
        async with transport.client() as client:
            result = await generate_workflow("Webhook to email", "ollama", settings=_settings(), http_client=client)

        self.assertTrue(result.success, result.error)
        self.assertEqual(result.model, "llama3.2")
        self.assertNotIn("Authorization", transport.requests[0].headers)
        self.assertIn("Webhook to email", transport.body()["prompt"])
        self.assertEqual(result.usage["completion_tokens"], 42)

    async def test_toon_prompt_and_toon_reply(self):
        transport = _RecordingTransport(_chat_response(optimize_workflow(WEBHOOK_TO_EMAIL)))
        async with transport.client() as client:
            result = await generate_workflow(
                "Webhook to email",
                "openrouter",
                "k",
                settings=_settings(),
                http_client=client,
                use_toon=True,
                validator=GraphValidator(),
            )

        self.assertIn("workflow_request{", transport.body()["messages"][1]["content"])
        self.assertTrue(result.success, result.error)
        self.assertEqual([n["name"] for n in result.workflow["nodes"]], ["Webhook", "Send Email"])
        self.assertTrue(result.validation.is_valid)


class NormalizePositionsTests(unittest.TestCase):
    def test_does_not_mutate_input(self):
        workflow = {"nodes": [{"position": {"x": 1, "y": 2}}, {"position": [3, 4]}, "junk"]}
        normalized = normalize_positions(workflow)
        self.assertEqual(normalized["nodes"][0]["position"], [1, 2])
        self.assertEqual(normalized["nodes"][1]["position"], [3, 4])
        self.assertEqual(workflow["nodes"][0]["position"], {"x": 1, "y": 2})


class _FakeAuth:
    def __init__(self, signed_in: bool, user_id: str = "alice"):
        self.signed_in = signed_in
        self.user_id = user_id

    def is_authenticated(self) -> bool:
        return self.signed_in

    def get_current_user(self) -> CurrentUser:
        return CurrentUser(id=self.user_id, email="alice@example.com")


class RefineWorkflowTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.tmp_dir = Path(tempfile.mkdtemp(prefix="sidekick-tests-"))
        self.store = WorkflowStore(self.tmp_dir)
        self.delays: list[float] = []

    async def asyncTearDown(self) -> None:
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    async def _sleep(self, delay: float) -> None:
        self.delays.append(delay)

    async def _collect(self, agen):
        return [event async for event in agen]

    async def test_invalid_workflow_is_sent_back_and_fixed(self):
        broken = copy.deepcopy(WEBHOOK_TO_EMAIL)
        broken["nodes"][1]["type"] = "unprefixed"
        transport = _RecordingTransport(
            _chat_response(json.dumps(broken)),
            _chat_response(json.dumps(WEBHOOK_TO_EMAIL)),
        )

        async with transport.client() as client:
            events = await self._collect(
                refine_workflow(
                    "Webhook to email",
                    "openrouter",
                    settings=_settings(),
                    http_client=client,
                    storage=self.store,
                    auth=_FakeAuth(signed_in=True),
                    sleep=self._sleep,
                )
            )

        reports = [e["content"] for e in events if e["type"] == "validation_report"]
        self.assertEqual([r["attempt"] for r in reports], [1, 2])
        self.assertFalse(reports[0]["report"]["is_valid"])
        self.assertTrue(reports[1]["report"]["is_valid"])
        self.assertEqual(self.delays, [0.5])

        correction = transport.body(1)["messages"][1]["content"]
        self.assertIn("failed validation", correction)
        self.assertIn("## Errors", correction)
        self.assertIn("Send Email", correction)

        saved = [e["content"] for e in events if e["type"] == "workflow_saved"]
        self.assertEqual(len(saved), 1)
        self.assertEqual(saved[0]["owner"], "alice")
        stored = self.store.load(saved[0]["workflow_id"], owner="alice")
        self.assertEqual(stored.workflow.name, "Webhook to Email")
        self.assertEqual(stored.metadata["attempts"], 2)

    async def test_transient_failures_retry_with_backoff(self):
        transport = _RecordingTransport(httpx.Response(500, text="oops"))
        async with transport.client() as client:
            events = await self._collect(
                refine_workflow("x", "openrouter", settings=_settings(), http_client=client, sleep=self._sleep)
            )

        self.assertEqual(len(transport.requests), 3)
        self.assertEqual(self.delays, [0.5, 1.0])
        self.assertEqual(len([e for e in events if e["type"] == "error"]), 3)
        self.assertFalse(any(e["type"] == "workflow_saved" for e in events))

    async def test_auth_failures_are_not_retried(self):
        transport = _RecordingTransport(httpx.Response(401, text="bad key"))
        async with transport.client() as client:
            await self._collect(
                refine_workflow("x", "openrouter", settings=_settings(), http_client=client, sleep=self._sleep)
            )
        self.assertEqual(len(transport.requests), 1)
        self.assertEqual(self.delays, [])

    async def test_signed_out_user_is_not_saved(self):
        transport = _RecordingTransport(_chat_response(json.dumps(WEBHOOK_TO_EMAIL)))
        async with transport.client() as client:
            events = await self._collect(
                refine_workflow(
                    "x",
                    "openrouter",
                    settings=_settings(),
                    http_client=client,
                    storage=self.store,
                    auth=_FakeAuth(signed_in=False),
                    sleep=self._sleep,
                )
            )

        self.assertFalse(any(e["type"] == "workflow_saved" for e in events))
        self.assertEqual(self.store.list_by_owner("alice"), [])
        self.assertEqual(events[-1]["type"], "text")

    async def test_unsaveable_owner_ends_with_error_event(self):
        transport = _RecordingTransport(_chat_response(json.dumps(WEBHOOK_TO_EMAIL)))
        async with transport.client() as client:
            events = await self._collect(
                refine_workflow(
                    "x",
                    "openrouter",
                    settings=_settings(),
                    http_client=client,
                    storage=self.store,
                    auth=_FakeAuth(signed_in=True, user_id="alice@example.com"),
                    sleep=self._sleep,
                )
            )

        self.assertEqual(
            [e["type"] for e in events],
            ["generation", "workflow", "validation_report", "error"],
        )
        self.assertIn("could not be saved", events[-1]["content"])
        self.assertEqual(list(self.tmp_dir.iterdir()), [])


if __name__ == "__main__":
    unittest.main()
