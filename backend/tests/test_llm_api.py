"""LLM API: model lookup, direct chat, session context store and config validation."""
import os
import tempfile
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from backend.app.api.deps import get_llm_service
from backend.app.config import default_model_catalog
from backend.app.core.llm_provider import LLMProviderError
from backend.app.core.llm_service import LLMService
from backend.app.db.migrate import apply_schema
from backend.app.models.llm import LLMConfig, LLMMessage, LLMMessageRole, LLMResponse


class RecordingProvider:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls = []

    async def chat(self, messages, options):
        self.calls.append((messages, options))
        if self.error is not None:
            raise self.error
        return LLMResponse(
            id="chat-1",
            model=options.model,
            created=0,
            message=LLMMessage(role=LLMMessageRole.ASSISTANT, content="Roll for initiative."),
        )

    async def list_models(self):
        return []

    async def aclose(self):
        return None


class LLMApiTestCase(unittest.TestCase):
    provider_error = None

    def setUp(self):
        self.tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
        self.tmp.close()
        self.db_path = self.tmp.name
        apply_schema(self.db_path)
        self.patcher = patch("backend.app.api.deps.DEFAULT_DB_PATH", self.db_path)
        self.patcher.start()
        self.provider = RecordingProvider(self.provider_error)
        self.llm = LLMService(
            LLMConfig(api_key="sk-secret", models=default_model_catalog()),
            provider_factory=lambda config, kind: self.provider,
        )
        from backend.main import app
        self.app = app
        self.app.dependency_overrides[get_llm_service] = lambda: self.llm
        self.client = TestClient(app)

    def tearDown(self):
        self.app.dependency_overrides.clear()
        self.patcher.stop()
        if os.path.exists(self.db_path):
            os.unlink(self.db_path)


class TestModelRoutes(LLMApiTestCase):
    def test_get_model_by_id(self):
        r = self.client.get("/llm/models/llama3")
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json()["data"]["provider"], "ollama")

    def test_unknown_model_is_404(self):
        r = self.client.get("/llm/models/gpt-9")
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.json()["error"]["code"], "MODEL_NOT_FOUND")


class TestChatRoute(LLMApiTestCase):
    def test_chat_adds_system_message_for_user(self):
        r = self.client.post(
            "/llm/chat",
            json={"messages": [{"role": "user", "content": "What happens next?"}], "options": {"temperature": 0.1}},
            headers={"X-User-Id": "gm-1"},
        )
        self.assertEqual(r.status_code, 200, r.text)
        data = r.json()["data"]
        self.assertEqual(data["message"]["content"], "Roll for initiative.")
        messages, options = self.provider.calls[0]
        self.assertEqual(messages[0].role, LLMMessageRole.SYSTEM)
        self.assertIn("gm-1", messages[0].content)
        self.assertEqual(options.temperature, 0.1)
        self.assertEqual(options.model, "gpt-4o")

    def test_chat_keeps_caller_system_message(self):
        body = {
            "messages": [
                {"role": "system", "content": "Be terse."},
                {"role": "user", "content": "Hi"},
            ]
        }
        r = self.client.post("/llm/chat", json=body, headers={"X-User-Id": "gm-1"})
        self.assertEqual(r.status_code, 200, r.text)
        messages, _ = self.provider.calls[0]
        self.assertEqual([m.content for m in messages], ["Be terse.", "Hi"])

    def test_chat_requires_messages(self):
        r = self.client.post("/llm/chat", json={"messages": []})
        self.assertEqual(r.status_code, 400)
        self.assertEqual(self.provider.calls, [])

    def test_chat_rejects_bad_options(self):
        r = self.client.post(
            "/llm/chat",
            json={"messages": [{"role": "user", "content": "Hi"}], "options": {"temperature": "hot"}},
        )
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"]["code"], "VALIDATION_ERROR")


class TestChatUpstreamFailure(LLMApiTestCase):
    provider_error = LLMProviderError("provider down")

    def test_provider_error_is_reported(self):
        r = self.client.post("/llm/chat", json={"messages": [{"role": "user", "content": "Hi"}]})
        self.assertEqual(r.status_code, 500)
        self.assertEqual(r.json()["error"]["code"], "LLM_PROVIDER_ERROR")


class TestContextRoutes(LLMApiTestCase):
    def test_save_get_replace_delete(self):
        r = self.client.get("/llm/context/s-1")
        self.assertEqual(r.status_code, 404)

        body = {"messages": [{"role": "user", "content": "We enter the crypt."}], "metadata": {"scene": 3}}
        r = self.client.post("/llm/context/s-1", json=body, headers={"X-User-Id": "gm-1"})
        self.assertEqual(r.status_code, 200, r.text)
        saved = r.json()["data"]
        self.assertEqual(saved["sessionId"], "s-1")
        self.assertEqual(saved["userId"], "gm-1")

        r = self.client.post("/llm/context/s-1", json={"messages": []}, headers={"X-User-Id": "gm-1"})
        self.assertEqual(r.status_code, 200, r.text)
        data = self.client.get("/llm/context/s-1").json()["data"]
        self.assertEqual(data["messages"], [])
        self.assertEqual(data["metadata"], {})

        r = self.client.delete("/llm/context/s-1")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(self.client.delete("/llm/context/s-1").status_code, 404)

    def test_save_requires_messages(self):
        r = self.client.post("/llm/context/s-2", json={"metadata": {}})
        self.assertEqual(r.status_code, 400)


class TestConfigValidation(LLMApiTestCase):
    def test_null_api_key_is_rejected(self):
        r = self.client.patch("/llm/config", json={"apiKey": None})
        self.assertEqual(r.status_code, 400, r.text)
        self.assertEqual(r.json()["error"]["code"], "VALIDATION_ERROR")
        self.assertEqual(self.llm.config.api_key, "sk-secret")


if __name__ == "__main__":
    unittest.main()
