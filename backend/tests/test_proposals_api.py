"""Proposal API tests: envelopes, author header, review/apply flow, generation, filters."""
import json
import os
import tempfile
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from backend.app.api.deps import get_llm_service
from backend.app.config import default_model_catalog
from backend.app.core.llm_service import LLMService
from backend.app.db.connection import get_connection
from backend.app.db.migrate import apply_schema
from backend.app.models.llm import LLMConfig, LLMMessage, LLMMessageRole, LLMResponse

GENERATED = json.dumps(
    {
        "type": "create",
        "title": "Harbor district",
        "description": "A new location",
        "reason": "The party arrives by sea",
        "changes": [{"field": "name", "newValue": "Saltreach Harbor"}],
    }
)


class StaticProvider:
    def __init__(self, content: str):
        self.content = content
        self.calls = 0

    async def chat(self, messages, options):
        self.calls += 1
        return LLMResponse(
            id="resp",
            model=options.model,
            created=0,
            message=LLMMessage(role=LLMMessageRole.ASSISTANT, content=self.content),
        )

    async def list_models(self):
        return []

    async def aclose(self):
        return None


class ProposalApiTestCase(unittest.TestCase):
    provider_content = GENERATED

    def setUp(self):
        self.tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
        self.tmp.close()
        self.db_path = self.tmp.name
        apply_schema(self.db_path)
        self.patcher = patch("backend.app.api.deps.DEFAULT_DB_PATH", self.db_path)
        self.patcher.start()

        self.provider = StaticProvider(self.provider_content)
        self.llm = LLMService(
            LLMConfig(models=default_model_catalog(), cache_enabled=False),
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

    def post(self, path, body=None, user="gm"):
        headers = {"X-User-Id": user} if user else {}
        return self.client.post(path, json=body if body is not None else {}, headers=headers)

    def create_proposal(self, **overrides):
        body = {
            "type": "update",
            "entityType": "character",
            "entityId": "char-1",
            "title": "Braver hero",
            "changes": [{"field": "courage", "oldValue": 3, "newValue": 7}],
        }
        body.update(overrides)
        r = self.post("/proposals", body)
        self.assertEqual(r.status_code, 201, r.text)
        return r.json()["data"]

    def seed_entity(self, kind, entity_id, **data):
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT INTO entities (id, kind, data_json, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (entity_id, kind, json.dumps(data), "2024-01-01T00:00:00.000000+00:00",
                 "2024-01-01T00:00:00.000000+00:00"),
            )
            conn.commit()
        finally:
            conn.close()

    def load_entity(self, entity_id):
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("SELECT data_json FROM entities WHERE id=?", (entity_id,)).fetchone()
            return json.loads(row["data_json"]) if row else None
        finally:
            conn.close()


class TestProposalCrud(ProposalApiTestCase):
    def test_create_returns_pending_proposal_in_camel_case(self):
        data = self.create_proposal(status="approved")
        self.assertEqual(data["status"], "pending")
        self.assertEqual(data["createdBy"], "gm")
        self.assertEqual(data["entityType"], "character")
        self.assertEqual(data["changes"][0]["newValue"], 7)
        self.assertIsNone(data["reviewedBy"])

    def test_create_without_user_header_is_401(self):
        r = self.post("/proposals", {"type": "update", "entityType": "character"}, user=None)
        self.assertEqual(r.status_code, 401)
        body = r.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error"]["code"], "AUTHOR_REQUIRED")

    def test_create_missing_type_is_400(self):
        r = self.post("/proposals", {"entityType": "character"})
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"]["code"], "MISSING_REQUIRED_FIELDS")

    def test_create_with_unknown_entity_type_is_400(self):
        r = self.post("/proposals", {"type": "update", "entityType": "spaceship"})
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"]["code"], "VALIDATION_ERROR")

    def test_get_missing_is_404(self):
        r = self.client.get("/proposals/does-not-exist")
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.json()["error"]["code"], "PROPOSAL_NOT_FOUND")

    def test_patch_updates_fields(self):
        created = self.create_proposal()
        r = self.client.patch(f"/proposals/{created['id']}", json={"title": "Bolder hero"})
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json()["data"]["title"], "Bolder hero")
        self.assertEqual(r.json()["data"]["status"], "pending")

    def test_patch_cannot_change_status(self):
        created = self.create_proposal()
        r = self.client.patch(f"/proposals/{created['id']}", json={"status": "approved"})
        self.assertEqual(r.status_code, 400)
        self.assertEqual(self.client.get(f"/proposals/{created['id']}").json()["data"]["status"], "pending")

    def test_delete(self):
        created = self.create_proposal()
        r = self.client.delete(f"/proposals/{created['id']}")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["data"], {"id": created["id"], "deleted": True})
        self.assertEqual(self.client.get(f"/proposals/{created['id']}").status_code, 404)

    def test_list_filters(self):
        self.create_proposal(title="Dragon lair", entityType="location", entityId="loc-1")
        keep = self.create_proposal(title="Knight")
        self.post(f"/proposals/{keep['id']}/review", {"status": "approved"})

        r = self.client.get("/proposals", params={"status": "approved"})
        self.assertEqual([p["title"] for p in r.json()["data"]], ["Knight"])
        r = self.client.get("/proposals", params=[("entityType", "location"), ("entityType", "item")])
        self.assertEqual([p["title"] for p in r.json()["data"]], ["Dragon lair"])
        r = self.client.get("/proposals", params={"search": "DRAGON"})
        self.assertEqual(len(r.json()["data"]), 1)
        r = self.client.get("/proposals")
        self.assertEqual([p["title"] for p in r.json()["data"]], ["Knight", "Dragon lair"])


class TestReviewAndComments(ProposalApiTestCase):
    def test_review_then_comment(self):
        created = self.create_proposal()
        r = self.post(f"/proposals/{created['id']}/review", {"status": "modified", "comment": "Tone it down"}, user="alice")
        self.assertEqual(r.status_code, 200, r.text)
        data = r.json()["data"]
        self.assertEqual(data["status"], "modified")
        self.assertEqual(data["reviewedBy"], "alice")
        self.assertEqual(data["comments"][0]["content"], "Tone it down")

        r = self.post(f"/proposals/{created['id']}/comments", {"content": "Done"}, user="gm")
        self.assertEqual(r.status_code, 201, r.text)
        self.assertEqual([c["content"] for c in r.json()["data"]["comments"]], ["Tone it down", "Done"])

    def test_review_back_to_pending_is_400(self):
        created = self.create_proposal()
        r = self.post(f"/proposals/{created['id']}/review", {"status": "pending"})
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"]["code"], "INVALID_STATUS_TRANSITION")

    def test_review_without_user_is_401(self):
        created = self.create_proposal()
        r = self.post(f"/proposals/{created['id']}/review", {"status": "approved"}, user=None)
        self.assertEqual(r.status_code, 401)

    def test_empty_comment_is_400(self):
        created = self.create_proposal()
        r = self.post(f"/proposals/{created['id']}/comments", {"content": "  "})
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"]["code"], "COMMENT_CONTENT_REQUIRED")


class TestApply(ProposalApiTestCase):
    def test_apply_unapproved_is_400(self):
        created = self.create_proposal()
        r = self.post(f"/proposals/{created['id']}/apply")
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"]["code"], "PROPOSAL_NOT_APPROVED")

    def test_apply_update_writes_entity(self):
        self.seed_entity("character", "char-1", name="Mira", courage=3)
        created = self.create_proposal()
        self.post(f"/proposals/{created['id']}/review", {"status": "approved"}, user="alice")
        r = self.post(f"/proposals/{created['id']}/apply", user="alice")
        self.assertEqual(r.status_code, 200, r.text)
        result = r.json()["data"]
        self.assertTrue(result["success"])
        self.assertEqual(result["entityId"], "char-1")
        self.assertEqual(self.load_entity("char-1"), {"name": "Mira", "courage": 7})

        proposal = self.client.get(f"/proposals/{created['id']}").json()["data"]
        self.assertEqual(proposal["comments"][-1]["content"], "Changes applied successfully")

    def test_apply_update_of_missing_entity_is_404(self):
        created = self.create_proposal(entityId="ghost")
        self.post(f"/proposals/{created['id']}/review", {"status": "approved"})
        r = self.post(f"/proposals/{created['id']}/apply")
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.json()["error"]["code"], "ENTITY_NOT_FOUND")

    def test_apply_delete_of_missing_entity_is_apply_failed(self):
        created = self.create_proposal(type="delete", entityId="ghost", changes=[])
        self.post(f"/proposals/{created['id']}/review", {"status": "approved"})
        r = self.post(f"/proposals/{created['id']}/apply")
        self.assertEqual(r.status_code, 400)
        error = r.json()["error"]
        self.assertEqual(error["code"], "APPLY_FAILED")
        self.assertFalse(error["details"]["success"])

    def test_relate_partial_failure_reports_each_edge(self):
        self.seed_entity("character", "char-1", name="Mira")
        self.seed_entity("location", "loc-1", name="Harbor")
        edges = [
            {"sourceId": "char-1", "sourceType": "character", "targetId": "loc-1",
             "targetType": "location", "relationshipType": "LIVES_IN"},
            {"sourceId": "char-1", "sourceType": "character", "targetId": "nowhere",
             "targetType": "location", "relationshipType": "VISITED"},
        ]
        created = self.create_proposal(
            type="relate", entityType="relationship", entityId=None, changes=[], relationshipChanges=edges
        )
        self.post(f"/proposals/{created['id']}/review", {"status": "approved"})
        r = self.post(f"/proposals/{created['id']}/apply")
        self.assertEqual(r.status_code, 400)
        results = r.json()["error"]["details"]["details"]["results"]
        self.assertEqual([x["success"] for x in results], [True, False])


class TestGenerate(ProposalApiTestCase):
    def test_generate_persists_pending_proposal(self):
        r = self.post("/proposals/generate", {"entityType": "location"})
        self.assertEqual(r.status_code, 201, r.text)
        data = r.json()["data"]
        self.assertEqual(data["status"], "pending")
        self.assertEqual(data["title"], "Harbor district")
        self.assertEqual(data["llmModel"], "gpt-4o")
        self.assertEqual(self.provider.calls, 1)
        listed = self.client.get("/proposals").json()["data"]
        self.assertEqual([p["id"] for p in listed], [data["id"]])

    def test_generate_with_unknown_template_is_404(self):
        r = self.post("/proposals/generate", {"entityType": "location", "promptId": "nope"})
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.json()["error"]["code"], "TEMPLATE_NOT_FOUND")
        self.assertEqual(self.provider.calls, 0)

    def test_generate_without_user_is_401(self):
        r = self.post("/proposals/generate", {"entityType": "location"}, user=None)
        self.assertEqual(r.status_code, 401)


class TestGenerateFallback(ProposalApiTestCase):
    provider_content = "I would rather describe it in prose."

    def test_unparsable_output_becomes_fallback_proposal(self):
        r = self.post("/proposals/generate", {"entityType": "character"})
        self.assertEqual(r.status_code, 201, r.text)
        data = r.json()["data"]
        self.assertEqual(data["title"], "Failed to Parse Proposal")
        self.assertIn("I would rather describe it in prose.", data["comments"][0]["content"])
        self.assertIn("parseError", data["metadata"])


class TestHealth(ProposalApiTestCase):
    def test_health_envelope(self):
        r = self.client.get("/health")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["data"]["status"], "healthy")


if __name__ == "__main__":
    unittest.main()
