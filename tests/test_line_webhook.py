from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.routers.webhook import get_orchestrator
from app.schemas.line import LineEvent, LineSource, LineWebhookRequest


@pytest.fixture
def orchestrator():
    fake = Mock()
    fake.handle_batch = AsyncMock(return_value=[])
    return fake


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestLineSchemas:
    def test_event_kinds(self, make_event):
        assert LineEvent.model_validate(make_event(text="hi")).is_text is True
        assert LineEvent.model_validate(make_event(image_id="img-1")).is_image is True

    def test_unknown_fields_are_ignored(self):
        source = LineSource.model_validate({"type": "group", "groupId": "C1", "extra": 1})
        assert source.groupId == "C1"

    def test_request_defaults_to_no_events(self):
        assert LineWebhookRequest.model_validate({"destination": "U0"}).events == []


class TestWebhookEndpoint:
    def test_accepts_batch_and_processes_in_background(self, client, orchestrator, make_event):
        events = [make_event(text="hello"), make_event(image_id="img-1")]

        response = client.post("/webhook", json={"destination": "U0", "events": events})

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Accepted", "events": 2}
        orchestrator.handle_batch.assert_awaited_once_with(events)

    def test_callback_alias(self, client, orchestrator, make_event):
        response = client.post("/callback", json={"events": [make_event(text="hello")]})

        assert response.status_code == 200
        assert response.json()["success"] is True
        orchestrator.handle_batch.assert_awaited_once()

    def test_verify_request_without_events(self, client, orchestrator):
        response = client.post("/webhook", json={"destination": "U0", "events": []})

        assert response.status_code == 200
        assert response.json()["message"] == "No events"
        orchestrator.handle_batch.assert_not_awaited()

    def test_empty_body(self, client, orchestrator):
        response = client.post("/webhook", content=b"")

        assert response.status_code == 200
        assert response.json()["success"] is True
        orchestrator.handle_batch.assert_not_awaited()

    def test_invalid_json_still_answers_200(self, client, orchestrator):
        response = client.post("/webhook", content=b"{not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 200
        assert response.json() == {"success": False, "message": "Invalid JSON payload", "events": 0}
        orchestrator.handle_batch.assert_not_awaited()

    def test_non_object_payload(self, client):
        response = client.post("/webhook", json=[1, 2, 3])

        assert response.status_code == 200
        assert response.json()["message"] == "Invalid payload format"

    def test_invalid_events_field(self, client, orchestrator):
        response = client.post("/webhook", json={"events": "not-a-list"})

        assert response.status_code == 200
        assert response.json()["message"] == "Invalid webhook payload"
        orchestrator.handle_batch.assert_not_awaited()


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_health_config_reports_presence_only(self, client):
        body = client.get("/health/config").json()

        assert set(body["configured"]) == {"line", "openai", "vision", "payment", "alerts"}
        assert all(isinstance(value, bool) for value in body["configured"].values())
        assert body["triggers"]
