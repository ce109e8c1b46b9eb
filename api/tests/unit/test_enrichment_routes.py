"""
Unit tests for the enrichment HTTP and WebSocket routes.

The enrichment service is mocked; the application is built without running
its startup hook so no database or LLM provider is touched.
"""

import pytest
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from api.config import APISettings, EnvironmentType
from api.main import create_application
from api.routes.websocket import NOTHING_QUEUED_MESSAGE
from api.websocket.registry import WebSocketConnectionRegistry
from src.email_processing.errors import EmailNotFoundError, LLMError
from src.email_processing.service import EnrichmentService

STATUS = {
    "queue_length": 3,
    "is_processing": True,
    "rate_limit": {
        "current_token_usage": 1200,
        "time_since_reset": 12.5,
        "tokens_per_minute": 40000,
        "remaining_tokens": 38800,
    },
}


@pytest.fixture
def settings():
    return APISettings(ENVIRONMENT=EnvironmentType.TESTING)


@pytest.fixture
def service():
    mock = MagicMock(spec=EnrichmentService)
    mock.status.return_value = STATUS
    mock.add_to_queue.return_value = 2
    mock.enrich_by_ids.return_value = 1
    mock.force_reenrich.return_value = 1
    mock.retry_enrichment.return_value = 1
    return mock


@pytest.fixture
def registry():
    return WebSocketConnectionRegistry()


@pytest.fixture
def client(service, registry, settings):
    return TestClient(create_application(service, registry, settings))


class TestEnrichEmails:
    """POST /enrichment/emails"""

    def test_raw_emails_are_queued(self, client, service):
        emails = [{"id": "a", "mailboxAddress": "owner@example.com", "ownerUserId": "user-1"}]

        response = client.post("/enrichment/emails", json={"emails": emails})

        assert response.status_code == 202
        assert response.json() == {"status": "accepted", "queued": 2, "queueLength": 3}
        service.add_to_queue.assert_awaited_once_with(emails, False)

    def test_stored_emails_by_id(self, client, service):
        response = client.post("/enrichment/emails", json={
            "ownerUserId": "user-1",
            "mailboxAddress": "owner@example.com",
            "messageIds": ["a", "b"],
        })

        assert response.status_code == 202
        service.enrich_by_ids.assert_awaited_once_with("user-1", "owner@example.com", ["a", "b"])

    def test_forced_reprocess_by_id(self, client, service):
        response = client.post("/enrichment/emails", json={
            "mailboxAddress": "owner@example.com",
            "messageIds": ["a"],
            "forceReprocess": True,
        })

        assert response.status_code == 202
        service.force_reenrich.assert_awaited_once_with("owner@example.com", ["a"])

    def test_ids_without_mailbox_rejected(self, client, service):
        response = client.post("/enrichment/emails", json={"ownerUserId": "user-1", "messageIds": ["a"]})

        assert response.status_code == 400
        assert response.json()["error_code"] == "HTTP_400"
        service.enrich_by_ids.assert_not_awaited()

    def test_ids_without_owner_rejected(self, client):
        response = client.post("/enrichment/emails", json={
            "mailboxAddress": "owner@example.com",
            "messageIds": ["a"],
        })

        assert response.status_code == 400

    def test_empty_request_rejected(self, client):
        response = client.post("/enrichment/emails", json={})

        assert response.status_code == 400
        assert "messageIds" in response.json()["message"]

    def test_invalid_body_is_a_validation_error(self, client):
        response = client.post("/enrichment/emails", json={"emails": "not-a-list"})

        assert response.status_code == 422
        body = response.json()
        assert body["error_code"] == "VALIDATION_ERROR"
        assert body["validation_errors"]


class TestRetryAndStatus:
    """Retry and status endpoints."""

    def test_retry_enrichment(self, client, service):
        response = client.post("/enrichment/emails/owner@example.com/msg-1/retry")

        assert response.status_code == 202
        assert response.json()["queued"] == 1
        service.retry_enrichment.assert_awaited_once_with("owner@example.com", "msg-1")

    def test_retry_unknown_email_is_404(self, client, service):
        service.retry_enrichment.side_effect = EmailNotFoundError("owner@example.com", "missing")

        response = client.post("/enrichment/emails/owner@example.com/missing/retry")

        assert response.status_code == 404
        body = response.json()
        assert body["error_code"] == "EMAIL_NOT_FOUND"
        assert body["details"] == {"mailbox_address": "owner@example.com", "message_id": "missing"}

    def test_llm_error_is_502(self, client, service):
        service.retry_enrichment.side_effect = LLMError(529, "overloaded")

        response = client.post("/enrichment/emails/owner@example.com/msg-1/retry")

        assert response.status_code == 502
        assert response.json()["details"] == {"upstream_status": 529}

    def test_status(self, client):
        response = client.get("/enrichment/status")

        assert response.status_code == 200
        body = response.json()
        assert body["queueLength"] == 3
        assert body["isProcessing"] is True
        assert body["rateLimit"]["remainingTokens"] == 38800

    def test_service_not_initialized(self, registry, settings):
        client = TestClient(create_application(None, registry, settings))

        response = client.get("/enrichment/status")

        assert response.status_code == 503

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["enrichment"]["queue_length"] == 3
        assert body["connections"] == {"total_users": 0, "total_connections": 0}


class TestWebSocket:
    """/ws/{user_id} client events."""

    def test_enrich_emails_event(self, client, service, registry):
        service.enrich_by_ids.return_value = 0

        with client.websocket_connect("/ws/user-1") as websocket:
            websocket.send_json({
                "event": "mail:enrichEmails",
                "data": {"email": "owner@example.com", "messageIds": ["a", "b"]},
            })
            message = websocket.receive_json()

            assert registry.is_connected("user-1")

        assert message == {
            "event": "mail:enrichmentStatus",
            "data": {"status": "completed", "message": NOTHING_QUEUED_MESSAGE},
        }
        service.enrich_by_ids.assert_awaited_once_with("user-1", "owner@example.com", ["a", "b"])

    def test_retry_of_unknown_message(self, client, service):
        service.retry_enrichment.side_effect = EmailNotFoundError("owner@example.com", "missing")

        with client.websocket_connect("/ws/user-1") as websocket:
            websocket.send_json({
                "event": "mail:retryEnrichment",
                "data": {"email": "owner@example.com", "messageId": "missing"},
            })
            message = websocket.receive_json()

        assert message == {"event": "mail:error", "data": "Message not found"}

    def test_invalid_request_data(self, client, service):
        with client.websocket_connect("/ws/user-1") as websocket:
            websocket.send_json({"event": "mail:enrichEmails", "data": {"messageIds": ["a"]}})
            message = websocket.receive_json()

        assert message == {"event": "mail:error", "data": "Invalid enrichment request"}
        service.enrich_by_ids.assert_not_awaited()

    def test_unknown_event(self, client):
        with client.websocket_connect("/ws/user-1") as websocket:
            websocket.send_json({"event": "mail:deleteEverything", "data": {}})
            message = websocket.receive_json()

        assert message == {"event": "mail:error", "data": "Unknown event: mail:deleteEverything"}

    def test_queued_request_sends_nothing_back(self, client, service):
        service.enrich_by_ids.return_value = 2

        with client.websocket_connect("/ws/user-1") as websocket:
            websocket.send_json({
                "event": "mail:enrichEmails",
                "data": {"email": "owner@example.com", "messageIds": ["a", "b"]},
            })
            # The next reply belongs to the second message
            websocket.send_json({"event": "ping"})
            message = websocket.receive_json()

        assert message["data"] == "Unknown event: ping"
        service.enrich_by_ids.assert_awaited_once()
