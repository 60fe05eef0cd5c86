"""Tests for AccessFeed REST API."""

import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from receivers import WebhookReceiver

from accessfeed.api.app import register_exception_handlers
from accessfeed.api.auth import STREAM_SCOPE, TokenValidator, reset_auth_singletons
from accessfeed.api.middleware import RequestContextMiddleware
from accessfeed.api.router import router, set_service
from accessfeed.config import Settings
from accessfeed.scheduling import ManualScheduler
from accessfeed.service import AccessFeedService

SECRET_KEY = "k" * 32

WEBHOOK = {
    "name": "Ops channel",
    "url": "https://ops.example.com/hooks/doors",
    "events": ["door.offline", "door.online"],
}


@pytest.fixture
def receiver():
    return WebhookReceiver(200)


def build_app(settings: Settings, receiver: WebhookReceiver):
    """Bare app wired to a real service with a scripted HTTP client."""
    service = AccessFeedService.create(
        settings, scheduler=ManualScheduler(), http_client=receiver.client()
    )
    app = FastAPI()
    app.state.settings = settings
    app.add_middleware(RequestContextMiddleware)
    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1")
    set_service(service)
    return app, service


@pytest.fixture
def service_app(settings, receiver):
    app, service = build_app(settings, receiver)
    yield app, service
    set_service(None)


@pytest.fixture
def client(service_app):
    """Test client with auth disabled."""
    app, _ = service_app
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_settings():
    reset_auth_singletons()
    yield Settings(_env_file=None, env="test", auth_enabled=True, auth_secret_key=SECRET_KEY)
    reset_auth_singletons()


@pytest.fixture
def auth_client(auth_settings, receiver):
    """Test client with auth enabled."""
    app, _ = build_app(auth_settings, receiver)
    with TestClient(app) as test_client:
        yield test_client
    set_service(None)


def bearer(role: str = "admin") -> dict[str, str]:
    token = TokenValidator(SECRET_KEY).create_token("admin_1", role=role)
    return {"Authorization": f"Bearer {token}"}


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_when_service_initialized(self, client):
        """Should return healthy when service is ready."""
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["live_connections"] == 0
        assert "version" in data

    def test_health_when_service_not_initialized(self):
        """Should return unhealthy when service not ready."""
        app = FastAPI()
        app.include_router(router, prefix="/api/v1")
        set_service(None)

        response = TestClient(app).get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "unhealthy"

    def test_webhooks_unavailable_without_service(self):
        """Routes needing the service should return 503 before startup."""
        app = FastAPI()
        app.include_router(router, prefix="/api/v1")
        set_service(None)

        assert TestClient(app).get("/api/v1/webhooks").status_code == 503


class TestWebhookEndpoints:
    """Tests for webhook CRUD endpoints."""

    def test_create_webhook(self, client):
        """Should create a webhook and never return its secret."""
        response = client.post("/api/v1/webhooks", json=WEBHOOK)

        assert response.status_code == 201
        data = response.json()
        assert data["id"].startswith("whk_")
        assert data["events"] == ["door.offline", "door.online"]
        assert data["retry_attempts"] == 3
        assert "secret" not in data

    def test_create_records_event(self, client):
        """Creating a webhook should record a webhook.created event."""
        webhook_id = client.post("/api/v1/webhooks", json=WEBHOOK).json()["id"]

        events = client.get("/api/v1/events", params={"type": "webhook"}).json()["events"]

        assert [e["action"] for e in events] == ["created"]
        assert events[0]["entity_id"] == webhook_id
        assert events[0]["details"] == f"URL: {WEBHOOK['url']}"

    def test_create_invalid_url(self, client):
        """An ftp URL should be rejected with 400."""
        response = client.post(
            "/api/v1/webhooks", json={**WEBHOOK, "url": "ftp://ops.example.com/in"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["field"] == "url"

    def test_create_unknown_event(self, client):
        """Unknown event names should be rejected with 400."""
        response = client.post("/api/v1/webhooks", json={**WEBHOOK, "events": ["door.exploded"]})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "configuration_error"

    def test_create_duplicate_url(self, client):
        """A second active webhook on the same URL should get 409."""
        client.post("/api/v1/webhooks", json=WEBHOOK)

        response = client.post("/api/v1/webhooks", json={**WEBHOOK, "name": "Copy"})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "duplicate_webhook"

    def test_create_missing_fields(self, client):
        """A body without events should fail request validation."""
        response = client.post("/api/v1/webhooks", json={"name": "x", "url": WEBHOOK["url"]})

        assert response.status_code == 422

    def test_list_get_update_delete(self, client):
        """Full webhook lifecycle through the API."""
        webhook_id = client.post("/api/v1/webhooks", json=WEBHOOK).json()["id"]

        listed = client.get("/api/v1/webhooks").json()
        assert listed["count"] == 1

        assert client.get(f"/api/v1/webhooks/{webhook_id}").json()["name"] == "Ops channel"

        updated = client.put(
            f"/api/v1/webhooks/{webhook_id}", json={"active": False, "timeout_ms": 2000}
        ).json()
        assert updated["active"] is False
        assert updated["timeout_ms"] == 2000
        assert updated["url"] == WEBHOOK["url"]

        assert client.delete(f"/api/v1/webhooks/{webhook_id}").status_code == 204
        assert client.get(f"/api/v1/webhooks/{webhook_id}").status_code == 404

        actions = [e["action"] for e in client.get("/api/v1/events?type=webhook").json()["events"]]
        assert actions == ["deleted", "updated", "created"]

    def test_update_unknown_webhook(self, client):
        """Updating an unknown id should return 404."""
        response = client.put("/api/v1/webhooks/whk_missing", json={"name": "x"})

        assert response.status_code == 404
        assert response.json()["error"]["resource_id"] == "whk_missing"

    def test_available_events(self, client):
        """Should list subscribable events with keys and descriptions."""
        events = client.get("/api/v1/webhooks/events/available").json()["events"]

        door_offline = next(e for e in events if e["name"] == "door.offline")
        assert door_offline["key"] == "DOOR_OFFLINE"
        assert door_offline["description"] == "Triggered when a door goes offline"


class TestDeliveryEndpoints:
    """Tests for test deliveries and delivery history."""

    def test_send_test_webhook(self, client, receiver):
        """The test endpoint should deliver webhook.test and report it."""
        webhook_id = client.post("/api/v1/webhooks", json=WEBHOOK).json()["id"]

        response = client.post(f"/api/v1/webhooks/{webhook_id}/test")

        assert response.status_code == 200
        delivery = response.json()["delivery"]
        assert delivery["event"] == "webhook.test"
        assert delivery["status"] == "delivered"
        assert delivery["payload"]["webhookId"] == webhook_id
        assert receiver.requests[0].headers["X-Webhook-Event"] == "webhook.test"

    def test_send_test_failure_is_not_an_api_error(self, settings):
        """A failing endpoint should be reported in the body, not as an error status."""
        app, _ = build_app(settings, WebhookReceiver(500))
        with TestClient(app) as client:
            webhook_id = client.post("/api/v1/webhooks", json=WEBHOOK).json()["id"]

            response = client.post(f"/api/v1/webhooks/{webhook_id}/test")

        set_service(None)
        assert response.status_code == 200
        delivery = response.json()["delivery"]
        assert delivery["status"] == "retrying"
        assert delivery["error"]["status_code"] == 500

    def test_send_test_unknown_webhook(self, client):
        """Testing an unknown webhook should return 404."""
        assert client.post("/api/v1/webhooks/whk_missing/test").status_code == 404

    def test_delivery_history(self, client):
        """History should list deliveries newest first."""
        webhook_id = client.post("/api/v1/webhooks", json=WEBHOOK).json()["id"]
        first = client.post(f"/api/v1/webhooks/{webhook_id}/test").json()["delivery"]["id"]
        second = client.post(f"/api/v1/webhooks/{webhook_id}/test").json()["delivery"]["id"]

        data = client.get(f"/api/v1/webhooks/{webhook_id}/deliveries").json()

        assert data["count"] == 2
        assert [d["id"] for d in data["deliveries"]] == [second, first]
        limited = client.get(f"/api/v1/webhooks/{webhook_id}/deliveries?limit=1").json()
        assert limited["count"] == 1

    def test_delivery_history_unknown_webhook(self, client):
        """History for an unknown webhook should return 404."""
        assert client.get("/api/v1/webhooks/whk_missing/deliveries").status_code == 404


class TestEventEndpoints:
    """Tests for event listing and the live feed helpers."""

    def test_get_event(self, client):
        """A recorded event should be retrievable by id."""
        client.post("/api/v1/webhooks", json=WEBHOOK)
        [event] = client.get("/api/v1/events").json()["events"]

        response = client.get(f"/api/v1/events/{event['id']}")

        assert response.status_code == 200
        assert response.json()["type"] == "webhook"

    def test_get_unknown_event(self, client):
        """An unknown event id should return 404."""
        assert client.get("/api/v1/events/evt_missing").status_code == 404

    def test_test_broadcast(self, client, service_app):
        """The test broadcast should reach live channels without being recorded."""
        from accessfeed.broadcast import QueueChannel

        _, service = service_app
        channel = service.hub.open(QueueChannel("watcher"))

        response = client.post("/api/v1/events/test-broadcast")

        assert response.status_code == 200
        data = response.json()
        assert data["connections"] == 1
        assert data["event"]["action"] == "broadcast_test"
        assert channel.pending == 1
        assert client.get("/api/v1/events").json()["count"] == 0

    def test_connections(self, client, service_app):
        """Open live connections should be listed."""
        from accessfeed.broadcast import QueueChannel

        _, service = service_app
        channel = service.hub.open(QueueChannel("watcher"))

        data = client.get("/api/v1/events/connections").json()

        assert data["count"] == 1
        assert data["connections"][0]["id"] == channel.id
        assert data["connections"][0]["subscriber_id"] == "watcher"

    def test_stream_token(self, client):
        """A stream token should be issued with its lifetime."""
        data = client.post("/api/v1/events/stream-token").json()

        assert data["token"].startswith("local:admin:")
        assert data["expires_in"] == 300
        assert data["stream_url"] == "/api/v1/events/stream"


class TestAuthentication:
    """Tests for admin authentication when enabled."""

    def test_missing_credentials(self, auth_client):
        """Admin routes should reject anonymous requests."""
        response = auth_client.get("/api/v1/webhooks")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token(self, auth_client):
        """A malformed token should be rejected."""
        response = auth_client.get(
            "/api/v1/webhooks", headers={"Authorization": "Bearer not-a-token"}
        )

        assert response.status_code == 401

    def test_non_admin_forbidden(self, auth_client):
        """A valid token without the admin role should get 403."""
        response = auth_client.get("/api/v1/webhooks", headers=bearer(role="viewer"))

        assert response.status_code == 403

    def test_admin_allowed(self, auth_client):
        """An admin token should be accepted and attributed on events."""
        headers = bearer()
        created = auth_client.post("/api/v1/webhooks", json=WEBHOOK, headers=headers)
        assert created.status_code == 201

        [event] = auth_client.get("/api/v1/events", headers=headers).json()["events"]
        assert event["user_id"] == "admin_1"

    def test_health_is_public(self, auth_client):
        """Health checks need no credentials."""
        assert auth_client.get("/api/v1/health").status_code == 200

    def test_stream_requires_token(self, auth_client):
        """Opening the live stream without a token should get 401."""
        assert auth_client.get("/api/v1/events/stream").status_code == 401

    def test_stream_rejects_bad_token(self, auth_client):
        """A forged stream token should get 401."""
        response = auth_client.get("/api/v1/events/stream", params={"token": "a:admin:1:bad"})

        assert response.status_code == 401

    def test_stream_token_for_admin(self, auth_client):
        """Stream tokens should be issued to the authenticated admin."""
        data = auth_client.post("/api/v1/events/stream-token", headers=bearer()).json()

        user = TokenValidator(SECRET_KEY).validate_token(data["token"], scope=STREAM_SCOPE)
        assert user.user_id == "admin_1"

    def test_stream_rejects_api_token(self, auth_client):
        """A long-lived API token should not open the live stream."""
        api_token = TokenValidator(SECRET_KEY).create_token("admin_1")

        response = auth_client.get("/api/v1/events/stream", params={"token": api_token})

        assert response.status_code == 401
        assert "stream" in response.json()["error"]["message"]

    def test_stream_token_rejected_as_bearer(self, auth_client):
        """A stream token should not grant access to admin routes."""
        stream_token = auth_client.post(
            "/api/v1/events/stream-token", headers=bearer()
        ).json()["token"]

        response = auth_client.get(
            "/api/v1/webhooks", headers={"Authorization": f"Bearer {stream_token}"}
        )

        assert response.status_code == 401

    def test_auth_failure_log_omits_query(self, auth_client, caplog):
        """Logged paths should not include the stream token."""
        with caplog.at_level(logging.WARNING):
            auth_client.get("/api/v1/events/stream", params={"token": "leaky-token"})

        assert "/api/v1/events/stream" in caplog.text
        assert "leaky-token" not in caplog.text


class TestRequestContext:
    """Tests for the per-request log context."""

    def test_request_id_generated(self, client):
        """Responses should carry a generated request id."""
        response = client.get("/api/v1/health")

        assert response.headers["X-Request-ID"].startswith("req_")

    def test_request_id_echoed(self, client):
        """A caller-supplied request id should be echoed back."""
        response = client.get("/api/v1/health", headers={"X-Request-ID": "trace-42"})

        assert response.headers["X-Request-ID"] == "trace-42"

    def test_request_id_on_log_lines(self, client, caplog):
        """Log lines written while handling a request should carry its id."""
        with caplog.at_level(logging.INFO):
            client.get("/api/v1/webhooks/whk_missing", headers={"X-Request-ID": "trace-7"})

        assert "trace-7" in caplog.text
