"""Tests for the WhatsApp webhook endpoints."""

import json

import pytest

from glintup.config import Settings, get_settings
from glintup.core.security import sign_webhook_payload
from glintup.main import app

pytestmark = pytest.mark.asyncio

STATUS_BODY = {
    "object": "whatsapp_business_account",
    "entry": [
        {
            "id": "1",
            "changes": [
                {"field": "messages", "value": {"statuses": [{"id": "wamid.1", "status": "read"}]}}
            ],
        }
    ],
}


@pytest.fixture
def signed_settings():
    """Settings with webhook signature checking enabled."""
    settings = Settings(whatsapp_app_secret="app-secret", whatsapp_verify_token="test-verify-token")
    app.dependency_overrides[get_settings] = lambda: settings
    yield settings
    app.dependency_overrides.pop(get_settings, None)


class TestVerification:
    """GET /webhooks/whatsapp handshake."""

    async def test_echoes_challenge(self, client):
        response = await client.get(
            "/webhooks/whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": "test-verify-token", "hub.challenge": "42"},
        )

        assert response.status_code == 200
        assert response.text == "42"

    async def test_wrong_token_forbidden(self, client):
        response = await client.get(
            "/webhooks/whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": "wrong", "hub.challenge": "42"},
        )
        assert response.status_code == 403


class TestStatusCallbacks:
    """POST /webhooks/whatsapp."""

    async def test_records_status(self, client):
        response = await client.post("/webhooks/whatsapp", json=STATUS_BODY)

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "recorded": 1}

    async def test_malformed_body_acknowledged(self, client):
        response = await client.post(
            "/webhooks/whatsapp", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    async def test_valid_signature(self, client, signed_settings):
        body = json.dumps(STATUS_BODY).encode()

        response = await client.post(
            "/webhooks/whatsapp",
            content=body,
            headers={
                "Content-Type": "application/json",
                "X-Hub-Signature-256": sign_webhook_payload("app-secret", body),
            },
        )

        assert response.status_code == 200

    async def test_bad_signature_rejected(self, client, signed_settings):
        response = await client.post(
            "/webhooks/whatsapp",
            content=json.dumps(STATUS_BODY).encode(),
            headers={"Content-Type": "application/json", "X-Hub-Signature-256": "sha256=deadbeef"},
        )

        assert response.status_code == 403
