"""
Postmark inbound webhook endpoint tests.

Tests mock ALL external calls (Supabase database and storage). No real DB
or API calls.

Coverage:
  - POST /api/webhooks/postmark/inbound always answers 200
  - Signature headers read from the request, signature over raw bytes
  - Successful results handed to the off-load and persistence sinks
  - Sink failures reported in the body, never as HTTP errors
"""

import dataclasses
import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.config import Settings, get_settings
from app.main import app
from app.services.signature import compute_signature

SECRET = "test-webhook-secret-key"
URL = "/api/webhooks/postmark/inbound"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def _make_payload(**overrides) -> dict:
    payload = {
        "MessageID": "test-finance-001",
        "Date": "Fri, 1 Aug 2014 16:45:32 -0400",
        "Subject": "Invoice #12345 - Payment Due",
        "FromFull": {"Email": "billing@acme-supplies.com", "Name": "Acme Supplies Billing"},
        "ToFull": [{"Email": "procurement@mailmint.example", "Name": "Procurement Team"}],
        "TextBody": (
            "Dear Customer, Please find attached invoice #12345. "
            "Amount due: $2,500.00. Due date: 2024-02-15."
        ),
        "Headers": [{"Name": "X-Spam-Score", "Value": "0.1"}],
        "Attachments": [],
    }
    payload.update(overrides)
    return payload


def _make_settings(**overrides) -> Settings:
    settings = Settings(
        app_env="development",
        webhook_secret=SECRET,
        allow_unsigned_webhooks=False,
        postmark_server_token=None,
        postmark_api_url="https://api.postmarkapp.com",
        postmark_webhook_url=None,
        attachment_offload_bytes=1024 * 1024,
        attachment_bucket="email-attachments",
        cors_origins=(),
    )
    return dataclasses.replace(settings, **overrides)


def _signed_post(client: TestClient, payload: dict, header: str = "X-Postmark-Signature"):
    body = json.dumps(payload).encode("utf-8")
    return client.post(
        URL,
        content=body,
        headers={"Content-Type": "application/json", header: compute_signature(body, SECRET)},
    )


@pytest.fixture
def settings():
    return _make_settings()


@pytest.fixture
def client(settings):
    app.dependency_overrides[get_settings] = lambda: settings
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def sinks():
    with patch("app.routers.webhooks.save_inbound_email") as mock_save, \
            patch("app.routers.webhooks.offload_large_attachments") as mock_offload:
        mock_save.return_value = {"persisted": True, "email_id": "row-1"}
        mock_offload.return_value = {}
        yield mock_save, mock_offload


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestInboundWebhookSuccess:

    def test_signed_finance_email(self, client, sinks):
        mock_save, mock_offload = sinks
        response = _signed_post(client, _make_payload())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["messageId"] == "test-finance-001"
        assert data["classification"] == "FINANCE"
        assert data["shouldProcess"] is True
        assert data["persisted"] is True
        assert data["offloadedAttachments"] == []
        assert data["processingTime"].endswith("ms")

        mock_save.assert_called_once()
        email, result, paths = mock_save.call_args[0]
        assert email.message_id == "test-finance-001"
        assert result.extracted_data.vendor_info.domain == "acme-supplies.com"
        assert paths == {}

    def test_alternate_signature_header(self, client, sinks):
        response = _signed_post(client, _make_payload(), header="X-PM-Signature")
        assert response.json()["success"] is True

    def test_offload_uses_settings(self, client, sinks, settings):
        _, mock_offload = sinks
        mock_offload.return_value = {0: "inbound/test-finance-001/invoice.pdf"}

        response = _signed_post(client, _make_payload())

        assert response.json()["offloadedAttachments"] == ["inbound/test-finance-001/invoice.pdf"]
        kwargs = mock_offload.call_args.kwargs
        assert kwargs["threshold_bytes"] == settings.attachment_offload_bytes
        assert kwargs["bucket"] == "email-attachments"

    def test_other_email_is_still_stored(self, client, sinks):
        mock_save, _ = sinks
        payload = _make_payload(Subject="Lunch?", TextBody="Free around noon?")
        data = _signed_post(client, payload).json()
        assert data["classification"] == "OTHER"
        assert data["shouldProcess"] is False
        mock_save.assert_called_once()


class TestInboundWebhookFailures:

    def test_invalid_signature_returns_200_with_error(self, client, sinks):
        mock_save, _ = sinks
        response = client.post(
            URL,
            content=json.dumps(_make_payload()),
            headers={"X-Postmark-Signature": "invalid-signature-123"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "Invalid webhook signature"
        assert "processingTime" in data
        mock_save.assert_not_called()

    def test_missing_signature_rejected(self, client, sinks):
        response = client.post(URL, content=json.dumps(_make_payload()))
        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_validation_error_returns_200(self, client, sinks):
        response = _signed_post(client, _make_payload(FromFull={"Name": "No Email"}))
        assert response.status_code == 200
        assert response.json()["error"] == "Missing required field: FromFull.Email"

    def test_persistence_failure_still_200(self, client, sinks):
        mock_save, _ = sinks
        mock_save.return_value = {"persisted": False, "reason": "db_error"}
        response = _signed_post(client, _make_payload())
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["persisted"] is False

    def test_offload_error_does_not_block_persistence(self, client, sinks):
        mock_save, mock_offload = sinks
        mock_offload.side_effect = ValueError("SUPABASE_SERVICE_KEY is required for storage operations")

        response = _signed_post(client, _make_payload())

        assert response.status_code == 200
        assert response.json()["offloadedAttachments"] == []
        assert mock_save.call_args[0][2] == {}


class TestUnsignedMode:

    def test_production_without_secret_rejects(self, sinks):
        settings = _make_settings(app_env="production", webhook_secret="")
        app.dependency_overrides[get_settings] = lambda: settings
        try:
            response = TestClient(app).post(URL, content=json.dumps(_make_payload()))
        finally:
            app.dependency_overrides.clear()
        assert response.json()["success"] is False

    def test_development_unsigned_accepted(self, sinks):
        settings = _make_settings(webhook_secret="", allow_unsigned_webhooks=True)
        app.dependency_overrides[get_settings] = lambda: settings
        try:
            response = TestClient(app).post(URL, content=json.dumps(_make_payload()))
        finally:
            app.dependency_overrides.clear()
        assert response.json()["success"] is True


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_db_health_without_client(self, client):
        with patch("app.main.supabase_admin", None):
            response = client.get("/health/db")
        assert response.status_code == 503
