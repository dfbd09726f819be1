"""
Tests for the POST /webhooks/yoco endpoint.

Tests cover:
- Valid signature with event recording
- Duplicate delivery handling (idempotency)
- Missing headers and stale timestamps (400)
- Invalid signature (401)
- Validation errors (422)
"""

import base64
import hashlib
import hmac
import os
import time

import pytest

from storefront_payments.main import get_webhook_verifier
from storefront_payments.storage import SessionLocal, get_webhook_event
from storefront_payments.webhook_verifier import WebhookVerifier


TEST_WEBHOOK_SECRET = os.environ["YOCO_WEBHOOK_SECRET"]


def compute_signature(webhook_id: str, timestamp: str, body: str, secret: str = TEST_WEBHOOK_SECRET) -> str:
    """Compute the Yoco webhook-signature header value."""
    key = base64.b64decode(secret.split("_", 1)[1])
    content = f"{webhook_id}.{timestamp}.{body}".encode("utf-8")
    digest = hmac.new(key, content, hashlib.sha256).digest()
    return "v1," + base64.b64encode(digest).decode()


def webhook_headers(webhook_id: str, body: str, timestamp: str = None, signature: str = None) -> dict:
    timestamp = timestamp or str(int(time.time()))
    return {
        "Content-Type": "application/json",
        "webhook-id": webhook_id,
        "webhook-timestamp": timestamp,
        "webhook-signature": signature or compute_signature(webhook_id, timestamp, body),
    }


@pytest.fixture
def payment_body() -> str:
    return (
        '{"id":"evt_2Nx","type":"payment.succeeded","createdDate":"2026-10-16T10:00:00.000Z",'
        '"payload":{"id":"p_1","amount":45000,"currency":"ZAR","metadata":{"checkoutId":"ch_1"}}}'
    )


class TestWebhookValidSignature:

    def test_payment_event_accepted(self, client, payment_body):
        response = client.post(
            "/webhooks/yoco",
            content=payment_body,
            headers=webhook_headers("msg_1", payment_body),
        )

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_event_is_recorded(self, client, payment_body):
        client.post("/webhooks/yoco", content=payment_body, headers=webhook_headers("msg_rec", payment_body))

        with SessionLocal() as db:
            event = get_webhook_event(db, "msg_rec")
            assert event is not None
            assert event.event_id == "evt_2Nx"
            assert event.event_type == "payment.succeeded"
            assert event.payload == payment_body

    def test_duplicate_delivery_idempotent(self, client, payment_body):
        headers = webhook_headers("msg_dup", payment_body)

        response1 = client.post("/webhooks/yoco", content=payment_body, headers=headers)
        assert response1.status_code == 200

        response2 = client.post("/webhooks/yoco", content=payment_body, headers=headers)
        assert response2.status_code == 200
        assert response2.json() == {"status": "ok"}

    def test_body_without_payload(self, client):
        body = '{"id":"evt_3","type":"refund.succeeded"}'
        response = client.post("/webhooks/yoco", content=body, headers=webhook_headers("msg_3", body))

        assert response.status_code == 200

    def test_request_id_header_set(self, client, payment_body):
        response = client.post(
            "/webhooks/yoco",
            content=payment_body,
            headers=webhook_headers("msg_rid", payment_body),
        )

        assert response.headers.get("X-Request-ID")


class TestWebhookRejected:

    @pytest.mark.parametrize("missing", ["webhook-id", "webhook-timestamp", "webhook-signature"])
    def test_missing_header(self, client, payment_body, missing):
        headers = webhook_headers("msg_1", payment_body)
        del headers[missing]

        response = client.post("/webhooks/yoco", content=payment_body, headers=headers)

        assert response.status_code == 400
        assert response.json() == {"detail": "missing webhook headers"}

    def test_stale_timestamp(self, client, payment_body):
        stale = str(int(time.time()) - 600)
        response = client.post(
            "/webhooks/yoco",
            content=payment_body,
            headers=webhook_headers("msg_old", payment_body, timestamp=stale),
        )

        assert response.status_code == 400
        assert response.json() == {"detail": "stale webhook"}

    def test_non_numeric_timestamp(self, client, payment_body):
        response = client.post(
            "/webhooks/yoco",
            content=payment_body,
            headers=webhook_headers("msg_1", payment_body, timestamp="yesterday"),
        )

        assert response.status_code == 400

    def test_invalid_signature(self, client, payment_body):
        response = client.post(
            "/webhooks/yoco",
            content=payment_body,
            headers=webhook_headers("msg_1", payment_body, signature="v1,invalid_signature_123"),
        )

        assert response.status_code == 401
        assert response.json() == {"detail": "invalid signature"}

    def test_signature_for_different_body(self, client, payment_body):
        headers = webhook_headers("msg_1", payment_body)
        different = payment_body.replace("45000", "1")

        response = client.post("/webhooks/yoco", content=different, headers=headers)

        assert response.status_code == 401

    def test_signature_with_different_secret(self, client, payment_body):
        timestamp = str(int(time.time()))
        wrong = compute_signature("msg_1", timestamp, payment_body, secret="whsec_d3JvbmdzZWNyZXQ=")

        response = client.post(
            "/webhooks/yoco",
            content=payment_body,
            headers=webhook_headers("msg_1", payment_body, timestamp=timestamp, signature=wrong),
        )

        assert response.status_code == 401

    def test_unconfigured_secret_rejects(self, client, payment_body):
        from storefront_payments.main import app
        app.dependency_overrides[get_webhook_verifier] = lambda: WebhookVerifier("")

        response = client.post(
            "/webhooks/yoco",
            content=payment_body,
            headers=webhook_headers("msg_1", payment_body),
        )

        assert response.status_code == 401

    def test_rejected_event_not_recorded(self, client, payment_body):
        client.post(
            "/webhooks/yoco",
            content=payment_body,
            headers=webhook_headers("msg_bad", payment_body, signature="v1,nope"),
        )

        with SessionLocal() as db:
            assert get_webhook_event(db, "msg_bad") is None


class TestWebhookValidationErrors:

    def test_invalid_json(self, client):
        body = "not valid json"
        response = client.post("/webhooks/yoco", content=body, headers=webhook_headers("msg_1", body))

        assert response.status_code == 422

    def test_missing_event_type(self, client):
        body = '{"id":"evt_1"}'
        response = client.post("/webhooks/yoco", content=body, headers=webhook_headers("msg_1", body))

        assert response.status_code == 422

    def test_empty_event_id(self, client):
        body = '{"id":"","type":"payment.succeeded"}'
        response = client.post("/webhooks/yoco", content=body, headers=webhook_headers("msg_1", body))

        assert response.status_code == 422

    def test_json_array_body(self, client):
        body = "[]"
        response = client.post("/webhooks/yoco", content=body, headers=webhook_headers("msg_1", body))

        assert response.status_code == 422


class TestHealthAndMetrics:

    def test_live(self, client):
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_ready(self, client):
        response = client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_not_ready_without_secret(self, client):
        from storefront_payments.main import app
        app.dependency_overrides[get_webhook_verifier] = lambda: WebhookVerifier(None)

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["reason"] == "YOCO_WEBHOOK_SECRET not configured"

    def test_webhook_outcomes_exposed(self, client, payment_body):
        client.post("/webhooks/yoco", content=payment_body, headers=webhook_headers("msg_m", payment_body))

        response = client.get("/metrics")

        assert response.status_code == 200
        assert 'webhook_requests_total{result="accepted"}' in response.text
