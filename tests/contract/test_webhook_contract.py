"""Contract tests for POST /api/stripe-webhook.

Test categories:
- Signature validation (400)
- Configuration errors (500)
- Event processing (200 "ok")
- Unhandled event types and handler failures (still 200)
"""

import json
from typing import Any, Generator
from unittest.mock import MagicMock

import pytest
import stripe
from fastapi.testclient import TestClient
from starlette.status import (
    HTTP_200_OK,
    HTTP_400_BAD_REQUEST,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from conftest import (
    FIXED_NOW,
    TEST_CUSTOMER_ID,
    TEST_SUBSCRIPTION_ID,
    make_checkout_session,
    make_event,
)
from relay.config import RelaySettings
from relay.services.propagator import DownstreamPropagator
from relay.services.reconciler import MetadataReconciler
from relay.services.stripe_service import StripeService
from relay.services.webhook_handler import WebhookHandler
from relay_api.dependencies import get_stripe_service, get_webhook_handler
from relay_api.main import app

WEBHOOK_URL = "/api/stripe-webhook"


@pytest.fixture
def client(stripe_service, stripe_client, contact_client) -> Generator[TestClient, None, None]:
    """Test client wired to a mocked StripeClient and a MockTransport CRM."""
    stripe_client.customers.retrieve.return_value = {"id": TEST_CUSTOMER_ID}
    handler = WebhookHandler(
        reconciler=MetadataReconciler(
            customer_lookup=stripe_service.retrieve_customer,
            now=lambda: FIXED_NOW,
        ),
        propagator=DownstreamPropagator(stripe_service=stripe_service, contact_client=contact_client),
    )
    app.dependency_overrides[get_stripe_service] = lambda: stripe_service
    app.dependency_overrides[get_webhook_handler] = lambda: handler
    yield TestClient(app)
    app.dependency_overrides.clear()


def _post(client: TestClient, event: dict[str, Any], sign) -> Any:
    payload = json.dumps(event).encode()
    return client.post(
        WEBHOOK_URL,
        content=payload,
        headers={"Stripe-Signature": sign(payload), "Content-Type": "application/json"},
    )


class TestSignatureValidation:
    def test_missing_signature_header(self, client):
        """Should reject a delivery without Stripe-Signature."""
        response = client.post(WEBHOOK_URL, content=b"{}")

        assert response.status_code == HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "Missing Stripe-Signature"
        assert response.json()["error_code"] == "ERR_STRIPE_002"

    def test_invalid_signature(self, client, stripe_client):
        """Should reject a bad signature without touching Stripe."""
        response = client.post(
            WEBHOOK_URL,
            content=b'{"id": "evt_1"}',
            headers={"Stripe-Signature": "t=1700000000,v1=deadbeef"},
        )

        assert response.status_code == HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "ERR_STRIPE_001"
        stripe_client.customers.update.assert_not_called()

    def test_body_modified_after_signing(self, client, sign):
        """Should reject a body changed after signing."""
        payload = json.dumps(make_event("customer.subscription.deleted", {"id": "sub_1"})).encode()
        header = sign(payload)

        response = client.post(
            WEBHOOK_URL,
            content=payload.replace(b"sub_1", b"sub_2"),
            headers={"Stripe-Signature": header},
        )

        assert response.status_code == HTTP_400_BAD_REQUEST

    def test_signed_invalid_json(self, client, sign):
        """A signed body that is not JSON is a 400."""
        payload = b"{not json"

        response = client.post(WEBHOOK_URL, content=payload, headers={"Stripe-Signature": sign(payload)})

        assert response.status_code == HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "Invalid JSON"


class TestConfiguration:
    def test_missing_webhook_secret_is_500(self, sign):
        """An unconfigured webhook secret is a 500."""
        service = StripeService(settings=RelaySettings(), client=MagicMock())
        app.dependency_overrides[get_stripe_service] = lambda: service
        app.dependency_overrides[get_webhook_handler] = lambda: MagicMock()
        try:
            payload = b"{}"
            response = TestClient(app).post(
                WEBHOOK_URL, content=payload, headers={"Stripe-Signature": sign(payload)}
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["error_code"] == "ERR_CONFIG_001"
        assert "STRIPE_WEBHOOK_SECRET" not in response.text


class TestEventProcessing:
    def test_checkout_completed(self, client, sign, stripe_client, crm):
        """Checkout completion updates Stripe and the CRM."""
        session = make_checkout_session(
            metadata={
                "partNumber": "R4-100",
                "monthlyAmount": "49.99",
                "selectorPhone": "+13525551234",
                "smsOptIn": "yes",
            }
        )

        response = _post(client, make_event("checkout.session.completed", session), sign)

        assert response.status_code == HTTP_200_OK
        assert response.text == "ok"
        metadata = stripe_client.customers.update.call_args.kwargs["params"]["metadata"]
        assert metadata["partNumber"] == "R4-100"
        assert metadata["subscriptionStatus"] == "active"
        assert metadata["smsOptIn"] == "yes"
        payload = crm.payloads[0]
        assert payload["tags"] == ["R4-Subscriber", "SMS-Opt-In"]
        assert payload["phone"] == "+13525551234"

    def test_invoice_paid(self, client, sign, stripe_client):
        """A paid invoice writes the last payment fields."""
        invoice = {
            "id": "in_1",
            "customer": TEST_CUSTOMER_ID,
            "subscription": TEST_SUBSCRIPTION_ID,
            "amount_paid": 4999,
        }

        response = _post(client, make_event("invoice.payment_succeeded", invoice), sign)

        assert response.status_code == HTTP_200_OK
        metadata = stripe_client.customers.update.call_args.kwargs["params"]["metadata"]
        assert metadata["lastAmountPaid"] == "49.99"

    def test_subscription_deleted(self, client, sign, stripe_client, crm):
        """Cancellation updates Stripe only."""
        subscription = {"id": TEST_SUBSCRIPTION_ID, "customer": TEST_CUSTOMER_ID}

        response = _post(client, make_event("customer.subscription.deleted", subscription), sign)

        assert response.status_code == HTTP_200_OK
        metadata = stripe_client.customers.update.call_args.kwargs["params"]["metadata"]
        assert metadata["subscriptionStatus"] == "canceled"
        assert metadata["cancelAtPeriodEnd"] == "false"
        assert crm.requests == []


class TestAlwaysAcknowledged:
    def test_unhandled_event_type(self, client, sign, stripe_client, crm):
        """Unknown event types are acknowledged and ignored."""
        response = _post(client, make_event("payment_intent.created", {"id": "pi_1"}), sign)

        assert response.status_code == HTTP_200_OK
        assert response.text == "ok"
        stripe_client.customers.update.assert_not_called()
        assert crm.requests == []

    def test_downstream_failures_still_return_ok(self, client, sign, stripe_client, crm):
        """Downstream failures do not change the 200."""
        stripe_client.customers.update.side_effect = stripe.APIConnectionError("network down")
        crm.status_code = 503

        response = _post(client, make_event("checkout.session.completed", make_checkout_session()), sign)

        assert response.status_code == HTTP_200_OK
        assert response.text == "ok"

    def test_handler_crash_still_returns_ok(self, stripe_service, sign):
        """An unexpected handler error still returns ok."""
        handler = MagicMock()
        handler.handle.side_effect = RuntimeError("unexpected")
        app.dependency_overrides[get_stripe_service] = lambda: stripe_service
        app.dependency_overrides[get_webhook_handler] = lambda: handler
        try:
            payload = json.dumps(make_event("checkout.session.completed", {})).encode()
            response = TestClient(app).post(
                WEBHOOK_URL, content=payload, headers={"Stripe-Signature": sign(payload)}
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == HTTP_200_OK
        assert response.text == "ok"
