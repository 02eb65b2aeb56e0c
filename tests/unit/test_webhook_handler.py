"""Unit tests for WebhookHandler dispatch.

Uses the real reconciler and propagator with a mocked Stripe service and a
MockTransport CRM, so each event runs the full in-process pipeline.
"""

from unittest.mock import MagicMock

import pytest

from conftest import (
    FIXED_NOW,
    TEST_CUSTOMER_ID,
    TEST_SUBSCRIPTION_ID,
    make_checkout_session,
    make_event,
)
from relay.models.stripe_webhook import WebhookEvent
from relay.services.propagator import DownstreamPropagator
from relay.services.reconciler import MetadataReconciler
from relay.services.webhook_handler import WebhookHandler


@pytest.fixture
def stripe_svc() -> MagicMock:
    svc = MagicMock()
    svc.retrieve_customer.return_value = None
    return svc


@pytest.fixture
def handler(stripe_svc, contact_client) -> WebhookHandler:
    return WebhookHandler(
        reconciler=MetadataReconciler(
            customer_lookup=stripe_svc.retrieve_customer,
            now=lambda: FIXED_NOW,
        ),
        propagator=DownstreamPropagator(stripe_service=stripe_svc, contact_client=contact_client),
    )


def _event(event_type: str, obj: dict) -> WebhookEvent:
    return WebhookEvent.from_payload(make_event(event_type, obj))


def test_checkout_completed_updates_customer_and_crm(handler, stripe_svc, crm):
    """Checkout completion reaches both targets."""
    session = make_checkout_session(
        customer_details={"email": "a@b.com", "phone": None, "name": None},
        metadata={"partNumber": "R4-100", "monthlyAmount": "49.99", "selectorPhone": "+13525551234"},
    )

    result = handler.handle(_event("checkout.session.completed", session))

    assert result.processing_result == "success"
    customer_id, fields = stripe_svc.update_customer_metadata.call_args.args
    assert customer_id == TEST_CUSTOMER_ID
    assert fields["phone"] == "+13525551234"
    payload = crm.payloads[0]
    assert payload["email"] == "a@b.com"
    assert payload["phone"] == "+13525551234"
    assert "R4-Subscriber" in payload["tags"]


def test_invoice_paid_propagates_amount(handler, stripe_svc, crm):
    """The paid amount reaches Stripe and the CRM."""
    invoice = {
        "id": "in_1",
        "customer": TEST_CUSTOMER_ID,
        "subscription": TEST_SUBSCRIPTION_ID,
        "amount_paid": 4999,
        "customer_email": "a@b.com",
    }

    handler.handle(_event("invoice.payment_succeeded", invoice))

    _, fields = stripe_svc.update_customer_metadata.call_args.args
    assert fields["lastAmountPaid"] == "49.99"
    assert {"key": "monthly_amount", "field_value": "49.99"} in crm.payloads[0]["customFields"]


def test_subscription_deleted_never_calls_crm(handler, stripe_svc, crm):
    """Subscription events never upsert a contact."""
    subscription = {"id": TEST_SUBSCRIPTION_ID, "customer": TEST_CUSTOMER_ID, "status": "canceled"}

    result = handler.handle(_event("customer.subscription.deleted", subscription))

    assert result.processing_result == "success"
    _, fields = stripe_svc.update_customer_metadata.call_args.args
    assert fields["subscriptionStatus"] == "canceled"
    assert fields["cancelAtPeriodEnd"] == "false"
    assert crm.requests == []


def test_subscription_updated(handler, stripe_svc, crm):
    """Status and period end are written to the customer."""
    subscription = {
        "id": TEST_SUBSCRIPTION_ID,
        "customer": TEST_CUSTOMER_ID,
        "status": "active",
        "cancel_at_period_end": True,
    }

    handler.handle(_event("customer.subscription.updated", subscription))

    _, fields = stripe_svc.update_customer_metadata.call_args.args
    assert fields == {
        "subscriptionStatus": "active",
        "cancelAtPeriodEnd": "true",
        "subscriptionId": TEST_SUBSCRIPTION_ID,
    }
    assert crm.requests == []


def test_unrecognized_kind_is_skipped(handler, stripe_svc, crm):
    """Unknown kinds make no downstream call."""
    result = handler.handle(_event("payment_intent.created", {"id": "pi_1"}))

    assert result.processing_result == "skipped"
    assert result.outcomes == []
    stripe_svc.update_customer_metadata.assert_not_called()
    assert crm.requests == []


def test_undecodable_payload_is_an_error_result(handler, stripe_svc):
    """A payload that fails validation is an error result."""
    result = handler.handle(
        _event("checkout.session.completed", {"id": "cs_1", "custom_fields": "not-a-list"})
    )

    assert result.processing_result == "error"
    assert result.error is not None
    stripe_svc.update_customer_metadata.assert_not_called()


def test_propagation_failure_is_reported_not_raised(handler, stripe_svc, crm):
    """A CRM failure shows up in the result."""
    crm.status_code = 500
    session = make_checkout_session()

    result = handler.handle(_event("checkout.session.completed", session))

    assert result.processing_result == "error"
    assert [o.status for o in result.outcomes] == ["success", "error"]


def test_nothing_to_write_is_skipped(handler, stripe_svc, crm):
    """An event with no usable fields is skipped."""
    result = handler.handle(_event("customer.subscription.updated", {"id": TEST_SUBSCRIPTION_ID}))

    assert result.processing_result == "skipped"
    stripe_svc.update_customer_metadata.assert_not_called()
