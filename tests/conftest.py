"""Pytest configuration and fixtures for the checkout relay tests.

This module provides reusable fixtures for testing:
- Relay settings with test secrets
- Stripe service backed by a MagicMock StripeClient
- CRM contact client backed by httpx.MockTransport
- Sample Stripe webhook payloads
"""

import json
import os
from datetime import datetime, timezone
from typing import Any, Callable, Generator
from unittest.mock import MagicMock

import httpx
import pytest

from relay.config import RelaySettings
from relay.services.contact_client import ContactClient
from relay.services.signature import build_signature_header
from relay.services.stripe_service import StripeService

# === Environment Setup ===

# moto needs a region and credentials; never touch real AWS from tests
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")


# === Test Configuration ===

TEST_SECRET_KEY = "sk_test_abc123xyz"
TEST_WEBHOOK_SECRET = "whsec_test_secret123"
TEST_CRM_TOKEN = "pit-test-token"
TEST_LOCATION_ID = "loc_test_123"
TEST_CUSTOMER_ID = "cus_TEST123"
TEST_SUBSCRIPTION_ID = "sub_TEST456"
FIXED_NOW = datetime(2025, 3, 1, 12, 30, 0, tzinfo=timezone.utc)


# === Singletons ===


@pytest.fixture(autouse=True)
def reset_relay_services() -> Generator[None, None, None]:
    """Clear cached settings and services before and after each test."""
    from relay_api.dependencies import reset_services

    reset_services()
    yield
    reset_services()


# === Settings and Services ===


@pytest.fixture
def settings() -> RelaySettings:
    """Settings with Stripe and CRM credentials configured."""
    return RelaySettings(
        stripe_secret_key=TEST_SECRET_KEY,
        stripe_webhook_secret=TEST_WEBHOOK_SECRET,
        crm_api_token=TEST_CRM_TOKEN,
        crm_location_id=TEST_LOCATION_ID,
    )


@pytest.fixture
def stripe_client() -> MagicMock:
    """A StripeClient stand-in; configure return values per test."""
    client = MagicMock()
    client.customers.update.return_value = {"id": TEST_CUSTOMER_ID, "metadata": {}}
    client.customers.retrieve.return_value = {"id": TEST_CUSTOMER_ID}
    return client


@pytest.fixture
def stripe_service(settings: RelaySettings, stripe_client: MagicMock) -> StripeService:
    return StripeService(settings=settings, client=stripe_client)


class CrmRecorder:
    """Records CRM requests and answers them with a canned response."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.body: dict[str, Any] = {"contact": {"id": "crm_contact_1"}, "new": True}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)

    @property
    def payloads(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def crm() -> CrmRecorder:
    return CrmRecorder()


@pytest.fixture
def contact_client(settings: RelaySettings, crm: CrmRecorder) -> ContactClient:
    client = ContactClient.from_settings(settings, transport=httpx.MockTransport(crm))
    assert client is not None
    return client


# === Webhook Payloads ===


def make_event(event_type: str, obj: dict[str, Any], event_id: str = "evt_test_001") -> dict[str, Any]:
    """Wrap a Stripe object in a webhook event envelope."""
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": 1740832200,
        "data": {"object": obj},
    }


def make_checkout_session(**overrides: Any) -> dict[str, Any]:
    """A completed subscription checkout session."""
    session: dict[str, Any] = {
        "id": "cs_test_abc123",
        "object": "checkout.session",
        "mode": "subscription",
        "customer": TEST_CUSTOMER_ID,
        "subscription": TEST_SUBSCRIPTION_ID,
        "customer_email": None,
        "customer_details": {"email": "a@b.com", "phone": None, "name": "Ada Byron"},
        "metadata": {"partNumber": "R4-100", "monthlyAmount": "49.99"},
        "custom_fields": [],
        "amount_total": 4999,
    }
    session.update(overrides)
    return session


@pytest.fixture
def sign() -> Callable[[bytes], str]:
    """Sign a raw payload with the test webhook secret."""

    def _sign(payload: bytes) -> str:
        return build_signature_header(payload, TEST_WEBHOOK_SECRET)

    return _sign
