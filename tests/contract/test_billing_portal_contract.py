"""Contract tests for POST /api/create-billing-portal."""

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from starlette.status import HTTP_200_OK, HTTP_400_BAD_REQUEST, HTTP_404_NOT_FOUND

from conftest import TEST_CUSTOMER_ID
from relay_api.dependencies import get_stripe_service
from relay_api.main import app

PORTAL_URL = "/api/create-billing-portal"


@pytest.fixture
def client(stripe_service) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_stripe_service] = lambda: stripe_service
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_opens_portal_for_existing_customer(client, stripe_client):
    """Should return the portal URL for a known email."""
    stripe_client.customers.list.return_value = {"data": [{"id": TEST_CUSTOMER_ID}]}
    stripe_client.billing_portal.sessions.create.return_value = {"url": "https://billing.stripe.com/p/1"}

    response = client.post(
        PORTAL_URL,
        json={"email": " a@b.com ", "returnUrl": "https://r4homeservice.com/account"},
    )

    assert response.status_code == HTTP_200_OK
    assert response.json() == {"url": "https://billing.stripe.com/p/1"}
    stripe_client.customers.list.assert_called_once_with(params={"email": "a@b.com", "limit": 1})
    params = stripe_client.billing_portal.sessions.create.call_args.kwargs["params"]
    assert params["return_url"] == "https://r4homeservice.com/account"


def test_unknown_email_is_404(client, stripe_client):
    """Should return 404 when no customer has the email."""
    stripe_client.customers.list.return_value = {"data": []}

    response = client.post(PORTAL_URL, json={"email": "nobody@b.com"})

    assert response.status_code == HTTP_404_NOT_FOUND
    assert response.json()["error"] == "No customer found for that email"


def test_missing_email_is_400(client, stripe_client):
    """Should reject a request without an email."""
    response = client.post(PORTAL_URL, json={})

    assert response.status_code == HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "Missing email"
    stripe_client.customers.list.assert_not_called()
