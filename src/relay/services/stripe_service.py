"""Stripe service for checkout sessions, the billing portal and customers.

Provides integration with Stripe using the v8+ StripeClient pattern. The
webhook signature check is done locally (relay.services.signature) so the
replay tolerance follows the relay settings.
"""

import json
import logging
from functools import lru_cache
from typing import Any

import stripe
from stripe import StripeClient

from relay.config import RelaySettings, get_settings
from relay.models.stripe_webhook import WebhookEvent
from relay.services.signature import verify_signature
from relay.utils.metadata import clean_metadata

logger = logging.getLogger(__name__)

SUBSCRIPTION_PRODUCT_NAME = "R4 Home Service Plan"
SUBSCRIPTION_PRODUCT_DESCRIPTION = (
    "Custom home service membership based on your selected services."
)
ONE_TIME_PRODUCT_NAME = "R4 Home Service"
ONE_TIME_PRODUCT_DESCRIPTION = "One-time home service based on your selected services."
CURRENCY = "usd"

# Optional dropdown shown on the hosted checkout page
SMS_OPT_IN_CUSTOM_FIELD: dict[str, Any] = {
    "key": "smsoptin",
    "label": {"type": "custom", "custom": "Text me service updates"},
    "type": "dropdown",
    "optional": True,
    "dropdown": {
        "options": [
            {"label": "Yes", "value": "yes"},
            {"label": "No", "value": "no"},
        ]
    },
}


class StripeServiceError(Exception):
    """Raised when a Stripe operation fails."""

    def __init__(
        self,
        message: str,
        stripe_error_code: str | None = None,
        details: dict[str, Any] | None = None,
        http_status: int | None = None,
    ) -> None:
        """Initialize with message and optional Stripe error context.

        Args:
            message: Human-readable error message.
            stripe_error_code: Stripe-specific error code if available.
            details: Stripe's error object, passed back to API callers.
            http_status: HTTP status Stripe answered with, if any.
        """
        super().__init__(message)
        self.stripe_error_code = stripe_error_code
        self.details = details
        self.http_status = http_status


class WebhookSignatureError(StripeServiceError):
    """Raised when a webhook delivery fails signature verification."""


class WebhookPayloadError(StripeServiceError):
    """Raised when a verified webhook body is not a JSON object."""


class CustomerNotFoundError(StripeServiceError):
    """Raised when no Stripe customer matches a lookup."""


def _to_plain(obj: Any) -> Any:
    """Convert Stripe objects (and nested values) to plain dicts and lists."""
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, dict):
        return {key: _to_plain(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_plain(value) for value in obj]
    for attr in ("to_dict", "to_dict_recursive"):
        converter = getattr(obj, attr, None)
        if callable(converter):
            converted = converter()
            if isinstance(converted, (dict, list)):
                return _to_plain(converted)
            return obj
    return obj


def _error_from_stripe(action: str, e: stripe.StripeError) -> StripeServiceError:
    error_code = getattr(e, "code", None)
    body = getattr(e, "json_body", None)
    details = body.get("error") if isinstance(body, dict) else None
    if not isinstance(details, dict):
        details = {"message": getattr(e, "user_message", None) or str(e)}
    logger.error(
        "Stripe %s failed: %s (code: %s, status: %s)",
        action,
        str(e),
        error_code,
        getattr(e, "http_status", None),
    )
    return StripeServiceError(
        f"Failed to {action}: {e}",
        stripe_error_code=error_code,
        details=details,
        http_status=getattr(e, "http_status", None),
    )


class StripeService:
    """Service for Stripe operations.

    Handles:
    - Subscription and one-time checkout session creation
    - Checkout session read-back
    - Billing portal sessions
    - Customer lookup and metadata updates
    - Webhook verification

    Usage:
        stripe_svc = get_stripe_service()
        session = stripe_svc.create_subscription_checkout(
            amount_cents=4999,
            metadata={"partNumber": "R4-100"},
        )
    """

    def __init__(
        self,
        settings: RelaySettings | None = None,
        client: StripeClient | None = None,
    ) -> None:
        """Initialize the Stripe service.

        Args:
            settings: Relay settings. Defaults to the shared settings.
            client: Pre-built StripeClient (created lazily when omitted).
        """
        self._settings = settings or get_settings()
        self._client = client

    def _get_client(self) -> StripeClient:
        """Get or create the Stripe client (lazy initialization).

        Raises:
            ConfigurationError: If the Stripe secret key is not configured.
        """
        if self._client is None:
            self._client = StripeClient(self._settings.require_stripe_secret_key())
            logger.info(
                "Stripe client initialized for environment: %s",
                self._settings.environment,
            )
        return self._client

    # === Checkout ===

    def create_subscription_checkout(
        self,
        *,
        amount_cents: int,
        metadata: dict[str, Any],
        customer_email: str | None = None,
    ) -> dict[str, Any]:
        """Create a monthly subscription Checkout session.

        Args:
            amount_cents: Monthly price in USD cents.
            metadata: Purchase metadata, copied to the session and subscription.
            customer_email: Optional email to prefill on the checkout page.

        Returns:
            Dict with ``session_id`` and ``checkout_url``.

        Raises:
            StripeServiceError: If session creation fails.
        """
        session_metadata = clean_metadata(metadata)
        params: dict[str, Any] = {
            "mode": "subscription",
            "line_items": [
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": CURRENCY,
                        "unit_amount": amount_cents,
                        "recurring": {"interval": "month"},
                        "product_data": {
                            "name": SUBSCRIPTION_PRODUCT_NAME,
                            "description": SUBSCRIPTION_PRODUCT_DESCRIPTION,
                        },
                    },
                }
            ],
            "subscription_data": {"metadata": session_metadata},
        }
        return self._create_checkout_session(params, session_metadata, customer_email)

    def create_one_time_checkout(
        self,
        *,
        amount_cents: int,
        metadata: dict[str, Any],
        customer_email: str | None = None,
    ) -> dict[str, Any]:
        """Create a one-time payment Checkout session.

        A Stripe customer is always created so the webhook can write the
        purchase details to the customer's metadata.

        Args:
            amount_cents: Price in USD cents.
            metadata: Purchase metadata.
            customer_email: Optional email to prefill on the checkout page.

        Returns:
            Dict with ``session_id`` and ``checkout_url``.

        Raises:
            StripeServiceError: If session creation fails.
        """
        session_metadata = clean_metadata(metadata)
        params: dict[str, Any] = {
            "mode": "payment",
            "customer_creation": "always",
            "line_items": [
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": CURRENCY,
                        "unit_amount": amount_cents,
                        "product_data": {
                            "name": ONE_TIME_PRODUCT_NAME,
                            "description": ONE_TIME_PRODUCT_DESCRIPTION,
                        },
                    },
                }
            ],
            "payment_intent_data": {"metadata": session_metadata},
        }
        return self._create_checkout_session(params, session_metadata, customer_email)

    def _create_checkout_session(
        self,
        params: dict[str, Any],
        metadata: dict[str, str],
        customer_email: str | None,
    ) -> dict[str, Any]:
        client = self._get_client()

        params.update(
            {
                "success_url": self._settings.checkout_success_url,
                "cancel_url": self._settings.checkout_cancel_url,
                "metadata": metadata,
                "phone_number_collection": {"enabled": True},
                "custom_fields": [SMS_OPT_IN_CUSTOM_FIELD],
            }
        )
        if customer_email:
            params["customer_email"] = customer_email

        try:
            logger.info(
                "Creating Stripe %s checkout session for part %s, amount %d cents",
                params["mode"],
                metadata.get("partNumber"),
                params["line_items"][0]["price_data"]["unit_amount"],
            )
            session = _to_plain(client.checkout.sessions.create(params=params))
        except stripe.StripeError as e:
            raise _error_from_stripe("create checkout session", e) from e

        logger.info("Checkout session created: %s", session.get("id"))
        return {
            "session_id": session.get("id"),
            "checkout_url": session.get("url"),
        }

    def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        """Retrieve a Checkout session with its customer expanded.

        Raises:
            StripeServiceError: If the session cannot be retrieved.
        """
        client = self._get_client()
        try:
            session = client.checkout.sessions.retrieve(
                session_id, params={"expand": ["customer"]}
            )
        except stripe.StripeError as e:
            raise _error_from_stripe("retrieve checkout session", e) from e
        return _to_plain(session)

    # === Billing portal ===

    def create_billing_portal_session(
        self,
        *,
        email: str,
        return_url: str | None = None,
    ) -> dict[str, Any]:
        """Open a billing portal session for the customer with ``email``.

        Returns:
            Dict with ``url`` and ``customer_id``.

        Raises:
            CustomerNotFoundError: If no customer has that email.
            StripeServiceError: If a Stripe call fails.
        """
        customer = self.find_customer_by_email(email)
        if customer is None:
            raise CustomerNotFoundError(f"No customer found for {email}")

        client = self._get_client()
        try:
            portal = _to_plain(
                client.billing_portal.sessions.create(
                    params={
                        "customer": customer["id"],
                        "return_url": return_url or self._settings.billing_portal_return_url,
                    }
                )
            )
        except stripe.StripeError as e:
            raise _error_from_stripe("create billing portal session", e) from e

        logger.info("Billing portal session created for customer %s", customer["id"])
        return {"url": portal.get("url"), "customer_id": customer["id"]}

    # === Customers ===

    def find_customer_by_email(self, email: str) -> dict[str, Any] | None:
        """Return the most recent customer with ``email``, or None."""
        client = self._get_client()
        try:
            result = _to_plain(
                client.customers.list(params={"email": email, "limit": 1})
            )
        except stripe.StripeError as e:
            raise _error_from_stripe("list customers", e) from e

        customers = (result.get("data") if isinstance(result, dict) else None) or []
        return customers[0] if customers else None

    def retrieve_customer(self, customer_id: str) -> dict[str, Any] | None:
        """Retrieve a customer; deleted customers return None.

        Raises:
            StripeServiceError: If the lookup fails.
        """
        client = self._get_client()
        try:
            customer = _to_plain(client.customers.retrieve(customer_id))
        except stripe.StripeError as e:
            raise _error_from_stripe("retrieve customer", e) from e

        if not isinstance(customer, dict) or customer.get("deleted"):
            return None
        return customer

    def update_customer_metadata(
        self,
        customer_id: str,
        metadata: dict[str, str],
    ) -> dict[str, Any]:
        """Merge ``metadata`` into the customer's metadata.

        Stripe merges metadata keys, so keys not listed are left untouched.

        Raises:
            StripeServiceError: If the update fails.
        """
        client = self._get_client()
        try:
            customer = client.customers.update(customer_id, params={"metadata": metadata})
        except stripe.StripeError as e:
            raise _error_from_stripe("update customer metadata", e) from e

        logger.info(
            "Updated metadata for customer %s: %s",
            customer_id,
            ", ".join(sorted(metadata)),
        )
        return _to_plain(customer)

    # === Webhooks ===

    def verify_webhook_signature(self, payload: bytes, signature: str) -> WebhookEvent:
        """Verify a webhook signature and parse the event.

        Args:
            payload: Raw request body bytes.
            signature: Stripe-Signature header value.

        Returns:
            Parsed WebhookEvent.

        Raises:
            ConfigurationError: If the webhook secret is not configured.
            WebhookSignatureError: If the signature is invalid.
            WebhookPayloadError: If the body is not a JSON object.
        """
        secret = self._settings.require_webhook_secret()

        if not verify_signature(
            payload,
            signature,
            secret,
            tolerance=self._settings.webhook_tolerance,
        ):
            logger.warning("Invalid webhook signature")
            raise WebhookSignatureError("Invalid webhook signature")

        try:
            body = json.loads(payload)
        except (UnicodeDecodeError, ValueError) as e:
            raise WebhookPayloadError("Invalid JSON") from e
        if not isinstance(body, dict):
            raise WebhookPayloadError("Invalid JSON")

        event = WebhookEvent.from_payload(body)
        logger.info("Webhook signature verified for event: %s", event.id)
        return event


@lru_cache(maxsize=1)
def get_stripe_service() -> StripeService:
    """Get the shared StripeService instance (singleton pattern)."""
    return StripeService()
