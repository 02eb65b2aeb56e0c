"""Checkout endpoints for the service selector pages.

Provides REST endpoints for:
- Creating a monthly subscription Checkout session
- Creating a one-time payment Checkout session
- Reading back the contact and purchase fields of a finished session

The browser is redirected to the returned Stripe-hosted URL. Customer and
CRM records are written later, by the webhook.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError

from relay.models.errors import ErrorCode, RelayError
from relay.models.stripe_webhook import CheckoutSessionObject
from relay.services.reconciler import (
    PURCHASE_ONE_TIME,
    PURCHASE_SUBSCRIPTION,
    MetadataReconciler,
    normalize_sms_consent,
)
from relay.services.stripe_service import StripeService, StripeServiceError
from relay.utils.logging import get_logger
from relay.utils.metadata import clean_value
from relay.utils.money import AmountError, format_cents, parse_amount_cents
from relay_api.dependencies import get_reconciler, get_stripe_service
from relay_api.exceptions import relay_error_from_stripe
from relay_api.models.checkout import (
    CheckoutContactResponse,
    CheckoutRequest,
    OneTimeCheckoutRequest,
)
from relay_api.models.common import ErrorResponse, UrlResponse

logger = get_logger(__name__)

router = APIRouter(tags=["checkout"])

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"description": "Invalid request or Stripe error", "model": ErrorResponse},
    500: {"description": "Stripe is not configured", "model": ErrorResponse},
}


def _require_amount(part_number: str | None, amount: Any, amount_field: str) -> int:
    """Validate the required purchase fields and return the amount in cents."""
    if clean_value(part_number) is None or clean_value(amount) is None:
        raise RelayError(
            ErrorCode.MISSING_FIELDS,
            message=f"Missing partNumber or {amount_field}",
        )
    try:
        return parse_amount_cents(amount)
    except AmountError as e:
        raise RelayError(
            ErrorCode.INVALID_AMOUNT,
            message=f"{amount_field} must be a positive number",
        ) from e


@router.post(
    "/create-checkout-session",
    summary="Create subscription checkout",
    description="""
Create a Stripe Checkout session for a monthly service plan.

**Notes:**
- `monthlyAmount` is in dollars and is rounded half-up to whole cents
- The purchase metadata is copied to the session and the subscription
- The checkout page collects a phone number and an optional SMS opt-in
""",
    response_model=UrlResponse,
    responses=_ERROR_RESPONSES,
)
def create_checkout_session(
    body: CheckoutRequest,
    stripe_svc: StripeService = Depends(get_stripe_service),
) -> UrlResponse:
    """Create a subscription Checkout session and return its URL."""
    cents = _require_amount(body.part_number, body.monthly_amount, "monthlyAmount")

    metadata = body.checkout_metadata()
    metadata["monthlyAmount"] = format_cents(cents)
    metadata["purchaseType"] = PURCHASE_SUBSCRIPTION

    try:
        session = stripe_svc.create_subscription_checkout(
            amount_cents=cents,
            metadata=metadata,
            customer_email=clean_value(body.customer_email),
        )
    except StripeServiceError as e:
        raise relay_error_from_stripe(e) from e

    return UrlResponse(url=session["checkout_url"])


@router.post(
    "/create-one-time-checkout-session",
    summary="Create one-time checkout",
    description="""
Create a Stripe Checkout session for a single payment.

**Notes:**
- `oneTimeAmount` is in dollars and is rounded half-up to whole cents
- A Stripe customer is always created for the purchase
""",
    response_model=UrlResponse,
    responses=_ERROR_RESPONSES,
)
def create_one_time_checkout_session(
    body: OneTimeCheckoutRequest,
    stripe_svc: StripeService = Depends(get_stripe_service),
) -> UrlResponse:
    """Create a one-time payment Checkout session and return its URL."""
    cents = _require_amount(body.part_number, body.one_time_amount, "oneTimeAmount")

    metadata = body.checkout_metadata()
    metadata["oneTimeAmount"] = format_cents(cents)
    metadata["purchaseType"] = PURCHASE_ONE_TIME

    try:
        session = stripe_svc.create_one_time_checkout(
            amount_cents=cents,
            metadata=metadata,
            customer_email=clean_value(body.customer_email),
        )
    except StripeServiceError as e:
        raise relay_error_from_stripe(e) from e

    return UrlResponse(url=session["checkout_url"])


@router.get(
    "/get-checkout-contact",
    summary="Read back a finished checkout",
    description="""
Return the contact and purchase fields of a Checkout session, resolved the
same way the webhook resolves them. Used by the success page.
""",
    response_model=CheckoutContactResponse,
    response_model_by_alias=True,
    responses=_ERROR_RESPONSES,
)
def get_checkout_contact(
    session_id: str | None = Query(default=None, description="Checkout session ID (cs_...)"),
    stripe_svc: StripeService = Depends(get_stripe_service),
    reconciler: MetadataReconciler = Depends(get_reconciler),
) -> CheckoutContactResponse:
    """Resolve the contact fields of a Checkout session."""
    session_id = clean_value(session_id)
    if session_id is None:
        raise RelayError(ErrorCode.MISSING_FIELDS, message="Missing session_id")

    try:
        raw_session = stripe_svc.retrieve_checkout_session(session_id)
    except StripeServiceError as e:
        raise relay_error_from_stripe(e) from e

    try:
        session = CheckoutSessionObject.model_validate(raw_session)
    except ValidationError as e:
        logger.error("Checkout session %s did not decode: %s", session_id, e)
        raise RelayError(
            ErrorCode.STRIPE_API_ERROR,
            details={"message": "Unexpected checkout session payload"},
        ) from e

    identity = reconciler.resolve_contact(session)
    metadata = session.metadata
    consent = reconciler.sms_consent_answer(session)

    return CheckoutContactResponse(
        session_id=session.id or session_id,
        email=identity.email,
        phone=identity.phone,
        name=identity.name,
        purchase_type=reconciler.purchase_type(session),
        part_number=clean_value(metadata.get("partNumber")),
        service_summary=clean_value(metadata.get("serviceSummary")),
        monthly_amount=clean_value(metadata.get("monthlyAmount")),
        one_time_amount=clean_value(metadata.get("oneTimeAmount")),
        sms_opt_in=normalize_sms_consent(consent) if consent is not None else None,
        customer_id=session.customer_id,
        subscription_id=session.subscription_id,
    )
