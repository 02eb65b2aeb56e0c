"""Billing portal endpoint.

Lets an existing subscriber manage their plan. The customer is found by
email; Stripe hosts the portal itself.
"""

from fastapi import APIRouter, Depends

from relay.models.errors import ErrorCode, RelayError
from relay.services.stripe_service import StripeService, StripeServiceError
from relay.utils.metadata import clean_value
from relay_api.dependencies import get_stripe_service
from relay_api.exceptions import relay_error_from_stripe
from relay_api.models.checkout import BillingPortalRequest
from relay_api.models.common import ErrorResponse, UrlResponse

router = APIRouter(tags=["billing"])


@router.post(
    "/create-billing-portal",
    summary="Open billing portal",
    description="""
Open a Stripe billing portal session for the most recent customer with the
given email.
""",
    response_model=UrlResponse,
    responses={
        400: {"description": "Missing email or Stripe error", "model": ErrorResponse},
        404: {"description": "No customer with that email", "model": ErrorResponse},
        500: {"description": "Stripe is not configured", "model": ErrorResponse},
    },
)
def create_billing_portal(
    body: BillingPortalRequest,
    stripe_svc: StripeService = Depends(get_stripe_service),
) -> UrlResponse:
    """Create a billing portal session and return its URL."""
    email = clean_value(body.email)
    if email is None:
        raise RelayError(ErrorCode.MISSING_FIELDS, message="Missing email")

    try:
        portal = stripe_svc.create_billing_portal_session(
            email=email,
            return_url=clean_value(body.return_url),
        )
    except StripeServiceError as e:
        raise relay_error_from_stripe(e) from e

    return UrlResponse(url=portal["url"])
