"""Webhook endpoint for Stripe event notifications.

This endpoint does not use any caller authentication; every delivery is
verified against the Stripe webhook signing secret instead.

Once a delivery is verified and parsed, Stripe always gets 200 "ok", even if
propagation fails. Failures are logged; Stripe retries are not relied upon.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from relay.models.errors import ErrorCode, RelayError
from relay.services.stripe_service import (
    StripeService,
    WebhookPayloadError,
    WebhookSignatureError,
)
from relay.services.webhook_handler import WebhookHandler
from relay.utils.logging import get_logger, log_webhook_event
from relay_api.dependencies import get_stripe_service, get_webhook_handler
from relay_api.models.common import ErrorResponse

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post(
    "/stripe-webhook",
    summary="Receive Stripe webhook events",
    description="""
Endpoint for Stripe webhook events. Handles:
- checkout.session.completed: writes purchase metadata, upserts the CRM contact
- invoice.payment_succeeded: records the last payment, upserts the CRM contact
- customer.subscription.updated: records status, cancel flag and period end
- customer.subscription.deleted: marks the subscription canceled

Other event types are acknowledged and ignored.
""",
    response_class=PlainTextResponse,
    responses={
        200: {"description": "Event received", "content": {"text/plain": {"example": "ok"}}},
        400: {"description": "Missing or invalid signature, or invalid JSON", "model": ErrorResponse},
        500: {"description": "Webhook secret is not configured", "model": ErrorResponse},
    },
)
async def stripe_webhook(
    request: Request,
    stripe_svc: StripeService = Depends(get_stripe_service),
    handler: WebhookHandler = Depends(get_webhook_handler),
) -> PlainTextResponse:
    """Verify a Stripe delivery and process it."""
    signature = request.headers.get("Stripe-Signature")
    if not signature:
        logger.warning("Webhook request missing Stripe-Signature header")
        raise RelayError(ErrorCode.MISSING_WEBHOOK_SIGNATURE)

    # Raw body: the signature covers the exact bytes received
    payload = await request.body()

    try:
        event = stripe_svc.verify_webhook_signature(payload, signature)
    except WebhookSignatureError as e:
        raise RelayError(ErrorCode.INVALID_WEBHOOK_SIGNATURE) from e
    except WebhookPayloadError as e:
        raise RelayError(ErrorCode.INVALID_JSON) from e

    log_webhook_event(logger, event.kind, event.id, result="received")

    try:
        handler.handle(event)
    except Exception as e:
        logger.exception("Unhandled error processing webhook %s (%s)", event.id, event.kind)
        log_webhook_event(logger, event.kind, event.id, result="error", error=str(e))

    return PlainTextResponse("ok")
