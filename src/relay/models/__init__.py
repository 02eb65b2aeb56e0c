"""Pydantic models for the checkout relay."""

from .contact import (
    ONE_TIME_TAG,
    SMS_OPT_IN_TAG,
    SUBSCRIBER_TAG,
    ContactRecord,
    CustomFieldKey,
)
from .errors import ERROR_MESSAGES, ErrorCode, ErrorResponse, RelayError
from .stripe_webhook import (
    CheckoutSessionObject,
    CustomerDetails,
    CustomFieldAnswer,
    EventKind,
    InvoiceObject,
    SubscriptionObject,
    WebhookEvent,
)

__all__ = [
    # Contact
    "ContactRecord",
    "CustomFieldKey",
    "ONE_TIME_TAG",
    "SMS_OPT_IN_TAG",
    "SUBSCRIBER_TAG",
    # Errors
    "ERROR_MESSAGES",
    "ErrorCode",
    "ErrorResponse",
    "RelayError",
    # Stripe webhook
    "CheckoutSessionObject",
    "CustomerDetails",
    "CustomFieldAnswer",
    "EventKind",
    "InvoiceObject",
    "SubscriptionObject",
    "WebhookEvent",
]
