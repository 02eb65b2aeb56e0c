"""Stripe webhook event models.

WebhookEvent wraps a verified delivery. The ``*Object`` models decode the
``data.object`` payload for each handled event kind. Every field is optional
and unknown fields are ignored, so partial or newer payloads still decode.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventKind(str, Enum):
    """Event types the relay acts on."""

    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"

    @classmethod
    def parse(cls, value: str | None) -> Optional["EventKind"]:
        """Return the matching kind, or None for types the relay ignores."""
        try:
            return cls(value)
        except ValueError:
            return None


class WebhookEvent(BaseModel):
    """A verified Stripe webhook delivery.

    Used for:
    - Routing: ``kind`` selects the handler
    - Logging: ``id`` and ``kind`` identify the delivery
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: Optional[str] = Field(
        default=None,
        description="Stripe event ID (evt_xxx)",
        examples=["evt_1ABC123DEF456"],
    )
    kind: str = Field(
        default="",
        alias="type",
        description="Stripe event type",
        examples=["checkout.session.completed", "invoice.payment_succeeded"],
    )
    created: Optional[int] = Field(
        default=None,
        description="Unix timestamp when Stripe created the event",
    )
    object: dict[str, Any] = Field(
        default_factory=dict,
        description="The data.object payload of the event",
    )

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "WebhookEvent":
        """Build an event from the parsed JSON body of a delivery."""
        data = payload.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        return cls(
            id=payload.get("id") if isinstance(payload.get("id"), str) else None,
            kind=str(payload.get("type") or ""),
            created=payload.get("created") if isinstance(payload.get("created"), int) else None,
            object=obj if isinstance(obj, dict) else {},
        )

    @property
    def event_kind(self) -> Optional[EventKind]:
        return EventKind.parse(self.kind)


class _StripePayload(BaseModel):
    """Base for decoded Stripe objects: lenient, unknown fields ignored."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


def _reference_id(value: Any) -> Optional[str]:
    """Return the ID of a Stripe reference that may be expanded."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        ref = value.get("id")
        return ref if isinstance(ref, str) and ref else None
    return None


class CustomerDetails(_StripePayload):
    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None


class _FieldValue(_StripePayload):
    value: Optional[str] = None


class CustomFieldAnswer(_StripePayload):
    """A Checkout custom field answer (dropdown, text or numeric)."""

    key: Optional[str] = None
    type: Optional[str] = None
    dropdown: Optional[_FieldValue] = None
    text: Optional[_FieldValue] = None
    numeric: Optional[_FieldValue] = None

    @property
    def answer(self) -> Optional[str]:
        for field_value in (self.dropdown, self.text, self.numeric):
            if field_value is not None and field_value.value is not None:
                return field_value.value
        return None


class CheckoutSessionObject(_StripePayload):
    """Subset of a Checkout Session consumed by the relay."""

    id: Optional[str] = None
    mode: Optional[str] = None
    customer: Any = None
    subscription: Any = None
    customer_email: Optional[str] = None
    customer_details: Optional[CustomerDetails] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    custom_fields: list[CustomFieldAnswer] = Field(default_factory=list)
    amount_total: Optional[int] = None

    @field_validator("metadata", mode="before")
    @classmethod
    def _null_metadata(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("custom_fields", mode="before")
    @classmethod
    def _null_custom_fields(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def customer_id(self) -> Optional[str]:
        return _reference_id(self.customer)

    @property
    def subscription_id(self) -> Optional[str]:
        return _reference_id(self.subscription)

    @property
    def expanded_customer(self) -> Optional[dict[str, Any]]:
        """The customer object when the session was retrieved with expansion."""
        return self.customer if isinstance(self.customer, dict) else None


class InvoiceStatusTransitions(_StripePayload):
    paid_at: Optional[int] = None


class InvoiceSubscriptionDetails(_StripePayload):
    subscription: Any = None


class InvoiceParent(_StripePayload):
    subscription_details: Optional[InvoiceSubscriptionDetails] = None


class InvoiceObject(_StripePayload):
    """Subset of an Invoice consumed by the relay."""

    id: Optional[str] = None
    customer: Any = None
    subscription: Any = None
    parent: Optional[InvoiceParent] = None
    amount_paid: Optional[int] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    status_transitions: Optional[InvoiceStatusTransitions] = None

    @property
    def customer_id(self) -> Optional[str]:
        return _reference_id(self.customer)

    @property
    def subscription_id(self) -> Optional[str]:
        """Subscription, falling back to ``parent.subscription_details`` on newer API versions."""
        subscription_id = _reference_id(self.subscription)
        if subscription_id is None and self.parent is not None:
            details = self.parent.subscription_details
            if details is not None:
                subscription_id = _reference_id(details.subscription)
        return subscription_id


class SubscriptionItem(_StripePayload):
    current_period_end: Optional[int] = None


class SubscriptionItems(_StripePayload):
    data: list[SubscriptionItem] = Field(default_factory=list)


class SubscriptionObject(_StripePayload):
    """Subset of a Subscription consumed by the relay."""

    id: Optional[str] = None
    customer: Any = None
    status: Optional[str] = None
    cancel_at_period_end: Optional[bool] = None
    current_period_end: Optional[int] = None
    items: Optional[SubscriptionItems] = None

    @property
    def customer_id(self) -> Optional[str]:
        return _reference_id(self.customer)

    @property
    def period_end(self) -> Optional[int]:
        """Period end, falling back to the first item on newer API versions."""
        if self.current_period_end is not None:
            return self.current_period_end
        if self.items is not None:
            for item in self.items.data:
                if item.current_period_end is not None:
                    return item.current_period_end
        return None
