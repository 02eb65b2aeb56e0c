"""Metadata reconciliation for webhook events.

Merges fields from the event payload, the checkout session and, when needed,
a live Stripe customer lookup into:

- a cleaned mapping written to the Stripe customer's metadata
- a ContactRecord for the CRM upsert

Field resolution is first-non-empty-wins. The live customer is fetched at
most once per event, and only when a field is still missing.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from relay.models.contact import (
    ONE_TIME_TAG,
    SMS_OPT_IN_TAG,
    SUBSCRIBER_TAG,
    ContactRecord,
    CustomFieldKey,
)
from relay.models.stripe_webhook import (
    CheckoutSessionObject,
    InvoiceObject,
    SubscriptionObject,
)
from relay.utils.logging import get_logger
from relay.utils.metadata import clean_metadata, clean_value
from relay.utils.money import format_cents

logger = get_logger(__name__)

PURCHASE_SUBSCRIPTION = "subscription"
PURCHASE_ONE_TIME = "one_time"

CONSENT_YES = "yes"
CONSENT_NO = "no"
_CONSENT_TRUE_VALUES = frozenset({"true", "1", "yes", "y"})

SMS_OPT_IN_FIELD_KEY = "smsoptin"

CustomerLookup = Callable[[str], Optional[dict[str, Any]]]
Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(value: datetime) -> str:
    """ISO-8601 in UTC with a ``Z`` suffix, e.g. ``2024-05-01T12:00:00Z``."""
    return value.astimezone(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def epoch_to_iso(seconds: int) -> str:
    return isoformat_utc(datetime.fromtimestamp(seconds, tz=timezone.utc))


def normalize_sms_consent(value: Any) -> str:
    """Normalize a consent answer to ``"yes"`` or ``"no"``.

    >>> normalize_sms_consent("Y")
    'yes'
    >>> normalize_sms_consent("maybe")
    'no'
    """
    if isinstance(value, bool):
        return CONSENT_YES if value else CONSENT_NO
    if value is None:
        return CONSENT_NO
    return CONSENT_YES if str(value).strip().lower() in _CONSENT_TRUE_VALUES else CONSENT_NO


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """Trim a phone number and add the +1 prefix to bare US numbers.

    Anything that is not 10 digits, or 11 digits starting with 1, is returned
    as given.
    """
    text = clean_value(value)
    if text is None:
        return None
    if text.startswith("+"):
        return text
    digits = re.sub(r"\D", "", text)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return text


def _normalize_field_key(key: Optional[str]) -> str:
    return re.sub(r"[^a-z0-9]", "", (key or "").lower())


def _first(*values: Any) -> Optional[str]:
    for value in values:
        cleaned = clean_value(value)
        if cleaned is not None:
            return cleaned
    return None


@dataclass
class ContactIdentity:
    """Email, phone and name resolved for a checkout session."""

    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None


@dataclass
class ReconciledUpdate:
    """Everything the propagator needs for one event."""

    customer_id: Optional[str] = None
    customer_metadata: dict[str, str] = field(default_factory=dict)
    contact: Optional[ContactRecord] = None


class MetadataReconciler:
    """Builds reconciled updates from decoded webhook payloads.

    Usage:
        reconciler = MetadataReconciler(customer_lookup=stripe_svc.retrieve_customer)
        update = reconciler.reconcile_checkout(session)
    """

    def __init__(
        self,
        customer_lookup: Optional[CustomerLookup] = None,
        now: Clock = _utc_now,
    ) -> None:
        """Initialize the reconciler.

        Args:
            customer_lookup: Returns a Stripe customer dict for an ID, or None.
                Omit to disable live lookups.
            now: Clock used for processing-time timestamps.
        """
        self._customer_lookup = customer_lookup
        self._now = now

    # === Shared resolution ===

    def _lookup_customer(self, customer_id: Optional[str]) -> Optional[dict[str, Any]]:
        if not customer_id or self._customer_lookup is None:
            return None
        try:
            customer = self._customer_lookup(customer_id)
        except Exception as e:
            logger.warning("Customer lookup failed for %s: %s", customer_id, e)
            return None
        return customer if isinstance(customer, dict) else None

    def resolve_contact(self, session: CheckoutSessionObject) -> ContactIdentity:
        """Resolve email, phone and name for a checkout session.

        An expanded customer on the session is used directly. Otherwise the
        customer is looked up once, only if a field is still missing.
        """
        details = session.customer_details
        metadata = session.metadata

        identity = ContactIdentity(
            email=_first(
                details.email if details else None,
                session.customer_email,
                metadata.get("customerEmail"),
            ),
            phone=_first(
                details.phone if details else None,
                metadata.get("selectorPhone"),
            ),
            name=_first(details.name if details else None),
        )

        if identity.email and identity.phone and identity.name:
            return self._finish_identity(identity)

        customer = session.expanded_customer
        if customer is None:
            customer = self._lookup_customer(session.customer_id)
        if customer:
            identity.email = identity.email or _first(customer.get("email"))
            identity.phone = identity.phone or _first(customer.get("phone"))
            identity.name = identity.name or _first(customer.get("name"))

        return self._finish_identity(identity)

    @staticmethod
    def _finish_identity(identity: ContactIdentity) -> ContactIdentity:
        identity.phone = normalize_phone(identity.phone)
        return identity

    @staticmethod
    def sms_consent_answer(session: CheckoutSessionObject) -> Optional[str]:
        """Raw consent answer from metadata or the ``smsoptin`` custom field."""
        answer = clean_value(session.metadata.get("smsOptIn"))
        if answer is not None:
            return answer
        for custom_field in session.custom_fields:
            if _normalize_field_key(custom_field.key) == SMS_OPT_IN_FIELD_KEY:
                answer = clean_value(custom_field.answer)
                if answer is not None:
                    return answer
        return None

    @staticmethod
    def purchase_type(session: CheckoutSessionObject) -> str:
        purchase = clean_value(session.metadata.get("purchaseType"))
        if purchase == PURCHASE_ONE_TIME or session.mode == "payment":
            return PURCHASE_ONE_TIME
        return PURCHASE_SUBSCRIPTION

    # === Event kinds ===

    def reconcile_checkout(self, session: CheckoutSessionObject) -> ReconciledUpdate:
        """Reconcile a completed checkout session."""
        identity = self.resolve_contact(session)
        metadata = session.metadata
        purchase = self.purchase_type(session)
        customer_id = session.customer_id
        subscription_id = session.subscription_id

        amount_key = "oneTimeAmount" if purchase == PURCHASE_ONE_TIME else "monthlyAmount"
        amount = clean_value(metadata.get(amount_key))
        if amount is None and session.amount_total is not None:
            amount = format_cents(session.amount_total)

        consent_answer = self.sms_consent_answer(session)
        consent = None
        consent_at = None
        if consent_answer is not None:
            consent = normalize_sms_consent(consent_answer)
            consent_at = isoformat_utc(self._now())

        status = "active" if purchase == PURCHASE_SUBSCRIPTION else None

        customer_metadata = clean_metadata(
            {
                "partNumber": metadata.get("partNumber"),
                "serviceSummary": metadata.get("serviceSummary"),
                amount_key: amount,
                "purchaseType": purchase,
                "stripeCustomerId": customer_id,
                "subscriptionId": subscription_id,
                "subscriptionStatus": status,
                "lastCheckoutSessionId": session.id,
                "phone": identity.phone,
                "smsOptIn": consent,
                "smsOptInAt": consent_at,
            }
        )

        contact = ContactRecord(email=identity.email, phone=identity.phone, name=identity.name)
        contact.add_tag(ONE_TIME_TAG if purchase == PURCHASE_ONE_TIME else SUBSCRIBER_TAG)
        if consent == CONSENT_YES:
            contact.add_tag(SMS_OPT_IN_TAG)

        contact.set_field(CustomFieldKey.PART_NUMBER, metadata.get("partNumber"))
        contact.set_field(CustomFieldKey.SERVICE_SUMMARY, metadata.get("serviceSummary"))
        if purchase == PURCHASE_ONE_TIME:
            contact.set_field(CustomFieldKey.ONE_TIME_AMOUNT, amount)
        else:
            contact.set_field(CustomFieldKey.MONTHLY_AMOUNT, amount)
        contact.set_field(CustomFieldKey.STRIPE_CUSTOMER_ID, customer_id)
        contact.set_field(CustomFieldKey.STRIPE_SUBSCRIPTION_ID, subscription_id)
        contact.set_field(CustomFieldKey.SUBSCRIPTION_STATUS, status)
        contact.set_field(CustomFieldKey.PHONE, identity.phone)
        contact.set_field(CustomFieldKey.SMS_OPT_IN, consent)
        contact.set_field(CustomFieldKey.SMS_OPT_IN_TIMESTAMP, consent_at)

        return ReconciledUpdate(
            customer_id=customer_id,
            customer_metadata=customer_metadata,
            contact=contact,
        )

    def reconcile_invoice_paid(self, invoice: InvoiceObject) -> ReconciledUpdate:
        """Reconcile a paid invoice."""
        paid_at = invoice.status_transitions.paid_at if invoice.status_transitions else None
        paid_at_iso = epoch_to_iso(paid_at) if paid_at is not None else isoformat_utc(self._now())
        amount = format_cents(invoice.amount_paid) if invoice.amount_paid is not None else None
        subscription_id = invoice.subscription_id

        customer_metadata = clean_metadata(
            {
                "lastInvoiceId": invoice.id,
                "lastPaidAt": paid_at_iso,
                "lastAmountPaid": amount,
                "subscriptionId": subscription_id,
            }
        )

        contact = ContactRecord(
            email=_first(invoice.customer_email),
            phone=normalize_phone(invoice.customer_phone),
            name=_first(invoice.customer_name),
        )
        if subscription_id:
            contact.add_tag(SUBSCRIBER_TAG)
            contact.set_field(CustomFieldKey.MONTHLY_AMOUNT, amount)
            contact.set_field(CustomFieldKey.STRIPE_SUBSCRIPTION_ID, subscription_id)
        contact.set_field(CustomFieldKey.STRIPE_CUSTOMER_ID, invoice.customer_id)
        contact.set_field(CustomFieldKey.PHONE, contact.phone)

        return ReconciledUpdate(
            customer_id=invoice.customer_id,
            customer_metadata=customer_metadata,
            contact=contact,
        )

    def reconcile_subscription_updated(self, subscription: SubscriptionObject) -> ReconciledUpdate:
        """Reconcile a subscription change. No contact record is produced."""
        cancel_flag = None
        if subscription.cancel_at_period_end is not None:
            cancel_flag = "true" if subscription.cancel_at_period_end else "false"
        period_end = subscription.period_end

        return ReconciledUpdate(
            customer_id=subscription.customer_id,
            customer_metadata=clean_metadata(
                {
                    "subscriptionStatus": subscription.status,
                    "cancelAtPeriodEnd": cancel_flag,
                    "currentPeriodEnd": epoch_to_iso(period_end) if period_end is not None else None,
                    "subscriptionId": subscription.id,
                }
            ),
        )

    def reconcile_subscription_deleted(self, subscription: SubscriptionObject) -> ReconciledUpdate:
        """Reconcile a canceled subscription. No contact record is produced."""
        return ReconciledUpdate(
            customer_id=subscription.customer_id,
            customer_metadata=clean_metadata(
                {
                    "subscriptionStatus": "canceled",
                    "cancelAtPeriodEnd": "false",
                    "subscriptionId": subscription.id,
                }
            ),
        )
