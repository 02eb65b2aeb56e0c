"""Downstream propagation of reconciled updates.

Two independent, best-effort calls per event: the Stripe customer metadata
update and the CRM contact upsert. Each call returns a PropagationOutcome
instead of raising, so one failing target never blocks the other.
"""

from dataclasses import dataclass
from typing import Optional

from relay.config import ConfigurationError
from relay.models.contact import ContactRecord
from relay.services.contact_client import ContactClient, ContactClientError
from relay.services.reconciler import ReconciledUpdate
from relay.services.stripe_service import StripeService, StripeServiceError
from relay.utils.logging import get_logger, log_propagation
from relay.utils.metadata import clean_metadata

logger = get_logger(__name__)

TARGET_CUSTOMER_METADATA = "stripe_customer_metadata"
TARGET_CRM_CONTACT = "crm_contact"

STATUS_SUCCESS = "success"
STATUS_SKIPPED = "skipped"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class PropagationOutcome:
    """Result of one downstream call."""

    target: str
    status: str
    status_code: Optional[int] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != STATUS_ERROR


class DownstreamPropagator:
    """Pushes reconciled data to Stripe and the CRM.

    The CRM client is optional; without it contact upserts are skipped.
    """

    def __init__(
        self,
        stripe_service: StripeService,
        contact_client: Optional[ContactClient] = None,
    ) -> None:
        self._stripe = stripe_service
        self._contacts = contact_client

    def _record(self, outcome: PropagationOutcome, **extra) -> PropagationOutcome:
        log_propagation(
            logger,
            outcome.target,
            outcome.status,
            status_code=outcome.status_code,
            detail=outcome.detail,
            **extra,
        )
        return outcome

    def update_customer_metadata(
        self,
        customer_id: Optional[str],
        fields: dict[str, str],
    ) -> PropagationOutcome:
        """Merge cleaned ``fields`` into the customer's Stripe metadata."""
        cleaned = clean_metadata(fields)
        if not customer_id:
            return self._record(
                PropagationOutcome(TARGET_CUSTOMER_METADATA, STATUS_SKIPPED, detail="no customer id")
            )
        if not cleaned:
            return self._record(
                PropagationOutcome(TARGET_CUSTOMER_METADATA, STATUS_SKIPPED, detail="no fields"),
                customer_id=customer_id,
            )

        try:
            self._stripe.update_customer_metadata(customer_id, cleaned)
        except (StripeServiceError, ConfigurationError) as e:
            return self._record(
                PropagationOutcome(
                    TARGET_CUSTOMER_METADATA,
                    STATUS_ERROR,
                    status_code=getattr(e, "http_status", None),
                    detail=str(e),
                ),
                customer_id=customer_id,
            )

        return self._record(
            PropagationOutcome(TARGET_CUSTOMER_METADATA, STATUS_SUCCESS),
            customer_id=customer_id,
            fields=len(cleaned),
        )

    def upsert_contact(self, record: Optional[ContactRecord]) -> PropagationOutcome:
        """Create or update the CRM contact for ``record``."""
        if record is None or not record.has_identity:
            return self._record(
                PropagationOutcome(TARGET_CRM_CONTACT, STATUS_SKIPPED, detail="no email or phone")
            )
        if self._contacts is None:
            return self._record(
                PropagationOutcome(TARGET_CRM_CONTACT, STATUS_SKIPPED, detail="crm not configured")
            )

        try:
            self._contacts.upsert_contact(record)
        except ContactClientError as e:
            return self._record(
                PropagationOutcome(
                    TARGET_CRM_CONTACT,
                    STATUS_ERROR,
                    status_code=e.status_code,
                    detail=e.body or str(e),
                )
            )

        return self._record(
            PropagationOutcome(TARGET_CRM_CONTACT, STATUS_SUCCESS),
            tags=",".join(record.tags),
        )

    def propagate(self, update: ReconciledUpdate) -> list[PropagationOutcome]:
        """Run both calls for an update, the contact upsert only when present."""
        outcomes = [self.update_customer_metadata(update.customer_id, update.customer_metadata)]
        if update.contact is not None:
            outcomes.append(self.upsert_contact(update.contact))
        return outcomes
