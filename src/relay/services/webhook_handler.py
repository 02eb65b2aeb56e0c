"""Webhook handler for verified Stripe events.

Routes each event to exactly one reconciler method by kind, then hands the
result to the propagator. Kept apart from HTTP routing so it can be unit
tested without a request.

Unrecognized kinds are acknowledged and ignored. A payload that does not
decode is logged and reported as an error result; nothing here raises into
the HTTP layer.
"""

from dataclasses import dataclass, field
from typing import Optional

from pydantic import ValidationError

from relay.models.stripe_webhook import (
    CheckoutSessionObject,
    EventKind,
    InvoiceObject,
    SubscriptionObject,
    WebhookEvent,
)
from relay.services.propagator import (
    STATUS_ERROR,
    STATUS_SKIPPED,
    DownstreamPropagator,
    PropagationOutcome,
)
from relay.services.reconciler import MetadataReconciler, ReconciledUpdate
from relay.utils.logging import get_logger, log_webhook_event

logger = get_logger(__name__)

RESULT_SUCCESS = "success"
RESULT_SKIPPED = "skipped"
RESULT_ERROR = "error"


@dataclass
class WebhookResult:
    """Summary of one handled delivery, used for logging."""

    event_id: Optional[str]
    kind: str
    processing_result: str
    outcomes: list[PropagationOutcome] = field(default_factory=list)
    error: Optional[str] = None


def _summarize(outcomes: list[PropagationOutcome]) -> str:
    if any(outcome.status == STATUS_ERROR for outcome in outcomes):
        return RESULT_ERROR
    if outcomes and all(outcome.status == STATUS_SKIPPED for outcome in outcomes):
        return RESULT_SKIPPED
    return RESULT_SUCCESS


class WebhookHandler:
    """Dispatches verified events to reconciliation and propagation."""

    def __init__(
        self,
        reconciler: MetadataReconciler,
        propagator: DownstreamPropagator,
    ) -> None:
        self._reconciler = reconciler
        self._propagator = propagator

    def _reconcile(self, kind: EventKind, event: WebhookEvent) -> ReconciledUpdate:
        if kind is EventKind.CHECKOUT_SESSION_COMPLETED:
            return self._reconciler.reconcile_checkout(
                CheckoutSessionObject.model_validate(event.object)
            )
        elif kind is EventKind.INVOICE_PAYMENT_SUCCEEDED:
            return self._reconciler.reconcile_invoice_paid(
                InvoiceObject.model_validate(event.object)
            )
        elif kind is EventKind.SUBSCRIPTION_UPDATED:
            return self._reconciler.reconcile_subscription_updated(
                SubscriptionObject.model_validate(event.object)
            )
        elif kind is EventKind.SUBSCRIPTION_DELETED:
            return self._reconciler.reconcile_subscription_deleted(
                SubscriptionObject.model_validate(event.object)
            )
        raise ValueError(f"No handler for event kind {kind}")

    def handle(self, event: WebhookEvent) -> WebhookResult:
        """Process a verified event.

        Args:
            event: Parsed webhook delivery

        Returns:
            WebhookResult with the processing result and per-target outcomes.
        """
        kind = event.event_kind
        if kind is None:
            log_webhook_event(logger, event.kind, event.id, result=RESULT_SKIPPED)
            return WebhookResult(event.id, event.kind, RESULT_SKIPPED)

        try:
            update = self._reconcile(kind, event)
        except ValidationError as e:
            error = f"Undecodable {kind.value} payload: {e.error_count()} error(s)"
            log_webhook_event(logger, event.kind, event.id, result=RESULT_ERROR, error=error)
            return WebhookResult(event.id, event.kind, RESULT_ERROR, error=error)

        # Outcomes are logged by the propagator; Stripe gets a 200 either way
        outcomes = self._propagator.propagate(update)
        result = _summarize(outcomes)

        log_webhook_event(
            logger,
            event.kind,
            event.id,
            customer_id=update.customer_id,
            result=result,
        )
        return WebhookResult(event.id, event.kind, result, outcomes=outcomes)
