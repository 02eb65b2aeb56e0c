"""FastAPI dependency injection providers for relay services.

Services are lazily instantiated and cached with @lru_cache, so each process
builds one Stripe service, one CRM client and one webhook handler. The
settings, Stripe and CRM providers are the shared singletons from the relay
package.

Usage in routes:
    from relay_api.dependencies import get_stripe_service

    @router.post("/create-checkout-session")
    async def create_checkout_session(
        stripe_svc: StripeService = Depends(get_stripe_service),
    ):
        ...

Service Dependency Graph:
    RelaySettings (get_settings)
        ├── StripeService
        │       └── MetadataReconciler (live customer lookup)
        └── ContactClient (None when the CRM is not configured)
    DownstreamPropagator(StripeService, ContactClient)
    WebhookHandler(MetadataReconciler, DownstreamPropagator)

Testing:
    Override these providers with app.dependency_overrides, and call
    reset_services() to clear cached instances between tests.
"""

from functools import lru_cache

from relay.config import get_settings
from relay.services.contact_client import get_contact_client
from relay.services.propagator import DownstreamPropagator
from relay.services.reconciler import MetadataReconciler
from relay.services.stripe_service import get_stripe_service
from relay.services.webhook_handler import WebhookHandler

__all__ = [
    "get_contact_client",
    "get_reconciler",
    "get_settings",
    "get_stripe_service",
    "get_webhook_handler",
    "reset_services",
]


@lru_cache
def get_reconciler() -> MetadataReconciler:
    """Get cached MetadataReconciler backed by live Stripe customer lookups."""
    return MetadataReconciler(customer_lookup=get_stripe_service().retrieve_customer)


@lru_cache
def get_webhook_handler() -> WebhookHandler:
    """Get cached WebhookHandler wired to Stripe and the CRM."""
    return WebhookHandler(
        reconciler=get_reconciler(),
        propagator=DownstreamPropagator(
            stripe_service=get_stripe_service(),
            contact_client=get_contact_client(),
        ),
    )


def reset_services() -> None:
    """Clear all cached service instances and the loaded settings.

    Example:
        @pytest.fixture(autouse=True)
        def reset_state():
            yield
            reset_services()
    """
    get_stripe_service.cache_clear()
    get_contact_client.cache_clear()
    get_reconciler.cache_clear()
    get_webhook_handler.cache_clear()
    get_settings.cache_clear()
