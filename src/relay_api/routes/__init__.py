"""API routes package.

Routers are organized by domain:

- checkout: subscription and one-time checkout sessions, session read-back
- billing: billing portal sessions
- webhooks: Stripe webhook ingestion

All routers are registered in main.py with /api prefix.
"""

from relay_api.routes.billing import router as billing_router
from relay_api.routes.checkout import router as checkout_router
from relay_api.routes.webhooks import router as webhooks_router

__all__ = [
    "billing_router",
    "checkout_router",
    "webhooks_router",
]
