"""Service layer for the checkout relay.

Modules:
- signature: Stripe webhook signature verification
- stripe_service: Stripe API calls (checkout, billing portal, customers)
- contact_client: CRM contact upsert
- reconciler: builds contact records and customer metadata from events
- propagator: pushes reconciled data downstream
- webhook_handler: routes verified events to their handlers
- ssm_service: SSM Parameter Store access for secrets
"""
