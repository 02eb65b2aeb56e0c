"""Domain package for the R4 checkout relay.

Models, Stripe/CRM service clients and the webhook reconciliation logic.
HTTP concerns live in the ``relay_api`` package.
"""

__version__ = "0.1.0"
