"""HTTP layer for the checkout relay (FastAPI)."""
