"""ASGI middleware for the relay API."""

from relay_api.middleware.correlation import CorrelationIdMiddleware
from relay_api.middleware.cors import CorsMiddleware

__all__ = ["CorrelationIdMiddleware", "CorsMiddleware"]
