"""FastAPI application for the checkout relay.

Serves the checkout, billing portal and Stripe webhook endpoints under /api.
Runs on AWS Lambda through Mangum, or locally through uvicorn.
"""

import logging

from fastapi import FastAPI
from mangum import Mangum

from relay import __version__
from relay.utils.logging import configure_logging
from relay_api.exceptions import register_exception_handlers
from relay_api.middleware import CorrelationIdMiddleware, CorsMiddleware
from relay_api.routes import billing_router, checkout_router, webhooks_router

logger = logging.getLogger(__name__)
configure_logging(logging.INFO)

app = FastAPI(
    title="R4 Checkout Relay",
    description="Stripe checkout sessions and webhook relay into the CRM",
    version=__version__,
)

app.add_middleware(CorrelationIdMiddleware)
# Added last so it wraps everything, error responses included
app.add_middleware(CorsMiddleware)

register_exception_handlers(app)

app.include_router(checkout_router, prefix="/api")
app.include_router(billing_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")


# Lambda handler - Mangum wraps FastAPI for AWS Lambda + API Gateway
handler = Mangum(app, lifespan="off")


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = False) -> None:
    """Run the FastAPI server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: 8080)
        reload: Enable hot reload for development (default: False)
    """
    import uvicorn

    if reload:
        # Use string reference for reload mode (uvicorn requirement)
        uvicorn.run("relay_api.main:app", host=host, port=port, reload=True)
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
