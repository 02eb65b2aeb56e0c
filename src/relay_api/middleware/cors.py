"""CORS handling for the browser-facing checkout endpoints.

The checkout pages call the relay from other origins, so every response
reflects the request Origin (or ``*``). Preflight requests are answered here,
before routing, for any path.
"""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.status import HTTP_204_NO_CONTENT

ALLOWED_METHODS = "GET, POST, OPTIONS"
ALLOWED_HEADERS = "Content-Type"


def cors_headers(origin: str | None) -> dict[str, str]:
    """Headers added to every response for ``origin``."""
    return {
        "Access-Control-Allow-Origin": origin or "*",
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
        "Vary": "Origin",
    }


class CorsMiddleware(BaseHTTPMiddleware):
    """Reflects the request Origin and short-circuits OPTIONS requests."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        headers = cors_headers(request.headers.get("origin"))

        if request.method == "OPTIONS":
            return Response(status_code=HTTP_204_NO_CONTENT, headers=headers)

        response = await call_next(request)
        response.headers.update(headers)
        return response
