"""Standard error codes for the checkout relay.

Every failure surfaced to an HTTP caller is described by an ErrorCode.
Routes raise RelayError; relay_api.exceptions converts it to an ErrorResponse
with the matching HTTP status.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Standard error codes returned in the ``error_code`` field."""

    # Request errors (ERR_REQ_001-ERR_REQ_006)
    INVALID_JSON = "ERR_REQ_001"
    MISSING_FIELDS = "ERR_REQ_002"
    INVALID_AMOUNT = "ERR_REQ_003"
    VALIDATION_FAILED = "ERR_REQ_004"
    NOT_FOUND = "ERR_REQ_005"
    METHOD_NOT_ALLOWED = "ERR_REQ_006"

    # Stripe errors (ERR_STRIPE_001-ERR_STRIPE_004)
    INVALID_WEBHOOK_SIGNATURE = "ERR_STRIPE_001"
    MISSING_WEBHOOK_SIGNATURE = "ERR_STRIPE_002"
    STRIPE_API_ERROR = "ERR_STRIPE_003"
    CUSTOMER_NOT_FOUND = "ERR_STRIPE_004"

    # Server configuration
    CONFIGURATION_ERROR = "ERR_CONFIG_001"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_JSON: "Invalid JSON",
    ErrorCode.MISSING_FIELDS: "Missing required fields",
    ErrorCode.INVALID_AMOUNT: "Amount must be a positive number",
    ErrorCode.VALIDATION_FAILED: "Request validation failed",
    ErrorCode.NOT_FOUND: "Not Found",
    ErrorCode.METHOD_NOT_ALLOWED: "Method Not Allowed",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Invalid webhook signature",
    ErrorCode.MISSING_WEBHOOK_SIGNATURE: "Missing Stripe-Signature",
    ErrorCode.STRIPE_API_ERROR: "Stripe error",
    ErrorCode.CUSTOMER_NOT_FOUND: "No customer found for that email",
    ErrorCode.CONFIGURATION_ERROR: "Server is not configured",
}


class ErrorResponse(BaseModel):
    """JSON body returned for every failed request."""

    model_config = ConfigDict(strict=True)

    error: str
    error_code: str
    details: Optional[Any] = None


class RelayError(Exception):
    """Exception raised by relay operations that map to an HTTP error.

    Args:
        code: The error code
        details: Optional structured context (provider error, field names...)
        message: Overrides the default message for the code
    """

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[Any] = None,
        message: Optional[str] = None,
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES[code]
        self.details = details
        super().__init__(self.message)

    def to_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse body."""
        return ErrorResponse(
            error=self.message,
            error_code=self.code.value,
            details=self.details,
        )
