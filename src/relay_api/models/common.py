"""Shared API models.

Domain errors (RelayError, ErrorResponse) live in relay.models.errors. This
module only adds the HTTP-layer formatting of request validation errors.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from relay.models.errors import ErrorCode, ErrorResponse

__all__ = [
    "ErrorCode",
    "ErrorResponse",
    "UrlResponse",
    "ValidationErrorDetail",
    "format_validation_errors",
]


class ValidationErrorDetail(BaseModel):
    """Detail of a single validation error."""

    model_config = ConfigDict(strict=True)

    loc: list[str] = Field(
        ...,
        description="Path to the field that failed validation",
        examples=[["body", "partNumber"]],
    )
    msg: str = Field(
        ...,
        description="Human-readable error message",
        examples=["Field required"],
    )
    type: str = Field(
        ...,
        description="Error type identifier",
        examples=["missing"],
    )


class UrlResponse(BaseModel):
    """A redirect target for the browser (checkout page or billing portal)."""

    url: str = Field(..., description="Hosted Stripe page URL")


def format_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert Pydantic validation errors to JSON-safe detail dicts.

    Args:
        errors: List of error dicts from ValidationError.errors()

    Returns:
        List of ``{loc, msg, type}`` dicts for the ``details`` field.
    """
    return [
        ValidationErrorDetail(
            loc=[str(loc) for loc in error.get("loc", [])],
            msg=str(error.get("msg", "")),
            type=str(error.get("type", "")),
        ).model_dump()
        for error in errors
    ]
