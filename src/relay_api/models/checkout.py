"""API models for checkout, billing portal and read-back endpoints.

Request bodies use the camelCase keys the checkout pages send. Amounts are
accepted as numbers or numeric strings and validated by the route, so the
error message can name the field.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

_REQUEST_CONFIG = ConfigDict(
    populate_by_name=True,
    coerce_numbers_to_str=True,
    extra="ignore",
)


class _CheckoutFields(BaseModel):
    """Fields shared by both checkout requests."""

    model_config = _REQUEST_CONFIG

    part_number: Optional[str] = Field(
        default=None,
        alias="partNumber",
        description="Selected service plan part number",
        examples=["R4-100"],
    )
    service_summary: Optional[str] = Field(
        default=None,
        alias="serviceSummary",
        description="Human-readable list of selected services",
        examples=["HVAC tune-up, gutter cleaning"],
    )
    customer_email: Optional[str] = Field(
        default=None,
        alias="customerEmail",
        description="Prefills the checkout email field",
    )
    selector_phone: Optional[str] = Field(
        default=None,
        alias="selectorPhone",
        description="Phone number entered on the service selector",
    )
    sms_opt_in: Optional[Any] = Field(
        default=None,
        alias="smsOptIn",
        description="SMS consent answer from the service selector",
    )

    def checkout_metadata(self) -> dict[str, Any]:
        """Metadata shared by both purchase types (uncleaned)."""
        return {
            "partNumber": self.part_number,
            "serviceSummary": self.service_summary,
            "customerEmail": self.customer_email,
            "selectorPhone": self.selector_phone,
            "smsOptIn": self.sms_opt_in,
        }


class CheckoutRequest(_CheckoutFields):
    """Body for POST /api/create-checkout-session."""

    model_config = ConfigDict(
        **_REQUEST_CONFIG,
        json_schema_extra={
            "examples": [
                {
                    "partNumber": "R4-100",
                    "monthlyAmount": 49.99,
                    "serviceSummary": "HVAC tune-up",
                }
            ]
        },
    )

    monthly_amount: Optional[Any] = Field(
        default=None,
        alias="monthlyAmount",
        description="Monthly price in dollars (number or numeric string)",
        examples=[49.99, "49.99"],
    )


class OneTimeCheckoutRequest(_CheckoutFields):
    """Body for POST /api/create-one-time-checkout-session."""

    one_time_amount: Optional[Any] = Field(
        default=None,
        alias="oneTimeAmount",
        description="One-time price in dollars (number or numeric string)",
        examples=[149, "149.00"],
    )


class BillingPortalRequest(BaseModel):
    """Body for POST /api/create-billing-portal."""

    model_config = _REQUEST_CONFIG

    email: Optional[str] = Field(
        default=None,
        description="Email of the Stripe customer",
        examples=["customer@example.com"],
    )
    return_url: Optional[str] = Field(
        default=None,
        alias="returnUrl",
        description="Where the portal sends the customer back to",
    )


class CheckoutContactResponse(BaseModel):
    """Contact and purchase fields of a finished checkout session."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")
    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None
    purchase_type: Optional[str] = Field(default=None, alias="purchaseType")
    part_number: Optional[str] = Field(default=None, alias="partNumber")
    service_summary: Optional[str] = Field(default=None, alias="serviceSummary")
    monthly_amount: Optional[str] = Field(default=None, alias="monthlyAmount")
    one_time_amount: Optional[str] = Field(default=None, alias="oneTimeAmount")
    sms_opt_in: Optional[str] = Field(default=None, alias="smsOptIn")
    customer_id: Optional[str] = Field(default=None, alias="customerId")
    subscription_id: Optional[str] = Field(default=None, alias="subscriptionId")
