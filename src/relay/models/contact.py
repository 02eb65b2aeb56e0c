"""Contact record pushed to the CRM."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

SUBSCRIBER_TAG = "R4-Subscriber"
ONE_TIME_TAG = "R4-One-Time"
SMS_OPT_IN_TAG = "SMS-Opt-In"


class CustomFieldKey(str, Enum):
    """Custom field keys configured on the CRM side."""

    PART_NUMBER = "part_number"
    SERVICE_SUMMARY = "service_summary"
    MONTHLY_AMOUNT = "monthly_amount"
    ONE_TIME_AMOUNT = "one_time_amount"
    STRIPE_CUSTOMER_ID = "stripe_customer_id"
    STRIPE_SUBSCRIPTION_ID = "stripe_subscription_id"
    SUBSCRIPTION_STATUS = "subscription_status"
    PHONE = "phone"
    SMS_OPT_IN = "sms_opt_in"
    SMS_OPT_IN_TIMESTAMP = "sms_opt_in_timestamp"


class ContactRecord(BaseModel):
    """Reconciled contact, built fresh for each event and never stored.

    Tags keep insertion order without duplicates. Custom field values are
    always non-empty strings.
    """

    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    custom_fields: dict[str, str] = Field(default_factory=dict)

    @property
    def has_identity(self) -> bool:
        """True when the CRM can key an upsert on email or phone."""
        return bool(self.email or self.phone)

    def add_tag(self, tag: str) -> None:
        if tag and tag not in self.tags:
            self.tags.append(tag)

    def set_field(self, key: CustomFieldKey, value: Optional[str]) -> None:
        """Set a custom field, ignoring blank values."""
        if value is None:
            return
        value = str(value).strip()
        if value:
            self.custom_fields[key.value] = value

    def to_upsert_payload(self, location_id: str) -> dict[str, Any]:
        """Build the JSON body for the CRM contact upsert endpoint."""
        payload: dict[str, Any] = {"locationId": location_id}
        if self.email:
            payload["email"] = self.email
        if self.phone:
            payload["phone"] = self.phone
        if self.name:
            payload["name"] = self.name
        if self.tags:
            payload["tags"] = list(self.tags)
        if self.custom_fields:
            payload["customFields"] = [
                {"key": key, "field_value": value}
                for key, value in self.custom_fields.items()
            ]
        return payload
