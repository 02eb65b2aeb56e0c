"""CRM contact client.

Wraps the LeadConnector (HighLevel) contacts API. The only call the relay
needs is the upsert, which creates or updates a contact matched by email or
phone within a location.
"""

import logging
from functools import lru_cache
from typing import Any

import httpx

from relay.config import RelaySettings, get_settings
from relay.models.contact import ContactRecord

logger = logging.getLogger(__name__)

UPSERT_PATH = "/contacts/upsert"
MAX_LOGGED_BODY = 2000


class ContactClientError(Exception):
    """Raised when the CRM rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ContactClient:
    """Client for the CRM contacts API.

    Usage:
        client = ContactClient(api_token="pit-...", location_id="loc_123")
        result = client.upsert_contact(record)
    """

    def __init__(
        self,
        *,
        api_token: str,
        location_id: str,
        base_url: str,
        api_version: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_token: Private integration token for the location
            location_id: CRM location (sub-account) the contacts belong to
            base_url: API root, e.g. https://services.leadconnectorhq.com
            api_version: Value for the ``Version`` header
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self._location_id = location_id
        self._http = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_token}",
                "Version": api_version,
                "Accept": "application/json",
            },
        )

    @classmethod
    def from_settings(
        cls,
        settings: RelaySettings,
        transport: httpx.BaseTransport | None = None,
    ) -> "ContactClient | None":
        """Build a client from settings, or None when the CRM is not configured."""
        if not settings.crm_enabled:
            return None
        return cls(
            api_token=settings.crm_api_token or "",
            location_id=settings.crm_location_id or "",
            base_url=settings.crm_base_url,
            api_version=settings.crm_api_version,
            timeout=settings.crm_timeout_seconds,
            transport=transport,
        )

    def upsert_contact(self, record: ContactRecord) -> dict[str, Any]:
        """Create or update a contact.

        Args:
            record: Reconciled contact (must have email or phone)

        Returns:
            Parsed JSON response from the CRM.

        Raises:
            ContactClientError: On transport failure or a non-2xx response.
        """
        payload = record.to_upsert_payload(self._location_id)

        try:
            response = self._http.post(UPSERT_PATH, json=payload)
        except httpx.HTTPError as e:
            logger.error("CRM upsert request failed: %s", e)
            raise ContactClientError(f"CRM request failed: {e}") from e

        if response.is_error:
            body = response.text[:MAX_LOGGED_BODY]
            logger.error(
                "CRM upsert rejected: status=%s body=%s",
                response.status_code,
                body,
            )
            raise ContactClientError(
                f"CRM upsert failed with status {response.status_code}",
                status_code=response.status_code,
                body=body,
            )

        try:
            data = response.json()
        except ValueError:
            data = {}

        contact = data.get("contact") if isinstance(data, dict) else None
        logger.info(
            "CRM contact upserted: id=%s new=%s",
            contact.get("id") if isinstance(contact, dict) else None,
            data.get("new") if isinstance(data, dict) else None,
        )
        return data if isinstance(data, dict) else {}


@lru_cache(maxsize=1)
def get_contact_client() -> ContactClient | None:
    """Get the shared ContactClient, or None when the CRM is not configured."""
    return ContactClient.from_settings(get_settings())
