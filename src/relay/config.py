"""Runtime configuration for the relay.

Settings come from environment variables. Secrets that are not in the
environment are looked up in SSM Parameter Store under ``SSM_PARAMETER_PREFIX``
when that prefix is set, e.g. ``/r4-relay/prod/stripe/secret_key``.

Missing secrets are not an error at load time. Code that needs a secret calls
``require_*`` and gets a ConfigurationError, which the API maps to HTTP 500.
The CRM credentials are optional: without them contact propagation is off.
"""

import logging
import os
from collections.abc import Mapping
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, ConfigDict

from relay.services.ssm_service import (
    SSMParameterNotFound,
    SSMService,
    SSMServiceError,
    get_ssm_service,
)

logger = logging.getLogger(__name__)

DEFAULT_CRM_BASE_URL = "https://services.leadconnectorhq.com"
DEFAULT_CRM_API_VERSION = "2021-07-28"
DEFAULT_SUCCESS_URL = (
    "https://r4homeservice.com/stripe-success?session_id={CHECKOUT_SESSION_ID}"
)
DEFAULT_CANCEL_URL = "https://r4homeservice.com/stripe-cancel"
DEFAULT_PORTAL_RETURN_URL = "https://r4homeservice.com"

# setting name -> (env var, SSM suffix)
_SECRETS: dict[str, tuple[str, str]] = {
    "stripe_secret_key": ("STRIPE_SECRET_KEY", "stripe/secret_key"),
    "stripe_webhook_secret": ("STRIPE_WEBHOOK_SECRET", "stripe/webhook_secret"),
    "crm_api_token": ("CRM_API_TOKEN", "crm/api_token"),
    "crm_location_id": ("CRM_LOCATION_ID", "crm/location_id"),
}

_PLAIN: dict[str, str] = {
    "environment": "ENVIRONMENT",
    "crm_base_url": "CRM_BASE_URL",
    "crm_api_version": "CRM_API_VERSION",
    "crm_timeout_seconds": "CRM_TIMEOUT_SECONDS",
    "webhook_tolerance_seconds": "STRIPE_WEBHOOK_TOLERANCE_SECONDS",
    "checkout_success_url": "CHECKOUT_SUCCESS_URL",
    "checkout_cancel_url": "CHECKOUT_CANCEL_URL",
    "billing_portal_return_url": "BILLING_PORTAL_RETURN_URL",
}


class ConfigurationError(Exception):
    """Raised when a required setting is missing or unreadable."""

    def __init__(self, setting: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Missing required setting: {setting}")
        self.setting = setting


class RelaySettings(BaseModel):
    """Resolved relay settings."""

    model_config = ConfigDict(frozen=True)

    environment: str = "dev"

    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    webhook_tolerance_seconds: int = 300

    crm_api_token: Optional[str] = None
    crm_location_id: Optional[str] = None
    crm_base_url: str = DEFAULT_CRM_BASE_URL
    crm_api_version: str = DEFAULT_CRM_API_VERSION
    crm_timeout_seconds: float = 10.0

    checkout_success_url: str = DEFAULT_SUCCESS_URL
    checkout_cancel_url: str = DEFAULT_CANCEL_URL
    billing_portal_return_url: str = DEFAULT_PORTAL_RETURN_URL

    @property
    def crm_enabled(self) -> bool:
        return bool(self.crm_api_token and self.crm_location_id)

    @property
    def webhook_tolerance(self) -> Optional[int]:
        """Replay window in seconds, or None when the check is disabled."""
        return self.webhook_tolerance_seconds if self.webhook_tolerance_seconds > 0 else None

    def require_stripe_secret_key(self) -> str:
        if not self.stripe_secret_key:
            raise ConfigurationError("STRIPE_SECRET_KEY")
        return self.stripe_secret_key

    def require_webhook_secret(self) -> str:
        if not self.stripe_webhook_secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET")
        return self.stripe_webhook_secret


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    ssm: Optional[SSMService] = None,
) -> RelaySettings:
    """Resolve settings from the environment, falling back to SSM for secrets.

    Args:
        environ: Mapping to read instead of os.environ
        ssm: SSM service to use instead of the shared instance

    Returns:
        Resolved RelaySettings.

    Raises:
        ConfigurationError: If SSM is configured but cannot be read.
    """
    env = os.environ if environ is None else environ
    values: dict[str, object] = {}

    for field, env_var in _PLAIN.items():
        value = _clean(env.get(env_var))
        if value is not None:
            values[field] = value

    prefix = _clean(env.get("SSM_PARAMETER_PREFIX"))
    for field, (env_var, ssm_suffix) in _SECRETS.items():
        value = _clean(env.get(env_var))
        if value is None and prefix:
            ssm = ssm or get_ssm_service()
            name = f"{prefix.rstrip('/')}/{ssm_suffix}"
            try:
                value = _clean(ssm.get_parameter(name))
            except SSMParameterNotFound:
                logger.info("Setting %s not found in SSM (%s)", env_var, name)
            except SSMServiceError as e:
                raise ConfigurationError(env_var, f"Failed to read {env_var}: {e}") from e
        if value is not None:
            values[field] = value

    settings = RelaySettings(**values)
    logger.info(
        "Settings loaded for environment %s (crm_enabled=%s)",
        settings.environment,
        settings.crm_enabled,
    )
    return settings


@lru_cache(maxsize=1)
def get_settings() -> RelaySettings:
    """Get the shared settings instance (loaded once per process)."""
    return load_settings()
