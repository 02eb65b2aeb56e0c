"""SSM Parameter Store service for secure secret retrieval.

Provides cached access to AWS SSM Parameter Store SecureString parameters.
Used as the fallback source for the Stripe keys and CRM credentials when
they are not set in the environment.
"""

import logging
from functools import lru_cache
from typing import Any

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class SSMServiceError(Exception):
    """Raised when SSM parameter retrieval fails."""

    pass


class SSMParameterNotFound(SSMServiceError):
    """Raised when the requested parameter does not exist."""

    pass


class SSMService:
    """Service for retrieving secrets from AWS SSM Parameter Store.

    Features:
    - Retrieves SecureString parameters with automatic decryption
    - In-process caching to avoid repeated API calls
    - Lazy boto3 client creation

    Usage:
        ssm = SSMService()
        stripe_key = ssm.get_parameter("/r4-relay/prod/stripe/secret_key")
    """

    def __init__(self, client: Any = None) -> None:
        """Initialize the service.

        Args:
            client: Optional boto3 SSM client (created on first use if omitted)
        """
        self._client = client
        self._cache: dict[str, str] = {}

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("ssm")
        return self._client

    def get_parameter(self, name: str, *, use_cache: bool = True) -> str:
        """Retrieve a parameter value from SSM Parameter Store.

        Args:
            name: Full parameter path (e.g., "/r4-relay/prod/stripe/secret_key")
            use_cache: Whether to use cached value if available (default: True)

        Returns:
            The decrypted parameter value.

        Raises:
            SSMParameterNotFound: If the parameter does not exist.
            SSMServiceError: If parameter cannot be retrieved.
        """
        if use_cache and name in self._cache:
            logger.debug("SSM cache hit for %s", name)
            return self._cache[name]

        try:
            logger.info("Fetching SSM parameter: %s", name)
            response = self._get_client().get_parameter(Name=name, WithDecryption=True)
            value = response["Parameter"]["Value"]

            self._cache[name] = value
            logger.debug("SSM parameter cached: %s", name)
            return value

        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code == "ParameterNotFound":
                raise SSMParameterNotFound(f"SSM parameter not found: {name}") from e
            if error_code == "AccessDeniedException":
                raise SSMServiceError(
                    f"Access denied to SSM parameter: {name}. "
                    "Check IAM permissions for ssm:GetParameter."
                ) from e
            raise SSMServiceError(
                f"Failed to retrieve SSM parameter {name}: {e}"
            ) from e

    def clear_cache(self) -> None:
        """Clear all cached parameters.

        Useful for testing or when parameters are known to have changed.
        """
        self._cache.clear()
        logger.info("SSM parameter cache cleared")


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Get the shared SSMService instance (singleton pattern).

    Returns:
        SSMService: Shared service instance.
    """
    return SSMService()
