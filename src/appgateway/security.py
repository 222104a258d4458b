"""Security enforcement for secretless authentication.

The provisioning driver authenticates with a managed identity. Developers
running the CLI locally may opt in to their `az login` session instead.
Service principal secrets, certificates and passwords are never accepted.

SECURITY INVARIANTS:
1. AZURE_CLIENT_SECRET and related variables must never be present
2. Credentials are obtained only through get_credential()
"""

from __future__ import annotations

import logging
import os

from azure.core.credentials import TokenCredential
from azure.identity import AzureCliCredential, ManagedIdentityCredential

logger = logging.getLogger(__name__)

# Environment variables that indicate credential leakage
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AZURE_CLIENT_SECRET",
    "AZURE_CLIENT_CERTIFICATE_PATH",
    "AZURE_CLIENT_CERTIFICATE_PASSWORD",
    "AZURE_USERNAME",
    "AZURE_PASSWORD",
)

SECRETLESS_VIOLATION_MESSAGE = (
    "Secretless authentication violated: {env_var} is set.\n"
    "Remove credential environment variables and authenticate with a "
    "managed identity (or `az login` with USE_AZURE_CLI_CREDENTIAL=true)."
)


class SecretlessViolationError(Exception):
    """Raised when credential secrets are found in the environment.

    This is fatal: no Azure call may be made once it is raised.
    """

    pass


def enforce_secretless_architecture() -> None:
    """Refuse to continue if any credential secret is in the environment.

    Raises:
        SecretlessViolationError: If a forbidden variable is set.
    """
    for env_var in FORBIDDEN_CREDENTIAL_ENV_VARS:
        if os.environ.get(env_var):
            logger.critical(
                "Secretless architecture violation",
                extra={
                    "security_event": "credential_detected",
                    "env_var": env_var,
                    "action": "startup_blocked",
                },
            )
            raise SecretlessViolationError(SECRETLESS_VIOLATION_MESSAGE.format(env_var=env_var))

    logger.debug("Secretless architecture verified", extra={"security_event": "secretless_verified"})


def get_credential(
    client_id: str | None = None,
    use_cli_credential: bool = False,
) -> TokenCredential:
    """Return an Azure credential after verifying the environment is secretless.

    Args:
        client_id: Client ID of a user-assigned managed identity. None selects
            the system-assigned identity.
        use_cli_credential: Use the developer's Azure CLI login instead of a
            managed identity.

    Raises:
        SecretlessViolationError: If credential environment variables are set.
    """
    enforce_secretless_architecture()

    if use_cli_credential:
        logger.info("Using Azure CLI credential", extra={"credential_type": "AzureCli"})
        return AzureCliCredential()

    if client_id:
        logger.info(
            "Using user-assigned managed identity",
            extra={
                "credential_type": "ManagedIdentity",
                "client_id": client_id[:8] + "..." if len(client_id) > 8 else client_id,
            },
        )
        return ManagedIdentityCredential(client_id=client_id)

    logger.info("Using system-assigned managed identity", extra={"credential_type": "ManagedIdentity"})
    return ManagedIdentityCredential()
