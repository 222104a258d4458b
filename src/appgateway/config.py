"""Configuration management with validation.

Runtime settings for the provisioning driver are loaded from environment
variables and validated at construction time, so a misconfigured run fails
before any Azure API is called.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_SPEC_FILE = "/config/appgateway.yaml"
DEFAULT_DEPLOYMENT_PREFIX = "appgw"

DEFAULT_WHATIF_TIMEOUT_SECONDS = 300
DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS = 1800
MIN_TIMEOUT_SECONDS = 30
MAX_TIMEOUT_SECONDS = 7200

MAX_DEPLOYMENT_RETRIES = 3
RETRY_BACKOFF_BASE_SECONDS = 5

DEFAULT_MAX_CHANGES = 100

# Enforced limits
MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max spec file
MAX_DEPLOYMENT_NAME_LENGTH = 64
MAX_DEPLOYMENT_PREFIX_LENGTH = 24
MAX_WHATIF_CHANGES = 1000

VALID_SUBSCRIPTION_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
VALID_DEPLOYMENT_PREFIX_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.-]*$"


@dataclass(frozen=True)
class Config:
    """Provisioning driver configuration.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-deployment.
    """

    subscription_id: str

    spec_file: Path = field(default_factory=lambda: Path(DEFAULT_SPEC_FILE))
    deployment_prefix: str = DEFAULT_DEPLOYMENT_PREFIX

    # Timing
    whatif_timeout_seconds: int = DEFAULT_WHATIF_TIMEOUT_SECONDS
    deployment_timeout_seconds: int = DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS

    # Behavior
    dry_run: bool = False
    max_changes: int = DEFAULT_MAX_CHANGES

    # Identity
    managed_identity_client_id: str | None = None
    use_cli_credential: bool = False

    ignore_rules_file: Path | None = None

    def __post_init__(self) -> None:
        errors: list[str] = []

        if not self.subscription_id:
            errors.append("AZURE_SUBSCRIPTION_ID is required")
        elif not re.match(VALID_SUBSCRIPTION_ID_PATTERN, self.subscription_id.lower()):
            errors.append(f"AZURE_SUBSCRIPTION_ID must be a valid GUID: {self.subscription_id}")

        if not self.deployment_prefix:
            errors.append("APPGW_DEPLOYMENT_PREFIX cannot be empty")
        elif len(self.deployment_prefix) > MAX_DEPLOYMENT_PREFIX_LENGTH:
            errors.append(
                f"APPGW_DEPLOYMENT_PREFIX exceeds maximum length of {MAX_DEPLOYMENT_PREFIX_LENGTH}"
            )
        elif not re.match(VALID_DEPLOYMENT_PREFIX_PATTERN, self.deployment_prefix):
            errors.append(
                f"APPGW_DEPLOYMENT_PREFIX must match {VALID_DEPLOYMENT_PREFIX_PATTERN}: "
                f"{self.deployment_prefix}"
            )

        for name, value in (
            ("WHATIF_TIMEOUT", self.whatif_timeout_seconds),
            ("DEPLOYMENT_TIMEOUT", self.deployment_timeout_seconds),
        ):
            if not MIN_TIMEOUT_SECONDS <= value <= MAX_TIMEOUT_SECONDS:
                errors.append(
                    f"{name} must be between {MIN_TIMEOUT_SECONDS} "
                    f"and {MAX_TIMEOUT_SECONDS} seconds"
                )

        if self.max_changes < 1:
            errors.append("MAX_CHANGES must be at least 1")
        elif self.max_changes > MAX_WHATIF_CHANGES:
            errors.append(f"MAX_CHANGES cannot exceed {MAX_WHATIF_CHANGES}")

        if self.ignore_rules_file is not None and not self.ignore_rules_file.exists():
            errors.append(f"Ignore rules file does not exist: {self.ignore_rules_file}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            AZURE_SUBSCRIPTION_ID: Target Azure subscription
            APPGW_SPEC_FILE: Path to the gateway YAML (default: /config/appgateway.yaml)
            APPGW_DEPLOYMENT_PREFIX: Prefix for ARM deployment names (default: appgw)
            WHATIF_TIMEOUT: Timeout for WhatIf operations in seconds (default: 300)
            DEPLOYMENT_TIMEOUT: Timeout for deployments in seconds (default: 1800)
            DRY_RUN: If "true", only plan without applying (default: false)
            MAX_CHANGES: Max significant changes accepted per apply (default: 100)
            AZURE_CLIENT_ID: Client ID of a user-assigned managed identity
            USE_AZURE_CLI_CREDENTIAL: If "true", authenticate with `az login`
            IGNORE_RULES_FILE: YAML file with extra WhatIf ignore rules
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        ignore_rules_file = os.environ.get("IGNORE_RULES_FILE")

        return cls(
            subscription_id=os.environ.get("AZURE_SUBSCRIPTION_ID", ""),
            spec_file=Path(os.environ.get("APPGW_SPEC_FILE", DEFAULT_SPEC_FILE)),
            deployment_prefix=os.environ.get("APPGW_DEPLOYMENT_PREFIX", DEFAULT_DEPLOYMENT_PREFIX),
            whatif_timeout_seconds=get_int("WHATIF_TIMEOUT", DEFAULT_WHATIF_TIMEOUT_SECONDS),
            deployment_timeout_seconds=get_int(
                "DEPLOYMENT_TIMEOUT", DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS
            ),
            dry_run=get_bool("DRY_RUN", False),
            max_changes=get_int("MAX_CHANGES", DEFAULT_MAX_CHANGES),
            managed_identity_client_id=os.environ.get("AZURE_CLIENT_ID") or None,
            use_cli_credential=get_bool("USE_AZURE_CLI_CREDENTIAL", False),
            ignore_rules_file=Path(ignore_rules_file) if ignore_rules_file else None,
        )
