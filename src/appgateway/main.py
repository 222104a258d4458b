"""One-shot, environment-driven apply for the application gateway.

Intended for CI jobs and containers: configuration comes from the
environment (see Config.from_env), the gateway definition from
APPGW_SPEC_FILE, and the outcome is reported through the exit code.

Exit codes:
    0: applied, or nothing to change
    1: configuration, spec or deployment failure
    2: security violation (credential secrets in the environment)
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import UTC, datetime

from .config import Config, ConfigurationError
from .deployer import Deployer
from .ignore_rules import IgnoreRulesError
from .security import SecretlessViolationError
from .spec_loader import SpecLoadError, load_spec

# LogRecord attributes that are not structured fields
_RESERVED_RECORD_KEYS = frozenset({
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "exc_info",
    "exc_text",
    "thread",
    "threadName",
    "taskName",
    "message",
})


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Configure root logging.

    Args:
        level: Root log level name.
        json_format: JSON lines on stdout; plain text on stderr otherwise.
    """
    if json_format:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # Reduce noise from Azure SDK
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


async def main() -> int:
    """Apply the configured gateway once.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        config = Config.from_env()
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return 1

    try:
        spec = load_spec(config.spec_file)
    except SpecLoadError as e:
        logger.error(
            "Spec loading failed",
            extra={"error": str(e), "spec_file": str(config.spec_file)},
        )
        return 1

    logger.info(
        "Starting application gateway apply",
        extra={
            "app_gateway_name": spec.app_gateway_name,
            "resource_group": spec.resource_group_name,
            "subscription_id": config.subscription_id,
            "dry_run": config.dry_run,
        },
    )

    try:
        deployer = Deployer(config)
    except SecretlessViolationError as e:
        # SECURITY: Credential detected - fatal security error
        logger.critical(
            "Security violation: credentials detected in environment",
            extra={"error": str(e)},
        )
        return 2
    except IgnoreRulesError as e:
        logger.error("Invalid ignore rules", extra={"error": str(e)})
        return 1

    result = await deployer.apply(spec)
    if not result.success:
        return 1

    if result.outputs is not None:
        logger.info("Gateway outputs", extra={"outputs": result.outputs.to_dict()})
    return 0


def run() -> None:
    """Entry point for appgw-apply."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
