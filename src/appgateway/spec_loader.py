"""Gateway configuration loading with validation.

All file operations enforce a size limit. Input validation is performed at
the boundary and reported as SpecLoadError with one line per schema error.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import MAX_SPEC_FILE_SIZE_BYTES
from .models import AppGatewaySpec

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when spec loading or validation fails."""

    pass


def parse_spec(raw_data: Any, source: str = "<input>") -> AppGatewaySpec:
    """Validate already-parsed data into an AppGatewaySpec.

    Supports both a flat mapping and a Kubernetes-style wrapper
    (apiVersion/kind/metadata/spec), in which case the spec section is used.

    Args:
        raw_data: Parsed YAML/JSON document.
        source: Label used in error messages.

    Returns:
        Validated spec instance.

    Raises:
        SpecLoadError: If the document is not a mapping or fails validation.
    """
    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Spec must contain a YAML mapping: {source}")

    if "apiVersion" in raw_data and "spec" in raw_data:
        spec_data = raw_data.get("spec", {})
        if not isinstance(spec_data, dict):
            raise SpecLoadError(f"Spec section must be a mapping: {source}")
    else:
        spec_data = raw_data

    try:
        return AppGatewaySpec.model_validate(spec_data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"  - {loc}: {msg}")

        error_list = "\n".join(errors)
        raise SpecLoadError(f"Validation failed for {source}:\n{error_list}") from e


def load_spec(spec_path: Path) -> AppGatewaySpec:
    """Load and validate a gateway configuration from YAML.

    Args:
        spec_path: Path to the YAML file.

    Returns:
        Validated spec instance.

    Raises:
        SpecLoadError: If the spec cannot be loaded or fails validation.
    """
    if not spec_path.exists():
        raise SpecLoadError(f"Spec file not found: {spec_path}")

    try:
        file_size = spec_path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat spec file {spec_path}: {e}") from e

    if file_size > MAX_SPEC_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Spec file exceeds maximum size of {MAX_SPEC_FILE_SIZE_BYTES} bytes: {spec_path}"
        )

    try:
        content = spec_path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read spec file {spec_path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {spec_path}: {e}") from e

    spec = parse_spec(raw_data, source=str(spec_path))

    logger.info(
        "Loaded spec for application gateway '%s' from %s",
        spec.app_gateway_name,
        spec_path,
    )
    return spec
