"""Pytest configuration and fixtures."""

import copy
import logging
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
import yaml

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for azure_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000001"

MINIMAL_SPEC: dict[str, Any] = {
    "resource_group_name": "rg-edge",
    "location": "westeurope",
    "virtual_network_name": "vnet-hub",
    "subnet_name": "snet-agw",
    "app_gateway_name": "agw-main",
    "sku": {"name": "Standard_v2", "tier": "Standard_v2", "capacity": 2},
    "backend_address_pools": [{"name": "pool-web", "fqdns": ["web.internal.example.com"]}],
    "backend_http_settings": [{"name": "settings-web", "port": 80, "protocol": "Http"}],
    "http_listeners": [{"name": "listener-http"}],
    "request_routing_rules": [
        {
            "name": "rule-web",
            "rule_type": "Basic",
            "priority": 100,
            "http_listener_name": "listener-http",
            "backend_address_pool_name": "pool-web",
            "backend_http_settings_name": "settings-web",
        }
    ],
}


@pytest.fixture
def subscription_id() -> str:
    return SUBSCRIPTION_ID


@pytest.fixture
def minimal_spec_data() -> dict[str, Any]:
    """Smallest configuration the schema accepts, as parsed YAML."""
    return copy.deepcopy(MINIMAL_SPEC)


@pytest.fixture
def restore_logging() -> Iterator[None]:
    """Undo setup_logging() so handlers do not outlive captured streams."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


@pytest.fixture
def spec_file(tmp_path: Path, minimal_spec_data: dict[str, Any]) -> Path:
    """The minimal configuration written to a YAML file."""
    path = tmp_path / "gateway.yaml"
    path.write_text(yaml.safe_dump(minimal_spec_data, sort_keys=False), encoding="utf-8")
    return path
