"""Tests for ARM resource ID helpers."""

import pytest

from appgateway import resource_ids as ids

SUB = "00000000-0000-0000-0000-000000000001"
GATEWAY_ID = (
    f"/subscriptions/{SUB}/resourceGroups/rg-edge"
    "/providers/Microsoft.Network/applicationGateways/agw-main"
)


class TestBuildIds:
    """Tests for ID construction."""

    def test_gateway_id(self) -> None:
        assert ids.gateway_id(SUB, "rg-edge", "agw-main") == GATEWAY_ID

    def test_public_ip_id(self) -> None:
        assert ids.public_ip_id(SUB, "rg-edge", "pip-agw-main") == (
            f"/subscriptions/{SUB}/resourceGroups/rg-edge"
            "/providers/Microsoft.Network/publicIPAddresses/pip-agw-main"
        )

    def test_subnet_id_nests_names(self) -> None:
        assert ids.subnet_id(SUB, "rg-net", "vnet-hub", "snet-agw") == (
            f"/subscriptions/{SUB}/resourceGroups/rg-net"
            "/providers/Microsoft.Network/virtualNetworks/vnet-hub/subnets/snet-agw"
        )

    def test_name_count_must_match_type_depth(self) -> None:
        with pytest.raises(ValueError):
            ids.resource_id(SUB, "rg", ids.SUBNET_TYPE, "vnet-only")

    def test_child_id(self) -> None:
        assert ids.child_id(GATEWAY_ID, ids.HTTP_LISTENERS, "listener-http") == (
            f"{GATEWAY_ID}/httpListeners/listener-http"
        )


class TestParseIds:
    """Tests for ID parsing."""

    @pytest.mark.parametrize(
        ("resource_id", "expected"),
        [
            (GATEWAY_ID, "Microsoft.Network/applicationGateways"),
            (f"{GATEWAY_ID}/httpListeners/l1", "Microsoft.Network/applicationGateways"),
            (
                f"/subscriptions/{SUB}/resourceGroups/rg/providers/Microsoft.Network/publicIPAddresses/p",
                "Microsoft.Network/publicIPAddresses",
            ),
            (f"/subscriptions/{SUB}/resourceGroups/rg", "unknown"),
            (None, "unknown"),
            ("", "unknown"),
        ],
    )
    def test_parse_resource_type(self, resource_id: str | None, expected: str) -> None:
        assert ids.parse_resource_type(resource_id) == expected

    def test_parse_name(self) -> None:
        assert ids.parse_name(f"{GATEWAY_ID}/probes/probe-web") == "probe-web"

    def test_is_resource_id(self) -> None:
        assert ids.is_resource_id(GATEWAY_ID)
        assert ids.is_resource_id(f"{GATEWAY_ID}/customErrorConfigurations/HttpStatus502")
        assert not ids.is_resource_id("agw-main")
        assert not ids.is_resource_id("")
        assert not ids.is_resource_id(None)
