"""Tests for the pre-flight lint."""

from typing import Any

import pytest

from appgateway.models import AppGatewaySpec
from appgateway.references import (
    AddressMode,
    FindingKind,
    LintFinding,
    Severity,
    check_backend_pools,
    check_rule_targets,
    find_duplicate_names,
    find_unresolved_references,
    lint_spec,
    pool_address_mode,
)


def _spec(data: dict[str, Any]) -> AppGatewaySpec:
    return AppGatewaySpec.model_validate(data)


class TestPoolAddressMode:
    @pytest.mark.parametrize(
        "fqdns,ips,expected",
        [
            (["a.example.com"], [], AddressMode.FQDN),
            ([], ["10.0.0.4"], AddressMode.IP),
            (["a.example.com"], ["10.0.0.4"], AddressMode.MIXED),
            ([], [], AddressMode.EMPTY),
        ],
    )
    def test_modes(self, fqdns: list[str], ips: list[str], expected: AddressMode) -> None:
        assert pool_address_mode(fqdns, ips) == expected


class TestUnresolvedReferences:
    """Tests for dangling name references."""

    def test_minimal_spec_is_clean(self, minimal_spec_data: dict[str, Any]) -> None:
        assert lint_spec(_spec(minimal_spec_data)) == []

    def test_rule_pool_reference(self, minimal_spec_data: dict[str, Any]) -> None:
        minimal_spec_data["request_routing_rules"][0]["backend_address_pool_name"] = "pool-missing"

        findings = find_unresolved_references(_spec(minimal_spec_data))

        assert len(findings) == 1
        finding = findings[0]
        assert finding.kind == FindingKind.UNRESOLVED_REFERENCE
        assert finding.severity == Severity.ERROR
        assert finding.path == "request_routing_rules[0].backend_address_pool_name"
        assert "pool-missing" in finding.message

    def test_listener_certificate_reference(self, minimal_spec_data: dict[str, Any]) -> None:
        minimal_spec_data["http_listeners"][0]["ssl_certificate_name"] = "cert-missing"

        findings = find_unresolved_references(_spec(minimal_spec_data))

        assert [f.path for f in findings] == ["http_listeners[0].ssl_certificate_name"]

    def test_settings_probe_and_certificates(self, minimal_spec_data: dict[str, Any]) -> None:
        minimal_spec_data["backend_http_settings"][0].update({
            "probe_name": "probe-missing",
            "trusted_root_certificate_names": ["root-missing"],
        })

        paths = {f.path for f in find_unresolved_references(_spec(minimal_spec_data))}

        assert paths == {
            "backend_http_settings[0].probe_name",
            "backend_http_settings[0].trusted_root_certificate_names[0]",
        }

    def test_path_map_references(self, minimal_spec_data: dict[str, Any]) -> None:
        minimal_spec_data["url_path_maps"] = [
            {
                "name": "paths-web",
                "default_backend_address_pool_name": "pool-web",
                "default_backend_http_settings_name": "settings-web",
                "path_rules": [
                    {"name": "api", "paths": ["/api/*"], "backend_address_pool_name": "pool-api"}
                ],
            }
        ]
        minimal_spec_data["request_routing_rules"][0].update({
            "rule_type": "PathBasedRouting",
            "url_path_map_name": "paths-web",
        })

        findings = find_unresolved_references(_spec(minimal_spec_data))

        assert [f.path for f in findings] == [
            "url_path_maps[0].path_rules[0].backend_address_pool_name"
        ]

    def test_redirect_target_listener(self, minimal_spec_data: dict[str, Any]) -> None:
        minimal_spec_data["redirect_configuration"] = [
            {"name": "redirect", "target_listener_name": "listener-https"}
        ]

        findings = find_unresolved_references(_spec(minimal_spec_data))

        assert findings[0].path == "redirect_configuration[0].target_listener_name"


class TestDuplicateNames:
    def test_duplicate_pool(self, minimal_spec_data: dict[str, Any]) -> None:
        minimal_spec_data["backend_address_pools"].append(
            {"name": "pool-web", "ip_addresses": ["10.0.0.4"]}
        )

        findings = find_duplicate_names(_spec(minimal_spec_data))

        assert len(findings) == 1
        assert findings[0].path == "backend_address_pools"
        assert "declared 2 times" in findings[0].message

    def test_duplicate_rule(self, minimal_spec_data: dict[str, Any]) -> None:
        rule = dict(minimal_spec_data["request_routing_rules"][0], priority=200)
        minimal_spec_data["request_routing_rules"].append(rule)

        findings = find_duplicate_names(_spec(minimal_spec_data))

        assert [f.path for f in findings] == ["request_routing_rules"]

    def test_same_name_in_different_lists(self, minimal_spec_data: dict[str, Any]) -> None:
        minimal_spec_data["backend_http_settings"][0]["name"] = "web"
        minimal_spec_data["backend_address_pools"][0]["name"] = "web"

        assert find_duplicate_names(_spec(minimal_spec_data)) == []


class TestBackendPools:
    def test_mixed_pool_warns(self, minimal_spec_data: dict[str, Any]) -> None:
        minimal_spec_data["backend_address_pools"][0]["ip_addresses"] = ["10.0.0.4"]

        findings = check_backend_pools(_spec(minimal_spec_data))

        assert len(findings) == 1
        assert findings[0].kind == FindingKind.POOL_ADDRESS_MODE
        assert findings[0].severity == Severity.WARNING
        assert "both" in findings[0].message

    def test_empty_pool_warns(self, minimal_spec_data: dict[str, Any]) -> None:
        minimal_spec_data["backend_address_pools"][0]["fqdns"] = []

        findings = check_backend_pools(_spec(minimal_spec_data))

        assert "neither" in findings[0].message


class TestRuleTargets:
    def test_path_rule_without_map(self, minimal_spec_data: dict[str, Any]) -> None:
        minimal_spec_data["request_routing_rules"][0]["rule_type"] = "PathBasedRouting"

        findings = check_rule_targets(_spec(minimal_spec_data))

        assert findings[0].kind == FindingKind.RULE_TARGET
        assert "url_path_map_name" in findings[0].message

    def test_basic_rule_without_target(self, minimal_spec_data: dict[str, Any]) -> None:
        rule = minimal_spec_data["request_routing_rules"][0]
        del rule["backend_address_pool_name"]

        findings = check_rule_targets(_spec(minimal_spec_data))

        assert len(findings) == 1

    def test_basic_redirect_rule(self, minimal_spec_data: dict[str, Any]) -> None:
        rule = minimal_spec_data["request_routing_rules"][0]
        del rule["backend_address_pool_name"]
        del rule["backend_http_settings_name"]
        rule["redirect_configuration_name"] = "redirect"

        assert check_rule_targets(_spec(minimal_spec_data)) == []


class TestLintSpec:
    def test_errors_sorted_first(self, minimal_spec_data: dict[str, Any]) -> None:
        minimal_spec_data["backend_address_pools"][0]["fqdns"] = []
        minimal_spec_data["request_routing_rules"][0]["http_listener_name"] = "listener-missing"

        findings = lint_spec(_spec(minimal_spec_data))

        assert [f.severity for f in findings] == [Severity.ERROR, Severity.WARNING]

    def test_finding_str(self) -> None:
        finding = LintFinding(
            kind=FindingKind.UNRESOLVED_REFERENCE,
            severity=Severity.ERROR,
            path="http_listeners[0].ssl_certificate_name",
            message="'cert' is not declared in ssl_certificates",
        )

        assert str(finding) == (
            "error: http_listeners[0].ssl_certificate_name: "
            "'cert' is not declared in ssl_certificates"
        )
