"""Tests for WhatIf ignore rules."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from appgateway.ignore_rules import (
    DEFAULT_IGNORE_RULES,
    IgnoreRule,
    IgnoreRulesConfig,
    IgnoreRulesError,
    IgnoreRulesEvaluator,
)
from azure_mock.resources import MockWhatIfChange, MockWhatIfPropertyChange, WhatIfChangeType

GW_ID = (
    "/subscriptions/00000000-0000-0000-0000-000000000001/resourceGroups/rg-edge"
    "/providers/Microsoft.Network/applicationGateways/agw-main"
)
PIP_ID = (
    "/subscriptions/00000000-0000-0000-0000-000000000001/resourceGroups/rg-edge"
    "/providers/Microsoft.Network/publicIPAddresses/pip-agw-main"
)


def _modify(resource_id: str, *paths: str) -> MockWhatIfChange:
    return MockWhatIfChange(
        resource_id=resource_id,
        change_type=WhatIfChangeType.MODIFY,
        delta=[MockWhatIfPropertyChange(path, "Modify") for path in paths],
    )


def _array_modify(resource_id: str, collection: str, *element_paths: str) -> MockWhatIfChange:
    """A Modify on element 0 of a gateway collection, nested the way WhatIf reports it."""
    return MockWhatIfChange(
        resource_id=resource_id,
        change_type=WhatIfChangeType.MODIFY,
        delta=[
            MockWhatIfPropertyChange(
                f"properties.{collection}",
                "Array",
                children=[
                    MockWhatIfPropertyChange(
                        "0",
                        "Modify",
                        children=[MockWhatIfPropertyChange(p, "Modify") for p in element_paths],
                    )
                ],
            )
        ],
    )


class TestIgnoreRule:
    """Tests for single-rule matching."""

    def test_wildcard_resource_type(self) -> None:
        rule = IgnoreRule(resource_type="*", paths=["etag"])
        assert rule.matches_resource("Microsoft.Network/publicIPAddresses")

    def test_resource_type_case_insensitive(self) -> None:
        rule = IgnoreRule(resource_type="Microsoft.Network/applicationGateways", paths=["x"])

        assert rule.matches_resource("microsoft.network/applicationgateways")
        assert not rule.matches_resource("Microsoft.Network/publicIPAddresses")

    @pytest.mark.parametrize(
        "pattern,path,expected",
        [
            ("properties.provisioningState", "properties.provisioningState", True),
            ("properties.provisioningState", "properties.enableHttp2", False),
            ("properties.*.etag", "properties.probes.etag", True),
            ("properties.*.etag", "properties.probes.0.etag", False),
            ("properties.**.etag", "properties.probes.0.etag", True),
            ("properties.**", "properties.anything.at.all", True),
            ("tags.created*", "tags.createdBy", True),
        ],
    )
    def test_path_patterns(self, pattern: str, path: str, expected: bool) -> None:
        rule = IgnoreRule(resource_type="*", paths=[pattern])
        assert rule.should_ignore_path(path) is expected


class TestIgnoreRulesConfig:
    """Tests for loading rules."""

    def test_defaults_enabled(self) -> None:
        config = IgnoreRulesConfig()
        assert config.get_effective_rules() == DEFAULT_IGNORE_RULES

    def test_from_yaml(self) -> None:
        config = IgnoreRulesConfig.from_yaml(
            """
enableDefaultRules: false
rules:
  - resourceType: Microsoft.Network/applicationGateways
    paths:
      - tags.createdBy
    reason: Tag set by policy
"""
        )

        assert config.enable_default_rules is False
        assert config.get_effective_rules() == [
            IgnoreRule(
                resource_type="Microsoft.Network/applicationGateways",
                paths=["tags.createdBy"],
                reason="Tag set by policy",
            )
        ]

    def test_from_empty_yaml(self) -> None:
        config = IgnoreRulesConfig.from_yaml("")
        assert config.rules == []
        assert config.enable_default_rules is True

    @pytest.mark.parametrize(
        "content,message",
        [
            ("rules: [", "Invalid YAML"),
            ("- a\n- b\n", "must be a YAML object"),
            ("rules: nope\n", "'rules' must be a list"),
            ("rules:\n  - nope\n", "Rule 0 must be an object"),
            ("rules:\n  - paths: []\n", "cannot be empty"),
            ("rules:\n  - paths: [1]\n", "must be strings"),
        ],
    )
    def test_invalid_yaml(self, content: str, message: str) -> None:
        with pytest.raises(IgnoreRulesError, match=message):
            IgnoreRulesConfig.from_yaml(content)

    def test_from_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(IgnoreRulesError, match="Cannot read"):
            IgnoreRulesConfig.from_file(str(tmp_path / "missing.yaml"))

    def test_from_env(self, tmp_path: Path) -> None:
        rules_file = tmp_path / "rules.yaml"
        rules_file.write_text("rules:\n  - paths: [tags.owner]\n")

        env = {"IGNORE_RULES_FILE": str(rules_file), "ENABLE_DEFAULT_IGNORE_RULES": "false"}
        with patch.dict(os.environ, env, clear=True):
            config = IgnoreRulesConfig.from_env()

        assert config.enable_default_rules is False
        assert config.rules[0].paths == ["tags.owner"]

    def test_from_env_without_file(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            config = IgnoreRulesConfig.from_env()

        assert config.rules == []
        assert config.enable_default_rules is True


class TestIgnoreRulesEvaluator:
    """Tests for filtering WhatIf changes."""

    @pytest.fixture
    def evaluator(self) -> IgnoreRulesEvaluator:
        return IgnoreRulesEvaluator(IgnoreRulesConfig())

    def test_drops_noise_only_modify(self, evaluator: IgnoreRulesEvaluator) -> None:
        changes = [
            _modify(GW_ID, "properties.provisioningState", "properties.operationalState"),
            _modify(PIP_ID, "properties.ipAddress"),
        ]

        filtered, ignored = evaluator.filter_whatif_changes(changes)

        assert filtered == []
        assert ignored == 3

    def test_keeps_significant_modify(self, evaluator: IgnoreRulesEvaluator) -> None:
        change = _modify(GW_ID, "properties.provisioningState", "properties.enableHttp2")

        filtered, ignored = evaluator.filter_whatif_changes([change])

        assert filtered == [change]
        assert ignored == 1

    @pytest.mark.parametrize(
        "collection,path",
        [
            ("requestRoutingRules", "properties.backendAddressPool.id"),
            ("httpListeners", "properties.sslCertificate.id"),
            ("httpListeners", "properties.frontendIPConfiguration.id"),
            ("backendHttpSettingsCollection", "properties.probe.id"),
            ("urlPathMaps", "properties.defaultBackendAddressPool.id"),
        ],
    )
    def test_repointed_reference_is_significant(
        self, evaluator: IgnoreRulesEvaluator, collection: str, path: str
    ) -> None:
        change = _array_modify(GW_ID, collection, path)

        filtered, ignored = evaluator.filter_whatif_changes([change])

        assert filtered == [change]
        assert ignored == 0

    def test_generated_entry_id_is_ignored(self, evaluator: IgnoreRulesEvaluator) -> None:
        change = _array_modify(GW_ID, "httpListeners", "id", "etag", "properties.provisioningState")

        filtered, ignored = evaluator.filter_whatif_changes([change])

        assert filtered == []
        assert ignored == 3

    def test_nested_delta_paths(self, evaluator: IgnoreRulesEvaluator) -> None:
        change = MockWhatIfChange(
            resource_id=GW_ID,
            change_type=WhatIfChangeType.MODIFY,
            delta=[
                MockWhatIfPropertyChange(
                    "properties.sslCertificates",
                    "Array",
                    children=[
                        MockWhatIfPropertyChange(
                            "0",
                            "Modify",
                            children=[
                                MockWhatIfPropertyChange("properties.publicCertData", "Modify")
                            ],
                        )
                    ],
                )
            ],
        )

        filtered, ignored = evaluator.filter_whatif_changes([change])

        assert filtered == []
        assert ignored == 1

    def test_gateway_rules_do_not_apply_to_public_ip(
        self, evaluator: IgnoreRulesEvaluator
    ) -> None:
        change = _modify(PIP_ID, "properties.operationalState")

        filtered, _ = evaluator.filter_whatif_changes([change])

        assert filtered == [change]

    def test_create_and_delete_never_filtered(self, evaluator: IgnoreRulesEvaluator) -> None:
        changes = [
            MockWhatIfChange(resource_id=GW_ID, change_type=WhatIfChangeType.CREATE),
            MockWhatIfChange(resource_id=PIP_ID, change_type=WhatIfChangeType.DELETE),
        ]

        filtered, ignored = evaluator.filter_whatif_changes(changes)

        assert filtered == changes
        assert ignored == 0

    def test_modify_without_delta_kept(self, evaluator: IgnoreRulesEvaluator) -> None:
        change = _modify(GW_ID)

        filtered, _ = evaluator.filter_whatif_changes([change])

        assert filtered == [change]

    def test_user_rule(self) -> None:
        config = IgnoreRulesConfig(
            rules=[IgnoreRule(resource_type="*", paths=["tags.createdBy"])],
            enable_default_rules=False,
        )
        evaluator = IgnoreRulesEvaluator(config)

        ignored, reason = evaluator.should_ignore_change(
            "Microsoft.Network/applicationGateways", "tags.createdBy"
        )
        not_ignored, _ = evaluator.should_ignore_change(
            "Microsoft.Network/applicationGateways", "properties.provisioningState"
        )

        assert ignored is True
        assert reason == ""
        assert not_ignored is False
