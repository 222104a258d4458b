"""Ignore rules for WhatIf plan output.

WhatIf reports property-level differences that no configuration change can
remove: provisioning state, resource GUIDs, operational state, certificate
public data and other fields Azure fills in after deployment. Ignore rules
drop Modify changes whose every delta path matches a rule, so that
re-planning an unchanged configuration reports zero changes.

Rules are matched by resource type (fnmatch, case-insensitive) and dotted
property path, where "*" matches one segment and "**" any number.
"""

from __future__ import annotations

import fnmatch
import logging
import os
from dataclasses import dataclass, field
from typing import Any

import yaml

from .resource_ids import parse_resource_type

logger = logging.getLogger(__name__)


class IgnoreRulesError(Exception):
    """Raised when ignore rules configuration is invalid."""

    pass


@dataclass(frozen=True)
class IgnoreRule:
    """A single ignore rule.

    Attributes:
        resource_type: Azure resource type to match; "*" matches all types.
        paths: Property paths to ignore, e.g. "properties.provisioningState".
        reason: Human-readable explanation for audit logging.
    """

    resource_type: str
    paths: list[str]
    reason: str = ""

    def matches_resource(self, resource_type: str) -> bool:
        if self.resource_type == "*":
            return True
        return fnmatch.fnmatch(resource_type.lower(), self.resource_type.lower())

    def should_ignore_path(self, path: str) -> bool:
        return any(
            self._match_parts(path.split("."), pattern.split(".")) for pattern in self.paths
        )

    def _match_parts(self, path_parts: list[str], pattern_parts: list[str]) -> bool:
        if not pattern_parts:
            return not path_parts
        if not path_parts:
            return all(p == "**" for p in pattern_parts)

        if pattern_parts[0] == "**":
            if len(pattern_parts) == 1:
                return True
            return any(
                self._match_parts(path_parts[i:], pattern_parts[1:])
                for i in range(len(path_parts) + 1)
            )
        if pattern_parts[0] == "*" or fnmatch.fnmatch(path_parts[0], pattern_parts[0]):
            return self._match_parts(path_parts[1:], pattern_parts[1:])
        return False


DEFAULT_IGNORE_RULES: list[IgnoreRule] = [
    IgnoreRule(
        resource_type="*",
        paths=[
            "properties.provisioningState",
            "properties.resourceGuid",
            "etag",
            "id",
            "type",
        ],
        reason="System-managed properties that change without user action",
    ),
    IgnoreRule(
        resource_type="Microsoft.Network/applicationGateways",
        paths=[
            "properties.operationalState",
            "properties.**.provisioningState",
            "properties.**.etag",
            # Generated ids of collection entries, not the references they hold
            "properties.*.*.id",
            "properties.*.*.type",
            "properties.urlPathMaps.*.properties.pathRules.*.id",
            "properties.sslCertificates.*.properties.publicCertData",
            "properties.sslCertificates.*.properties.password",
            "properties.sslCertificates.*.properties.data",
            "properties.backendAddressPools.*.properties.backendIPConfigurations",
            "properties.frontendIPConfigurations.*.properties.privateIPAllocationMethod",
            "properties.defaultPredefinedSslPolicy",
        ],
        reason="Gateway fields populated or masked by Azure after deployment",
    ),
    IgnoreRule(
        resource_type="Microsoft.Network/publicIPAddresses",
        paths=[
            "properties.ipAddress",
            "properties.ipConfiguration",
            "properties.idleTimeoutInMinutes",
            "properties.ipTags",
            "properties.dnsSettings.fqdn",
        ],
        reason="Public IP fields assigned by Azure",
    ),
]


@dataclass
class IgnoreRulesConfig:
    """Configuration for ignore rules.

    Attributes:
        rules: User rules applied in addition to the defaults.
        enable_default_rules: Whether to include DEFAULT_IGNORE_RULES.
        log_ignored_changes: Whether to log when changes are ignored.
    """

    rules: list[IgnoreRule] = field(default_factory=list)
    enable_default_rules: bool = True
    log_ignored_changes: bool = True

    def get_effective_rules(self) -> list[IgnoreRule]:
        if self.enable_default_rules:
            return list(DEFAULT_IGNORE_RULES) + list(self.rules)
        return list(self.rules)

    @classmethod
    def from_yaml(cls, yaml_content: str) -> IgnoreRulesConfig:
        """Parse ignore rules from YAML content.

        Expected format:
        ```yaml
        enableDefaultRules: true
        rules:
          - resourceType: "Microsoft.Network/applicationGateways"
            paths:
              - "tags.createdBy"
            reason: "Tag set by policy"
        ```

        Raises:
            IgnoreRulesError: If YAML is invalid or malformed.
        """
        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise IgnoreRulesError(f"Invalid YAML in ignore rules: {e}") from e

        if data is None:
            return cls()

        if not isinstance(data, dict):
            raise IgnoreRulesError("Ignore rules must be a YAML object")

        raw_rules = data.get("rules", [])
        if not isinstance(raw_rules, list):
            raise IgnoreRulesError("'rules' must be a list")

        rules: list[IgnoreRule] = []
        for i, rule_data in enumerate(raw_rules):
            if not isinstance(rule_data, dict):
                raise IgnoreRulesError(f"Rule {i} must be an object")

            paths = rule_data.get("paths", [])
            if not isinstance(paths, list):
                raise IgnoreRulesError(f"Rule {i}: 'paths' must be a list")
            if not paths:
                raise IgnoreRulesError(f"Rule {i}: 'paths' cannot be empty")
            if not all(isinstance(p, str) for p in paths):
                raise IgnoreRulesError(f"Rule {i}: paths must be strings")

            rules.append(IgnoreRule(
                resource_type=str(rule_data.get("resourceType", "*")),
                paths=list(paths),
                reason=str(rule_data.get("reason", "")),
            ))

        return cls(
            rules=rules,
            enable_default_rules=data.get("enableDefaultRules", True),
            log_ignored_changes=data.get("logIgnoredChanges", True),
        )

    @classmethod
    def from_file(cls, path: str) -> IgnoreRulesConfig:
        try:
            with open(path, encoding="utf-8") as f:
                content = f.read()
        except OSError as e:
            raise IgnoreRulesError(f"Cannot read ignore rules file: {e}") from e

        return cls.from_yaml(content)

    @classmethod
    def from_env(cls) -> IgnoreRulesConfig:
        """Load ignore rules from environment.

        Environment Variables:
            IGNORE_RULES_FILE: Path to YAML file with rules (optional)
            ENABLE_DEFAULT_IGNORE_RULES: If "false", disable default rules
        """
        enable_defaults = os.environ.get(
            "ENABLE_DEFAULT_IGNORE_RULES", "true"
        ).lower() in ("true", "1", "yes")

        rules_file = os.environ.get("IGNORE_RULES_FILE")
        if not rules_file:
            return cls(enable_default_rules=enable_defaults)

        file_config = cls.from_file(rules_file)
        return cls(
            rules=file_config.rules,
            enable_default_rules=enable_defaults and file_config.enable_default_rules,
            log_ignored_changes=file_config.log_ignored_changes,
        )


def _delta_paths(delta: list[Any]) -> list[str]:
    """Flatten WhatIf property changes to leaf paths.

    Array and Object changes nest their own children; only leaves are
    compared against the rules.
    """
    paths: list[str] = []
    for prop_change in delta:
        path = getattr(prop_change, "path", "") or ""
        children = getattr(prop_change, "children", None) or []
        if children:
            paths.extend(f"{path}.{child}" for child in _delta_paths(children))
        else:
            paths.append(path)
    return paths


class IgnoreRulesEvaluator:
    """Filters WhatIf changes using ignore rules."""

    def __init__(self, config: IgnoreRulesConfig) -> None:
        self._config = config
        self._rules = config.get_effective_rules()

    def should_ignore_change(self, resource_type: str, change_path: str) -> tuple[bool, str | None]:
        """Check if a property change should be ignored.

        Returns:
            Tuple of (should_ignore, reason).
        """
        for rule in self._rules:
            if rule.matches_resource(resource_type) and rule.should_ignore_path(change_path):
                if self._config.log_ignored_changes:
                    logger.debug(
                        "Ignoring change per rule",
                        extra={
                            "resource_type": resource_type,
                            "change_path": change_path,
                            "reason": rule.reason,
                        },
                    )
                return True, rule.reason
        return False, None

    def filter_whatif_changes(self, changes: list[Any]) -> tuple[list[Any], int]:
        """Drop Modify changes whose delta consists only of ignored paths.

        Create, Delete and Deploy changes are never filtered. A Modify change
        without a delta is kept.

        Returns:
            Tuple of (filtered_changes, ignored_property_count).
        """
        filtered: list[Any] = []
        ignored_count = 0

        for change in changes:
            change_type = getattr(change, "change_type", "")
            if change_type not in ("Modify", "modify"):
                filtered.append(change)
                continue

            delta = getattr(change, "delta", None)
            if not delta:
                filtered.append(change)
                continue

            resource_type = parse_resource_type(getattr(change, "resource_id", None))
            significant = False
            for path in _delta_paths(delta):
                ignored, _ = self.should_ignore_change(resource_type, path)
                if ignored:
                    ignored_count += 1
                else:
                    significant = True

            if significant:
                filtered.append(change)
            else:
                logger.debug(
                    "Dropping change: all properties ignored",
                    extra={"resource_id": getattr(change, "resource_id", "")},
                )

        return filtered, ignored_count
