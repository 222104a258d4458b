"""Pre-flight lint for gateway configurations.

The composition template copies names through without checking them; a
dangling reference only surfaces when Azure Resource Manager rejects the
deployment. This module reports such problems ahead of time. It is never
called by the template and never blocks rendering.

Checks:
- unresolved_reference: a name reference with no matching declaration
- duplicate_name: two entries of the same kind share a name
- pool_address_mode: a backend pool mixes FQDNs and IPs, or has neither
- rule_target: a routing rule whose type does not match its targets

Mixed or empty pools are warnings only. Azure currently accepts a pool with
both address kinds, and an empty pool is valid while backends are being
provisioned; the exact enforcement belongs to the control plane.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

from .models import AppGatewaySpec

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    """Lint finding severity."""

    ERROR = "error"
    WARNING = "warning"


class FindingKind(str, Enum):
    """Lint finding categories."""

    UNRESOLVED_REFERENCE = "unresolved_reference"
    DUPLICATE_NAME = "duplicate_name"
    POOL_ADDRESS_MODE = "pool_address_mode"
    RULE_TARGET = "rule_target"


class AddressMode(str, Enum):
    """How a backend pool addresses its targets."""

    FQDN = "fqdn"
    IP = "ip"
    MIXED = "mixed"
    EMPTY = "empty"


@dataclass(frozen=True)
class LintFinding:
    """A single lint result.

    Attributes:
        kind: Finding category.
        severity: Error or warning.
        path: Location in the spec, e.g. "request_routing_rules[0].http_listener_name".
        message: Human-readable description.
    """

    kind: FindingKind
    severity: Severity
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.severity.value}: {self.path}: {self.message}"


def pool_address_mode(fqdns: list[str], ip_addresses: list[str]) -> AddressMode:
    if fqdns and ip_addresses:
        return AddressMode.MIXED
    if fqdns:
        return AddressMode.FQDN
    if ip_addresses:
        return AddressMode.IP
    return AddressMode.EMPTY


def _declared(spec: AppGatewaySpec) -> dict[str, set[str]]:
    return {
        "backend_address_pools": {p.name for p in spec.backend_address_pools},
        "backend_http_settings": {s.name for s in spec.backend_http_settings},
        "http_listeners": {listener.name for listener in spec.http_listeners},
        "health_probes": {p.name for p in spec.health_probes},
        "url_path_maps": {m.name for m in spec.url_path_maps},
        "redirect_configuration": {r.name for r in spec.redirect_configuration},
        "rewrite_rule_set": {r.name for r in spec.rewrite_rule_set},
        "ssl_certificates": {c.name for c in spec.ssl_certificates},
        "authentication_certificates": {c.name for c in spec.authentication_certificates},
        "trusted_root_certificates": {c.name for c in spec.trusted_root_certificates},
    }


def _references(spec: AppGatewaySpec) -> Iterator[tuple[str, str, str]]:
    """Yield (path, referenced name, target list) for every name reference."""
    for i, settings in enumerate(spec.backend_http_settings):
        base = f"backend_http_settings[{i}]"
        if settings.probe_name:
            yield f"{base}.probe_name", settings.probe_name, "health_probes"
        for j, name in enumerate(settings.authentication_certificate_names):
            yield (
                f"{base}.authentication_certificate_names[{j}]",
                name,
                "authentication_certificates",
            )
        for j, name in enumerate(settings.trusted_root_certificate_names):
            yield f"{base}.trusted_root_certificate_names[{j}]", name, "trusted_root_certificates"

    for i, listener in enumerate(spec.http_listeners):
        if listener.ssl_certificate_name:
            yield (
                f"http_listeners[{i}].ssl_certificate_name",
                listener.ssl_certificate_name,
                "ssl_certificates",
            )

    for i, rule in enumerate(spec.request_routing_rules):
        base = f"request_routing_rules[{i}]"
        yield f"{base}.http_listener_name", rule.http_listener_name, "http_listeners"
        if rule.backend_address_pool_name:
            yield (
                f"{base}.backend_address_pool_name",
                rule.backend_address_pool_name,
                "backend_address_pools",
            )
        if rule.backend_http_settings_name:
            yield (
                f"{base}.backend_http_settings_name",
                rule.backend_http_settings_name,
                "backend_http_settings",
            )
        if rule.redirect_configuration_name:
            yield (
                f"{base}.redirect_configuration_name",
                rule.redirect_configuration_name,
                "redirect_configuration",
            )
        if rule.rewrite_rule_set_name:
            yield f"{base}.rewrite_rule_set_name", rule.rewrite_rule_set_name, "rewrite_rule_set"
        if rule.url_path_map_name:
            yield f"{base}.url_path_map_name", rule.url_path_map_name, "url_path_maps"

    for i, path_map in enumerate(spec.url_path_maps):
        base = f"url_path_maps[{i}]"
        defaults = (
            ("default_backend_address_pool_name", "backend_address_pools"),
            ("default_backend_http_settings_name", "backend_http_settings"),
            ("default_redirect_configuration_name", "redirect_configuration"),
            ("default_rewrite_rule_set_name", "rewrite_rule_set"),
        )
        for field_name, target in defaults:
            value = getattr(path_map, field_name)
            if value:
                yield f"{base}.{field_name}", value, target

        for j, path_rule in enumerate(path_map.path_rules):
            rule_base = f"{base}.path_rules[{j}]"
            targets = (
                ("backend_address_pool_name", "backend_address_pools"),
                ("backend_http_settings_name", "backend_http_settings"),
                ("redirect_configuration_name", "redirect_configuration"),
                ("rewrite_rule_set_name", "rewrite_rule_set"),
            )
            for field_name, target in targets:
                value = getattr(path_rule, field_name)
                if value:
                    yield f"{rule_base}.{field_name}", value, target

    for i, redirect in enumerate(spec.redirect_configuration):
        if redirect.target_listener_name:
            yield (
                f"redirect_configuration[{i}].target_listener_name",
                redirect.target_listener_name,
                "http_listeners",
            )


def find_unresolved_references(spec: AppGatewaySpec) -> list[LintFinding]:
    """Report every name reference that does not resolve in its target list."""
    declared = _declared(spec)
    findings = []
    for path, name, target in _references(spec):
        if name not in declared[target]:
            findings.append(LintFinding(
                kind=FindingKind.UNRESOLVED_REFERENCE,
                severity=Severity.ERROR,
                path=path,
                message=f"'{name}' is not declared in {target}",
            ))
    return findings


def _duplicates(label: str, names: Iterable[str]) -> list[LintFinding]:
    counts = Counter(names)
    return [
        LintFinding(
            kind=FindingKind.DUPLICATE_NAME,
            severity=Severity.ERROR,
            path=label,
            message=f"'{name}' is declared {count} times",
        )
        for name, count in counts.items()
        if count > 1
    ]


def find_duplicate_names(spec: AppGatewaySpec) -> list[LintFinding]:
    findings: list[LintFinding] = []
    for label in _declared(spec):
        entries = getattr(spec, label)
        findings.extend(_duplicates(label, (entry.name for entry in entries)))
    findings.extend(_duplicates("request_routing_rules", (r.name for r in spec.request_routing_rules)))
    return findings


def check_backend_pools(spec: AppGatewaySpec) -> list[LintFinding]:
    findings = []
    for i, pool in enumerate(spec.backend_address_pools):
        mode = pool_address_mode(pool.fqdns, pool.ip_addresses)
        if mode == AddressMode.MIXED:
            message = "pool lists both fqdns and ip_addresses"
        elif mode == AddressMode.EMPTY:
            message = "pool lists neither fqdns nor ip_addresses"
        else:
            continue
        findings.append(LintFinding(
            kind=FindingKind.POOL_ADDRESS_MODE,
            severity=Severity.WARNING,
            path=f"backend_address_pools[{i}]",
            message=message,
        ))
    return findings


def check_rule_targets(spec: AppGatewaySpec) -> list[LintFinding]:
    findings = []
    for i, rule in enumerate(spec.request_routing_rules):
        path = f"request_routing_rules[{i}]"
        if rule.rule_type == "PathBasedRouting" and not rule.url_path_map_name:
            findings.append(LintFinding(
                kind=FindingKind.RULE_TARGET,
                severity=Severity.WARNING,
                path=path,
                message="PathBasedRouting rule has no url_path_map_name",
            ))
        elif rule.rule_type == "Basic":
            has_backend = rule.backend_address_pool_name and rule.backend_http_settings_name
            if not has_backend and not rule.redirect_configuration_name:
                findings.append(LintFinding(
                    kind=FindingKind.RULE_TARGET,
                    severity=Severity.WARNING,
                    path=path,
                    message="Basic rule needs a backend pool and settings, or a redirect",
                ))
    return findings


def lint_spec(spec: AppGatewaySpec) -> list[LintFinding]:
    """Run all checks and return findings, errors first."""
    findings = (
        find_unresolved_references(spec)
        + find_duplicate_names(spec)
        + check_backend_pools(spec)
        + check_rule_targets(spec)
    )
    findings.sort(key=lambda f: f.severity != Severity.ERROR)

    logger.info(
        "Lint complete",
        extra={
            "app_gateway_name": spec.app_gateway_name,
            "errors": sum(1 for f in findings if f.severity == Severity.ERROR),
            "warnings": sum(1 for f in findings if f.severity == Severity.WARNING),
        },
    )
    return findings
