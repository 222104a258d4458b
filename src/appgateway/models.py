"""Pydantic models for the application gateway input schema.

These models provide:
1. Type-safe YAML parsing
2. Schema validation at the boundary (types, required fields, defaults)
3. Direct field access for the resource composition template

Only structural enumerations that the provisioning schema itself fixes
(routing rule types, protocols, affinity, redirect types, WAF modes) are
checked here. Azure-specific catalog values such as SKU names and tiers or
predefined SSL policy names are passed through and left to Azure Resource
Manager to admit or reject. Cross-references between lists are never
resolved here; see references.py for the optional pre-flight lint.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, Field, field_validator

VALID_PROTOCOLS = {"Http", "Https"}
VALID_AFFINITY = {"Enabled", "Disabled"}
VALID_RULE_TYPES = {"Basic", "PathBasedRouting"}
VALID_REDIRECT_TYPES = {"Permanent", "Temporary", "Found", "SeeOther"}
VALID_FIREWALL_MODES = {"Detection", "Prevention"}

Name = Annotated[str, Field(min_length=1, max_length=80)]


class _Record(BaseModel):
    """Base for all records: unknown keys are ignored for forward compatibility."""

    model_config = {"extra": "ignore"}


def _check_protocol(v: str) -> str:
    if v not in VALID_PROTOCOLS:
        raise ValueError(f"protocol must be one of {sorted(VALID_PROTOCOLS)}")
    return v


# =============================================================================
# Gateway-level records
# =============================================================================


class SkuConfig(_Record):
    """Gateway SKU. Name and tier are Azure catalog values (e.g. WAF_v2)."""

    name: Annotated[str, Field(min_length=1)]
    tier: Annotated[str, Field(min_length=1)]
    capacity: Annotated[int, Field(ge=1, le=125)] | None = None


class AutoscaleConfig(_Record):
    """Autoscale bounds; used instead of a fixed SKU capacity."""

    min_capacity: Annotated[int, Field(ge=0, le=100)]
    max_capacity: Annotated[int, Field(ge=2, le=125)] | None = None


class DiagnosticsConfig(_Record):
    """Diagnostic settings sink for gateway logs and metrics."""

    log_analytics_workspace_id: str | None = None
    storage_account_id: str | None = None
    logs: list[str] = Field(
        default_factory=lambda: [
            "ApplicationGatewayAccessLog",
            "ApplicationGatewayPerformanceLog",
            "ApplicationGatewayFirewallLog",
        ]
    )
    metrics: list[str] = Field(default_factory=lambda: ["AllMetrics"])


# =============================================================================
# Backends
# =============================================================================


class BackendAddressPool(_Record):
    """Backend targets. FQDNs and IP addresses are rendered as given."""

    name: Name
    fqdns: list[str] = Field(default_factory=list)
    ip_addresses: list[str] = Field(default_factory=list)


class ConnectionDraining(_Record):
    enable_connection_draining: bool = True
    drain_timeout_sec: Annotated[int, Field(ge=1, le=3600)] = 30


class BackendHttpSettings(_Record):
    """Backend HTTP settings collection entry."""

    name: Name
    cookie_based_affinity: str = "Disabled"
    affinity_cookie_name: str | None = None
    path: str | None = None
    port: Annotated[int, Field(ge=1, le=65535)] = 80
    protocol: str = "Http"
    request_timeout: Annotated[int, Field(ge=1, le=86400)] = 30
    probe_name: str | None = None
    host_name: str | None = None
    pick_host_name_from_backend_address: bool = False
    authentication_certificate_names: list[str] = Field(default_factory=list)
    trusted_root_certificate_names: list[str] = Field(default_factory=list)
    connection_draining: ConnectionDraining | None = None

    @field_validator("protocol")
    @classmethod
    def validate_protocol(cls, v: str) -> str:
        return _check_protocol(v)

    @field_validator("cookie_based_affinity")
    @classmethod
    def validate_affinity(cls, v: str) -> str:
        if v not in VALID_AFFINITY:
            raise ValueError(f"cookie_based_affinity must be one of {sorted(VALID_AFFINITY)}")
        return v


class ProbeMatch(_Record):
    body: str | None = None
    status_code: list[str] = Field(default_factory=lambda: ["200-399"])


class HealthProbe(_Record):
    """Custom health probe."""

    name: Name
    host: str | None = None
    protocol: str = "Http"
    path: str = "/"
    interval: Annotated[int, Field(ge=1, le=86400)] = 30
    timeout: Annotated[int, Field(ge=1, le=86400)] = 30
    unhealthy_threshold: Annotated[int, Field(ge=1, le=20)] = 3
    port: Annotated[int, Field(ge=1, le=65535)] | None = None
    pick_host_name_from_backend_http_settings: bool = False
    minimum_servers: Annotated[int, Field(ge=0)] = 0
    match: ProbeMatch | None = None

    @field_validator("protocol")
    @classmethod
    def validate_protocol(cls, v: str) -> str:
        return _check_protocol(v)


# =============================================================================
# Frontend
# =============================================================================


class CustomErrorConfiguration(_Record):
    status_code: Annotated[str, Field(min_length=1)]
    custom_error_page_url: Annotated[str, Field(min_length=1)]


class HttpListener(_Record):
    """Listener. A certificate makes it HTTPS, a host name makes it multi-site."""

    name: Name
    ssl_certificate_name: str | None = None
    host_name: str | None = None
    host_names: list[str] = Field(default_factory=list)
    require_sni: bool = False
    firewall_policy_id: str | None = None
    use_private_frontend: bool = False
    custom_error_configuration: list[CustomErrorConfiguration] = Field(default_factory=list)

    @property
    def protocol(self) -> str:
        return "Https" if self.ssl_certificate_name else "Http"

    @property
    def is_multi_site(self) -> bool:
        return bool(self.host_name or self.host_names)


class SslCertificate(_Record):
    """Listener certificate, inline PFX or Key Vault secret."""

    name: Name
    data: str | None = None
    password: str | None = None
    key_vault_secret_id: str | None = None


class AuthenticationCertificate(_Record):
    name: Name
    data: Annotated[str, Field(min_length=1)]


class TrustedRootCertificate(_Record):
    name: Name
    data: str | None = None
    key_vault_secret_id: str | None = None


class SslPolicy(_Record):
    """SSL policy. Predefined policy names are validated by Azure."""

    policy_type: str | None = None
    policy_name: str | None = None
    disabled_protocols: list[str] = Field(default_factory=list)
    cipher_suites: list[str] = Field(default_factory=list)
    min_protocol_version: str | None = None


# =============================================================================
# Routing
# =============================================================================


class RequestRoutingRule(_Record):
    name: Name
    rule_type: str = "Basic"
    priority: Annotated[int, Field(ge=1, le=20000)] | None = None
    http_listener_name: Annotated[str, Field(min_length=1)]
    backend_address_pool_name: str | None = None
    backend_http_settings_name: str | None = None
    redirect_configuration_name: str | None = None
    rewrite_rule_set_name: str | None = None
    url_path_map_name: str | None = None

    @field_validator("rule_type")
    @classmethod
    def validate_rule_type(cls, v: str) -> str:
        if v not in VALID_RULE_TYPES:
            raise ValueError(f"rule_type must be one of {sorted(VALID_RULE_TYPES)}")
        return v


class PathRule(_Record):
    name: Name
    paths: Annotated[list[str], Field(min_length=1)]
    backend_address_pool_name: str | None = None
    backend_http_settings_name: str | None = None
    redirect_configuration_name: str | None = None
    rewrite_rule_set_name: str | None = None
    firewall_policy_id: str | None = None


class UrlPathMap(_Record):
    name: Name
    default_backend_address_pool_name: str | None = None
    default_backend_http_settings_name: str | None = None
    default_redirect_configuration_name: str | None = None
    default_rewrite_rule_set_name: str | None = None
    path_rules: list[PathRule] = Field(default_factory=list)


class RedirectConfiguration(_Record):
    name: Name
    redirect_type: str = "Permanent"
    target_listener_name: str | None = None
    target_url: str | None = None
    include_path: bool = True
    include_query_string: bool = True

    @field_validator("redirect_type")
    @classmethod
    def validate_redirect_type(cls, v: str) -> str:
        if v not in VALID_REDIRECT_TYPES:
            raise ValueError(f"redirect_type must be one of {sorted(VALID_REDIRECT_TYPES)}")
        return v


class RewriteCondition(_Record):
    variable: Annotated[str, Field(min_length=1)]
    pattern: Annotated[str, Field(min_length=1)]
    ignore_case: bool = False
    negate: bool = False


class HeaderConfiguration(_Record):
    header_name: Annotated[str, Field(min_length=1)]
    header_value: str = ""


class RewriteUrl(_Record):
    path: str | None = None
    query_string: str | None = None
    reroute: bool = False


class RewriteRule(_Record):
    name: Name
    rule_sequence: Annotated[int, Field(ge=1, le=1000)] = 100
    conditions: list[RewriteCondition] = Field(default_factory=list)
    request_header_configurations: list[HeaderConfiguration] = Field(default_factory=list)
    response_header_configurations: list[HeaderConfiguration] = Field(default_factory=list)
    url: RewriteUrl | None = None


class RewriteRuleSet(_Record):
    name: Name
    rewrite_rules: list[RewriteRule] = Field(default_factory=list)


# =============================================================================
# WAF
# =============================================================================


class DisabledRuleGroup(_Record):
    rule_group_name: Annotated[str, Field(min_length=1)]
    rules: list[int] = Field(default_factory=list)


class WafExclusion(_Record):
    match_variable: Annotated[str, Field(min_length=1)]
    selector_match_operator: str | None = None
    selector: str | None = None


class WafConfiguration(_Record):
    enabled: bool = True
    firewall_mode: str = "Detection"
    rule_set_type: str = "OWASP"
    rule_set_version: str = "3.2"
    file_upload_limit_mb: Annotated[int, Field(ge=1, le=4000)] = 100
    request_body_check: bool = True
    max_request_body_size_kb: Annotated[int, Field(ge=1, le=2000)] = 128
    disabled_rule_group: list[DisabledRuleGroup] = Field(default_factory=list)
    exclusion: list[WafExclusion] = Field(default_factory=list)

    @field_validator("firewall_mode")
    @classmethod
    def validate_firewall_mode(cls, v: str) -> str:
        if v not in VALID_FIREWALL_MODES:
            raise ValueError(f"firewall_mode must be one of {sorted(VALID_FIREWALL_MODES)}")
        return v


# =============================================================================
# Top level
# =============================================================================


class AppGatewaySpec(_Record):
    """Complete input for one application gateway and its sub-resources.

    List-typed fields default to empty, flags to False and optional scalars
    to None, so a configuration only states what it needs.
    """

    resource_group_name: Annotated[str, Field(min_length=1, max_length=90)]
    location: Annotated[str, Field(min_length=1)]
    virtual_network_name: Annotated[str, Field(min_length=1, max_length=64)]
    vnet_resource_group_name: str | None = None
    subnet_name: Annotated[str, Field(min_length=1, max_length=80)]
    app_gateway_name: Annotated[str, Field(min_length=1, max_length=80)]

    sku: SkuConfig
    autoscale_configuration: AutoscaleConfig | None = None
    zones: list[str] = Field(default_factory=list)
    identity_ids: list[str] = Field(default_factory=list)
    enable_http2: bool = False
    firewall_policy_id: str | None = None
    force_firewall_policy_association: bool = False
    private_ip_address: str | None = None
    domain_name_label: str | None = None

    backend_address_pools: Annotated[list[BackendAddressPool], Field(min_length=1)]
    backend_http_settings: Annotated[list[BackendHttpSettings], Field(min_length=1)]
    http_listeners: Annotated[list[HttpListener], Field(min_length=1)]
    request_routing_rules: Annotated[list[RequestRoutingRule], Field(min_length=1)]

    ssl_certificates: list[SslCertificate] = Field(default_factory=list)
    authentication_certificates: list[AuthenticationCertificate] = Field(default_factory=list)
    trusted_root_certificates: list[TrustedRootCertificate] = Field(default_factory=list)
    ssl_policy: SslPolicy | None = None
    health_probes: list[HealthProbe] = Field(default_factory=list)
    url_path_maps: list[UrlPathMap] = Field(default_factory=list)
    waf_configuration: WafConfiguration | None = None
    redirect_configuration: list[RedirectConfiguration] = Field(default_factory=list)
    rewrite_rule_set: list[RewriteRuleSet] = Field(default_factory=list)
    custom_error_configuration: list[CustomErrorConfiguration] = Field(default_factory=list)

    diagnostics: DiagnosticsConfig | None = None
    tags: dict[str, str] = Field(default_factory=dict)

    @field_validator("location")
    @classmethod
    def normalize_location(cls, v: str) -> str:
        # "West Europe" and "westeurope" name the same region
        return v.replace(" ", "").lower()

    @property
    def network_resource_group(self) -> str:
        return self.vnet_resource_group_name or self.resource_group_name
