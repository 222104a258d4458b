"""Resource composition: AppGatewaySpec -> ARM deployment template.

The composition is a flat mapping. Every list entry in the spec becomes one
block in the gateway body, fields are copied directly, name references are
turned into sub-resource IDs, and absent optional fields are omitted.

No semantic validation happens here: a listener that names an undeclared
certificate renders to an ID that does not exist, and Azure Resource
Manager rejects it at deployment time.

Produced resources:
- Microsoft.Network/publicIPAddresses   pip-<gateway>
- Microsoft.Network/applicationGateways <gateway>
- diagnosticSettings extension           (only when diagnostics is set)
"""

from __future__ import annotations

import logging
from typing import Any

from . import resource_ids as ids
from .models import (
    AppGatewaySpec,
    BackendAddressPool,
    BackendHttpSettings,
    CustomErrorConfiguration,
    HealthProbe,
    HttpListener,
    RedirectConfiguration,
    RequestRoutingRule,
    RewriteRuleSet,
    SslCertificate,
    UrlPathMap,
)

logger = logging.getLogger(__name__)

TEMPLATE_SCHEMA = "https://schema.management.azure.com/schemas/2019-04-01/deploymentTemplate.json#"
TEMPLATE_CONTENT_VERSION = "1.0.0.0"

NETWORK_API_VERSION = "2023-09-01"
DIAGNOSTICS_API_VERSION = "2021-05-01-preview"

HTTP_FRONTEND_PORT = 80
HTTPS_FRONTEND_PORT = 443


# =============================================================================
# Derived names
# =============================================================================


def public_ip_name(spec: AppGatewaySpec) -> str:
    return f"pip-{spec.app_gateway_name}"


def gateway_ip_configuration_name(spec: AppGatewaySpec) -> str:
    return f"appgw-{spec.app_gateway_name}-gwipc"


def public_frontend_name(spec: AppGatewaySpec) -> str:
    return f"appgw-{spec.app_gateway_name}-feip"


def private_frontend_name(spec: AppGatewaySpec) -> str:
    return f"appgw-{spec.app_gateway_name}-fepvt-ip"


def http_frontend_port_name(spec: AppGatewaySpec) -> str:
    return f"appgw-{spec.app_gateway_name}-feport"


def https_frontend_port_name(spec: AppGatewaySpec) -> str:
    return f"appgw-{spec.app_gateway_name}-feport-https"


def diagnostic_setting_name(spec: AppGatewaySpec) -> str:
    return f"{spec.app_gateway_name}-diag"


def ssl_certificate_parameter_names(index: int) -> tuple[str, str]:
    """Secure template parameters carrying inline PFX data and its password."""
    return f"sslCertificate{index}Data", f"sslCertificate{index}Password"



# =============================================================================
# Helpers
# =============================================================================


def _compact(values: dict[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is None (optional field not supplied)."""
    return {k: v for k, v in values.items() if v is not None}


def _parameter_ref(name: str) -> str:
    return f"[parameters('{name}')]"



class _Refs:
    """Turns sub-resource names into {"id": ...} references under one gateway."""

    def __init__(self, gateway_id: str) -> None:
        self._gateway_id = gateway_id

    def ref(self, collection: str, name: str | None) -> dict[str, str] | None:
        if name is None:
            return None
        return {"id": ids.child_id(self._gateway_id, collection, name)}

    def refs(self, collection: str, names: list[str]) -> list[dict[str, str]] | None:
        if not names:
            return None
        return [{"id": ids.child_id(self._gateway_id, collection, n)} for n in names]


def _custom_errors(configs: list[CustomErrorConfiguration]) -> list[dict[str, str]] | None:
    if not configs:
        return None
    return [
        {"statusCode": c.status_code, "customErrorPageUrl": c.custom_error_page_url}
        for c in configs
    ]


# =============================================================================
# Sub-resource blocks
# =============================================================================


def _backend_pool(pool: BackendAddressPool) -> dict[str, Any]:
    addresses = [{"fqdn": f} for f in pool.fqdns] + [{"ipAddress": ip} for ip in pool.ip_addresses]
    return {"name": pool.name, "properties": {"backendAddresses": addresses}}


def _backend_http_settings(settings: BackendHttpSettings, refs: _Refs) -> dict[str, Any]:
    draining = None
    if settings.connection_draining is not None:
        draining = {
            "enabled": settings.connection_draining.enable_connection_draining,
            "drainTimeoutInSec": settings.connection_draining.drain_timeout_sec,
        }

    properties = _compact({
        "port": settings.port,
        "protocol": settings.protocol,
        "cookieBasedAffinity": settings.cookie_based_affinity,
        "affinityCookieName": settings.affinity_cookie_name,
        "path": settings.path,
        "requestTimeout": settings.request_timeout,
        "probe": refs.ref(ids.PROBES, settings.probe_name),
        "hostName": settings.host_name,
        "pickHostNameFromBackendAddress": settings.pick_host_name_from_backend_address,
        "authenticationCertificates": refs.refs(
            ids.AUTHENTICATION_CERTIFICATES, settings.authentication_certificate_names
        ),
        "trustedRootCertificates": refs.refs(
            ids.TRUSTED_ROOT_CERTIFICATES, settings.trusted_root_certificate_names
        ),
        "connectionDraining": draining,
    })
    return {"name": settings.name, "properties": properties}


def _http_listener(spec: AppGatewaySpec, listener: HttpListener, refs: _Refs) -> dict[str, Any]:
    if listener.use_private_frontend and spec.private_ip_address:
        frontend = private_frontend_name(spec)
    else:
        frontend = public_frontend_name(spec)

    if listener.ssl_certificate_name:
        port_name = https_frontend_port_name(spec)
    else:
        port_name = http_frontend_port_name(spec)

    properties = _compact({
        "frontendIPConfiguration": refs.ref(ids.FRONTEND_IP_CONFIGURATIONS, frontend),
        "frontendPort": refs.ref(ids.FRONTEND_PORTS, port_name),
        "protocol": listener.protocol,
        "sslCertificate": refs.ref(ids.SSL_CERTIFICATES, listener.ssl_certificate_name),
        "hostName": listener.host_name,
        "hostNames": listener.host_names or None,
        "requireServerNameIndication": listener.require_sni if listener.is_multi_site else None,
        "firewallPolicy": {"id": listener.firewall_policy_id} if listener.firewall_policy_id else None,
        "customErrorConfigurations": _custom_errors(listener.custom_error_configuration),
    })
    return {"name": listener.name, "properties": properties}


def _routing_rule(rule: RequestRoutingRule, refs: _Refs) -> dict[str, Any]:
    properties = _compact({
        "ruleType": rule.rule_type,
        "priority": rule.priority,
        "httpListener": refs.ref(ids.HTTP_LISTENERS, rule.http_listener_name),
        "backendAddressPool": refs.ref(ids.BACKEND_ADDRESS_POOLS, rule.backend_address_pool_name),
        "backendHttpSettings": refs.ref(ids.BACKEND_HTTP_SETTINGS, rule.backend_http_settings_name),
        "redirectConfiguration": refs.ref(
            ids.REDIRECT_CONFIGURATIONS, rule.redirect_configuration_name
        ),
        "rewriteRuleSet": refs.ref(ids.REWRITE_RULE_SETS, rule.rewrite_rule_set_name),
        "urlPathMap": refs.ref(ids.URL_PATH_MAPS, rule.url_path_map_name),
    })
    return {"name": rule.name, "properties": properties}


def _url_path_map(path_map: UrlPathMap, refs: _Refs) -> dict[str, Any]:
    path_rules = [
        {
            "name": rule.name,
            "properties": _compact({
                "paths": list(rule.paths),
                "backendAddressPool": refs.ref(
                    ids.BACKEND_ADDRESS_POOLS, rule.backend_address_pool_name
                ),
                "backendHttpSettings": refs.ref(
                    ids.BACKEND_HTTP_SETTINGS, rule.backend_http_settings_name
                ),
                "redirectConfiguration": refs.ref(
                    ids.REDIRECT_CONFIGURATIONS, rule.redirect_configuration_name
                ),
                "rewriteRuleSet": refs.ref(ids.REWRITE_RULE_SETS, rule.rewrite_rule_set_name),
                "firewallPolicy": {"id": rule.firewall_policy_id} if rule.firewall_policy_id else None,
            }),
        }
        for rule in path_map.path_rules
    ]

    properties = _compact({
        "defaultBackendAddressPool": refs.ref(
            ids.BACKEND_ADDRESS_POOLS, path_map.default_backend_address_pool_name
        ),
        "defaultBackendHttpSettings": refs.ref(
            ids.BACKEND_HTTP_SETTINGS, path_map.default_backend_http_settings_name
        ),
        "defaultRedirectConfiguration": refs.ref(
            ids.REDIRECT_CONFIGURATIONS, path_map.default_redirect_configuration_name
        ),
        "defaultRewriteRuleSet": refs.ref(
            ids.REWRITE_RULE_SETS, path_map.default_rewrite_rule_set_name
        ),
    })
    properties["pathRules"] = path_rules
    return {"name": path_map.name, "properties": properties}


def _probe(probe: HealthProbe) -> dict[str, Any]:
    match = None
    if probe.match is not None:
        match = _compact({"body": probe.match.body, "statusCodes": list(probe.match.status_code)})

    properties = _compact({
        "protocol": probe.protocol,
        "host": probe.host,
        "path": probe.path,
        "interval": probe.interval,
        "timeout": probe.timeout,
        "unhealthyThreshold": probe.unhealthy_threshold,
        "port": probe.port,
        "pickHostNameFromBackendHttpSettings": probe.pick_host_name_from_backend_http_settings,
        "minServers": probe.minimum_servers,
        "match": match,
    })
    return {"name": probe.name, "properties": properties}


def _ssl_certificate(cert: SslCertificate, index: int) -> dict[str, Any]:
    data_param, password_param = ssl_certificate_parameter_names(index)
    properties = _compact({
        "data": _parameter_ref(data_param) if cert.data is not None else None,
        "password": _parameter_ref(password_param) if cert.password is not None else None,
        "keyVaultSecretId": cert.key_vault_secret_id,
    })
    return {"name": cert.name, "properties": properties}


def _redirect(redirect: RedirectConfiguration, refs: _Refs) -> dict[str, Any]:
    properties = _compact({
        "redirectType": redirect.redirect_type,
        "targetListener": refs.ref(ids.HTTP_LISTENERS, redirect.target_listener_name),
        "targetUrl": redirect.target_url,
        "includePath": redirect.include_path,
        "includeQueryString": redirect.include_query_string,
    })
    return {"name": redirect.name, "properties": properties}


def _rewrite_rule_set(rule_set: RewriteRuleSet) -> dict[str, Any]:
    rules = []
    for rule in rule_set.rewrite_rules:
        action_set: dict[str, Any] = {
            "requestHeaderConfigurations": [
                {"headerName": h.header_name, "headerValue": h.header_value}
                for h in rule.request_header_configurations
            ],
            "responseHeaderConfigurations": [
                {"headerName": h.header_name, "headerValue": h.header_value}
                for h in rule.response_header_configurations
            ],
        }
        if rule.url is not None:
            action_set["urlConfiguration"] = _compact({
                "modifiedPath": rule.url.path,
                "modifiedQueryString": rule.url.query_string,
                "reroute": rule.url.reroute,
            })

        rules.append({
            "name": rule.name,
            "ruleSequence": rule.rule_sequence,
            "conditions": [
                {
                    "variable": c.variable,
                    "pattern": c.pattern,
                    "ignoreCase": c.ignore_case,
                    "negate": c.negate,
                }
                for c in rule.conditions
            ],
            "actionSet": action_set,
        })

    return {"name": rule_set.name, "properties": {"rewriteRules": rules}}


def _waf(spec: AppGatewaySpec) -> dict[str, Any] | None:
    waf = spec.waf_configuration
    if waf is None:
        return None
    return {
        "enabled": waf.enabled,
        "firewallMode": waf.firewall_mode,
        "ruleSetType": waf.rule_set_type,
        "ruleSetVersion": waf.rule_set_version,
        "fileUploadLimitInMb": waf.file_upload_limit_mb,
        "requestBodyCheck": waf.request_body_check,
        "maxRequestBodySizeInKb": waf.max_request_body_size_kb,
        "disabledRuleGroups": [
            _compact({"ruleGroupName": g.rule_group_name, "rules": list(g.rules) or None})
            for g in waf.disabled_rule_group
        ],
        "exclusions": [
            _compact({
                "matchVariable": e.match_variable,
                "selectorMatchOperator": e.selector_match_operator,
                "selector": e.selector,
            })
            for e in waf.exclusion
        ],
    }


def _ssl_policy(spec: AppGatewaySpec) -> dict[str, Any] | None:
    policy = spec.ssl_policy
    if policy is None:
        return None
    return _compact({
        "policyType": policy.policy_type,
        "policyName": policy.policy_name,
        "disabledSslProtocols": list(policy.disabled_protocols) or None,
        "cipherSuites": list(policy.cipher_suites) or None,
        "minProtocolVersion": policy.min_protocol_version,
    })


# =============================================================================
# Resources
# =============================================================================


def build_public_ip(spec: AppGatewaySpec) -> dict[str, Any]:
    """Standard static public IP fronting the gateway."""
    resource: dict[str, Any] = {
        "type": ids.PUBLIC_IP_TYPE,
        "apiVersion": NETWORK_API_VERSION,
        "name": public_ip_name(spec),
        "location": spec.location,
        "sku": {"name": "Standard"},
        "properties": {
            "publicIPAllocationMethod": "Static",
            "publicIPAddressVersion": "IPv4",
        },
        "tags": dict(spec.tags),
    }
    if spec.zones:
        resource["zones"] = list(spec.zones)
    if spec.domain_name_label:
        resource["properties"]["dnsSettings"] = {"domainNameLabel": spec.domain_name_label}
    return resource


def build_application_gateway(spec: AppGatewaySpec, subscription_id: str) -> dict[str, Any]:
    """The gateway resource with every sub-resource collection inlined."""
    rg = spec.resource_group_name
    gw_id = ids.gateway_id(subscription_id, rg, spec.app_gateway_name)
    pip_id = ids.public_ip_id(subscription_id, rg, public_ip_name(spec))
    gateway_subnet_id = ids.subnet_id(
        subscription_id, spec.network_resource_group, spec.virtual_network_name, spec.subnet_name
    )
    refs = _Refs(gw_id)

    sku = _compact({
        "name": spec.sku.name,
        "tier": spec.sku.tier,
        "capacity": spec.sku.capacity,
    })

    frontend_ips: list[dict[str, Any]] = [
        {
            "name": public_frontend_name(spec),
            "properties": {"publicIPAddress": {"id": pip_id}},
        }
    ]
    if spec.private_ip_address:
        frontend_ips.append({
            "name": private_frontend_name(spec),
            "properties": {
                "privateIPAddress": spec.private_ip_address,
                "privateIPAllocationMethod": "Static",
                "subnet": {"id": gateway_subnet_id},
            },
        })

    properties: dict[str, Any] = {
        "sku": sku,
        "enableHttp2": spec.enable_http2,
        "gatewayIPConfigurations": [
            {
                "name": gateway_ip_configuration_name(spec),
                "properties": {"subnet": {"id": gateway_subnet_id}},
            }
        ],
        "frontendIPConfigurations": frontend_ips,
        "frontendPorts": [
            {"name": http_frontend_port_name(spec), "properties": {"port": HTTP_FRONTEND_PORT}},
            {"name": https_frontend_port_name(spec), "properties": {"port": HTTPS_FRONTEND_PORT}},
        ],
        "backendAddressPools": [_backend_pool(p) for p in spec.backend_address_pools],
        "backendHttpSettingsCollection": [
            _backend_http_settings(s, refs) for s in spec.backend_http_settings
        ],
        "httpListeners": [_http_listener(spec, listener, refs) for listener in spec.http_listeners],
        "requestRoutingRules": [_routing_rule(r, refs) for r in spec.request_routing_rules],
        "urlPathMaps": [_url_path_map(m, refs) for m in spec.url_path_maps],
        "probes": [_probe(p) for p in spec.health_probes],
        "sslCertificates": [
            _ssl_certificate(c, i) for i, c in enumerate(spec.ssl_certificates)
        ],
        "authenticationCertificates": [
            {"name": c.name, "properties": {"data": c.data}}
            for c in spec.authentication_certificates
        ],
        "trustedRootCertificates": [
            {
                "name": c.name,
                "properties": _compact({"data": c.data, "keyVaultSecretId": c.key_vault_secret_id}),
            }
            for c in spec.trusted_root_certificates
        ],
        "redirectConfigurations": [_redirect(r, refs) for r in spec.redirect_configuration],
        "rewriteRuleSets": [_rewrite_rule_set(s) for s in spec.rewrite_rule_set],
    }

    if spec.autoscale_configuration is not None:
        properties["autoscaleConfiguration"] = _compact({
            "minCapacity": spec.autoscale_configuration.min_capacity,
            "maxCapacity": spec.autoscale_configuration.max_capacity,
        })

    optional = _compact({
        "sslPolicy": _ssl_policy(spec),
        "webApplicationFirewallConfiguration": _waf(spec),
        "customErrorConfigurations": _custom_errors(spec.custom_error_configuration),
        "firewallPolicy": {"id": spec.firewall_policy_id} if spec.firewall_policy_id else None,
    })
    properties.update(optional)
    if spec.firewall_policy_id:
        properties["forceFirewallPolicyAssociation"] = spec.force_firewall_policy_association

    resource: dict[str, Any] = {
        "type": ids.APPLICATION_GATEWAY_TYPE,
        "apiVersion": NETWORK_API_VERSION,
        "name": spec.app_gateway_name,
        "location": spec.location,
        "dependsOn": [pip_id],
        "properties": properties,
        "tags": dict(spec.tags),
    }
    if spec.zones:
        resource["zones"] = list(spec.zones)
    if spec.identity_ids:
        resource["identity"] = {
            "type": "UserAssigned",
            "userAssignedIdentities": {identity: {} for identity in spec.identity_ids},
        }
    return resource


def build_diagnostic_settings(spec: AppGatewaySpec, subscription_id: str) -> dict[str, Any] | None:
    """Diagnostic settings extension resource, when a sink is configured."""
    diagnostics = spec.diagnostics
    if diagnostics is None:
        return None
    if not diagnostics.log_analytics_workspace_id and not diagnostics.storage_account_id:
        logger.warning(
            "Diagnostics configured without a sink, skipping diagnostic settings",
            extra={"app_gateway_name": spec.app_gateway_name},
        )
        return None

    gw_id = ids.gateway_id(subscription_id, spec.resource_group_name, spec.app_gateway_name)
    return {
        "type": ids.DIAGNOSTIC_SETTINGS_TYPE,
        "apiVersion": DIAGNOSTICS_API_VERSION,
        "name": f"{spec.app_gateway_name}/Microsoft.Insights/{diagnostic_setting_name(spec)}",
        "dependsOn": [gw_id],
        "properties": _compact({
            "workspaceId": diagnostics.log_analytics_workspace_id,
            "storageAccountId": diagnostics.storage_account_id,
            "logs": [{"category": c, "enabled": True} for c in diagnostics.logs],
            "metrics": [{"category": c, "enabled": True} for c in diagnostics.metrics],
        }),
    }


def template_parameters(spec: AppGatewaySpec) -> dict[str, dict[str, str]]:
    """Values for the secure parameters declared by render_template.

    Passed alongside the template on WhatIf and deployment so certificate
    secrets never appear in the template body or the deployment history.
    """
    parameters: dict[str, dict[str, str]] = {}
    for index, cert in enumerate(spec.ssl_certificates):
        data_param, password_param = ssl_certificate_parameter_names(index)
        if cert.data is not None:
            parameters[data_param] = {"value": cert.data}
        if cert.password is not None:
            parameters[password_param] = {"value": cert.password}
    return parameters


def render_template(spec: AppGatewaySpec, subscription_id: str) -> dict[str, Any]:
    """Compose the ARM deployment template for a gateway configuration.

    Args:
        spec: Validated gateway configuration.
        subscription_id: Subscription the resource IDs are rooted in.

    Returns:
        ARM template as a dictionary, ready for a resource-group deployment.
    """
    resources = [
        build_public_ip(spec),
        build_application_gateway(spec, subscription_id),
    ]
    diagnostics = build_diagnostic_settings(spec, subscription_id)
    if diagnostics is not None:
        resources.append(diagnostics)

    logger.debug(
        "Rendered template",
        extra={
            "app_gateway_name": spec.app_gateway_name,
            "resource_count": len(resources),
        },
    )

    return {
        "$schema": TEMPLATE_SCHEMA,
        "contentVersion": TEMPLATE_CONTENT_VERSION,
        "parameters": {name: {"type": "securestring"} for name in template_parameters(spec)},
        "resources": resources,
    }
