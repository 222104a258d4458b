"""Azure resource identifier helpers.

Azure resource IDs follow the pattern:
/subscriptions/{sub}/resourceGroups/{rg}/providers/{namespace}/{type}/{name}[/{child}/{name}...]

Application gateway sub-resources (pools, listeners, probes, ...) are child
segments of the gateway ID, e.g. ``{gateway_id}/backendAddressPools/pool-a``.
"""

from __future__ import annotations

import re

NETWORK_NAMESPACE = "Microsoft.Network"
APPLICATION_GATEWAY_TYPE = "Microsoft.Network/applicationGateways"
PUBLIC_IP_TYPE = "Microsoft.Network/publicIPAddresses"
VIRTUAL_NETWORK_TYPE = "Microsoft.Network/virtualNetworks"
SUBNET_TYPE = "Microsoft.Network/virtualNetworks/subnets"
DIAGNOSTIC_SETTINGS_TYPE = "Microsoft.Network/applicationGateways/providers/diagnosticSettings"

# Child collection names under an application gateway, as ARM spells them
GATEWAY_IP_CONFIGURATIONS = "gatewayIPConfigurations"
FRONTEND_IP_CONFIGURATIONS = "frontendIPConfigurations"
FRONTEND_PORTS = "frontendPorts"
BACKEND_ADDRESS_POOLS = "backendAddressPools"
BACKEND_HTTP_SETTINGS = "backendHttpSettingsCollection"
HTTP_LISTENERS = "httpListeners"
REQUEST_ROUTING_RULES = "requestRoutingRules"
URL_PATH_MAPS = "urlPathMaps"
PATH_RULES = "pathRules"
PROBES = "probes"
SSL_CERTIFICATES = "sslCertificates"
AUTHENTICATION_CERTIFICATES = "authenticationCertificates"
TRUSTED_ROOT_CERTIFICATES = "trustedRootCertificates"
REDIRECT_CONFIGURATIONS = "redirectConfigurations"
REWRITE_RULE_SETS = "rewriteRuleSets"
CUSTOM_ERROR_CONFIGURATIONS = "customErrorConfigurations"

GATEWAY_CHILD_COLLECTIONS: tuple[str, ...] = (
    GATEWAY_IP_CONFIGURATIONS,
    FRONTEND_IP_CONFIGURATIONS,
    FRONTEND_PORTS,
    BACKEND_ADDRESS_POOLS,
    BACKEND_HTTP_SETTINGS,
    HTTP_LISTENERS,
    REQUEST_ROUTING_RULES,
    URL_PATH_MAPS,
    PROBES,
    SSL_CERTIFICATES,
    AUTHENTICATION_CERTIFICATES,
    TRUSTED_ROOT_CERTIFICATES,
    REDIRECT_CONFIGURATIONS,
    REWRITE_RULE_SETS,
)

RESOURCE_ID_PATTERN = re.compile(
    r"^/subscriptions/[0-9a-fA-F-]{36}/resourceGroups/[^/]+/providers/"
    r"[A-Za-z0-9.]+/[A-Za-z0-9]+/[^/]+(/[A-Za-z0-9]+/[^/]+)*$"
)


def resource_group_id(subscription_id: str, resource_group: str) -> str:
    return f"/subscriptions/{subscription_id}/resourceGroups/{resource_group}"


def resource_id(subscription_id: str, resource_group: str, resource_type: str, *names: str) -> str:
    """Build a resource ID for a (possibly nested) resource type.

    Args:
        subscription_id: Subscription GUID.
        resource_group: Resource group name.
        resource_type: Full type, e.g. "Microsoft.Network/virtualNetworks/subnets".
        *names: One name per type segment after the namespace.

    Returns:
        The resource ID.

    Raises:
        ValueError: If the number of names does not match the type depth.
    """
    namespace, _, type_path = resource_type.partition("/")
    type_segments = type_path.split("/") if type_path else []
    if not type_segments or len(type_segments) != len(names):
        raise ValueError(
            f"Resource type '{resource_type}' needs {len(type_segments)} name(s), got {len(names)}"
        )

    path = "/".join(f"{segment}/{name}" for segment, name in zip(type_segments, names))
    return f"{resource_group_id(subscription_id, resource_group)}/providers/{namespace}/{path}"


def gateway_id(subscription_id: str, resource_group: str, gateway_name: str) -> str:
    return resource_id(subscription_id, resource_group, APPLICATION_GATEWAY_TYPE, gateway_name)


def public_ip_id(subscription_id: str, resource_group: str, public_ip_name: str) -> str:
    return resource_id(subscription_id, resource_group, PUBLIC_IP_TYPE, public_ip_name)


def subnet_id(subscription_id: str, resource_group: str, vnet_name: str, subnet_name: str) -> str:
    return resource_id(subscription_id, resource_group, SUBNET_TYPE, vnet_name, subnet_name)


def child_id(parent_id: str, collection: str, name: str) -> str:
    """ID of a sub-resource, e.g. a listener under a gateway."""
    return f"{parent_id}/{collection}/{name}"


def parse_resource_type(resource_id_value: str | None) -> str:
    """Extract the top-level resource type from an Azure resource ID.

    Args:
        resource_id_value: Azure resource ID.

    Returns:
        Resource type (e.g., "Microsoft.Network/applicationGateways") or "unknown".
    """
    if not resource_id_value:
        return "unknown"

    parts = resource_id_value.split("/providers/")
    if len(parts) < 2:
        return "unknown"

    # Provider portion: Microsoft.Network/applicationGateways/agw-main[/child/...]
    segments = parts[-1].split("/")
    if len(segments) < 2:
        return "unknown"

    return f"{segments[0]}/{segments[1]}"


def parse_name(resource_id_value: str) -> str:
    """Last name segment of a resource ID."""
    return resource_id_value.rstrip("/").rsplit("/", 1)[-1]


def is_resource_id(value: str | None) -> bool:
    """Check that a value looks like an ARM resource ID."""
    if not value:
        return False
    return bool(RESOURCE_ID_PATTERN.match(value))
