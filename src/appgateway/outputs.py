"""Output record for a provisioned application gateway.

Every value is a passthrough of a field Azure generated on the deployed
resources (IDs, the public IP address, certificate public data). The only
exception is custom error configurations: ARM does not assign them IDs, so
one is derived as ``<gateway_id>/customErrorConfigurations/<status_code>``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from . import resource_ids as ids


@dataclass
class GatewayOutputs:
    """Generated identifiers and select fields of a deployed gateway."""

    application_gateway_id: str
    public_ip_id: str | None = None
    public_ip_address: str | None = None
    backend_address_pool_ids: dict[str, str] = field(default_factory=dict)
    backend_http_settings_ids: dict[str, str] = field(default_factory=dict)
    http_listener_ids: dict[str, str] = field(default_factory=dict)
    health_probe_ids: dict[str, str] = field(default_factory=dict)
    request_routing_rule_ids: dict[str, str] = field(default_factory=dict)
    url_path_map_ids: dict[str, str] = field(default_factory=dict)
    ssl_certificate_ids: dict[str, str] = field(default_factory=dict)
    ssl_certificate_public_data: dict[str, str] = field(default_factory=dict)
    redirect_configuration_ids: dict[str, str] = field(default_factory=dict)
    rewrite_rule_set_ids: dict[str, str] = field(default_factory=dict)
    custom_error_configuration_ids: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def all_ids(self) -> list[str]:
        """Every identifier in the record, for bulk checks."""
        result = [self.application_gateway_id]
        if self.public_ip_id:
            result.append(self.public_ip_id)
        for mapping in (
            self.backend_address_pool_ids,
            self.backend_http_settings_ids,
            self.http_listener_ids,
            self.health_probe_ids,
            self.request_routing_rule_ids,
            self.url_path_map_ids,
            self.ssl_certificate_ids,
            self.redirect_configuration_ids,
            self.rewrite_rule_set_ids,
            self.custom_error_configuration_ids,
        ):
            result.extend(mapping.values())
        return result


def _ids_by_name(properties: dict[str, Any], collection: str) -> dict[str, str]:
    return {
        entry["name"]: entry["id"]
        for entry in properties.get(collection) or []
        if entry.get("name") and entry.get("id")
    }


def collect_outputs(
    gateway: dict[str, Any],
    public_ip: dict[str, Any] | None = None,
) -> GatewayOutputs:
    """Build the output record from deployed resource bodies.

    Args:
        gateway: Application gateway resource as returned by ARM (id, name, properties).
        public_ip: Public IP resource as returned by ARM, if it exists.

    Returns:
        GatewayOutputs for the deployed gateway.

    Raises:
        ValueError: If the gateway body has no id.
    """
    gateway_id = gateway.get("id")
    if not gateway_id:
        raise ValueError("Gateway resource has no id; was it deployed?")

    properties = gateway.get("properties") or {}

    cert_public_data = {
        cert["name"]: cert["properties"]["publicCertData"]
        for cert in properties.get(ids.SSL_CERTIFICATES) or []
        if cert.get("name") and (cert.get("properties") or {}).get("publicCertData")
    }

    custom_errors: dict[str, str] = {}
    for entry in properties.get(ids.CUSTOM_ERROR_CONFIGURATIONS) or []:
        status_code = entry.get("statusCode")
        if not status_code:
            continue
        custom_errors[status_code] = entry.get("id") or ids.child_id(
            gateway_id, ids.CUSTOM_ERROR_CONFIGURATIONS, status_code
        )

    outputs = GatewayOutputs(
        application_gateway_id=gateway_id,
        backend_address_pool_ids=_ids_by_name(properties, ids.BACKEND_ADDRESS_POOLS),
        backend_http_settings_ids=_ids_by_name(properties, ids.BACKEND_HTTP_SETTINGS),
        http_listener_ids=_ids_by_name(properties, ids.HTTP_LISTENERS),
        health_probe_ids=_ids_by_name(properties, ids.PROBES),
        request_routing_rule_ids=_ids_by_name(properties, ids.REQUEST_ROUTING_RULES),
        url_path_map_ids=_ids_by_name(properties, ids.URL_PATH_MAPS),
        ssl_certificate_ids=_ids_by_name(properties, ids.SSL_CERTIFICATES),
        ssl_certificate_public_data=cert_public_data,
        redirect_configuration_ids=_ids_by_name(properties, ids.REDIRECT_CONFIGURATIONS),
        rewrite_rule_set_ids=_ids_by_name(properties, ids.REWRITE_RULE_SETS),
        custom_error_configuration_ids=custom_errors,
    )

    if public_ip is not None:
        outputs.public_ip_id = public_ip.get("id")
        outputs.public_ip_address = (public_ip.get("properties") or {}).get("ipAddress")

    return outputs
