"""Azure API mock for integration testing.

An in-memory stand-in for Azure Resource Manager: resource-group WhatIf,
incremental deployments with ARM-like validation, and generic resource
reads and deletes. Lets the deployer run end to end without Azure.

Usage:
    from azure_mock import MockAzureContext

    with MockAzureContext(subnets=[("rg-net", "vnet-hub", "snet-agw")]) as ctx:
        deployer = Deployer(config)
        result = await deployer.apply(spec)

        assert ctx.get_deployment_count() == 1
"""

from .context import MockAzureContext, mock_azure_context
from .credential import MockAzureCliCredential, MockManagedIdentityCredential, create_mock_credential
from .resources import MockResourceClient, MockResourceState

__all__ = [
    "MockAzureCliCredential",
    "MockAzureContext",
    "MockManagedIdentityCredential",
    "MockResourceClient",
    "MockResourceState",
    "create_mock_credential",
    "mock_azure_context",
]
