"""Mock Azure context for integration testing.

Patches the credential classes and the ResourceManagementClient used by
the deployer with in-memory implementations.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any
from unittest import mock

from .credential import MockAzureCliCredential, MockManagedIdentityCredential
from .resources import MockDeployment, MockResourceClient, MockResourceState

DEFAULT_SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000001"


class MockAzureContext:
    """Context manager for Azure API mocking in integration tests.

    Patches:
    - appgateway.security.ManagedIdentityCredential -> MockManagedIdentityCredential
    - appgateway.security.AzureCliCredential -> MockAzureCliCredential
    - appgateway.deployer.ResourceManagementClient -> MockResourceClient

    Usage:
        with MockAzureContext(subnets=[("rg", "vnet", "snet")]) as ctx:
            result = await Deployer(config).apply(spec)
            assert ctx.get_deployment_count() == 1
    """

    def __init__(
        self,
        *,
        subscription_id: str = DEFAULT_SUBSCRIPTION_ID,
        subnets: list[tuple[str, str, str]] | None = None,
        fail_deployments: bool = False,
    ) -> None:
        """Initialize mock context.

        Args:
            subscription_id: Subscription the pre-populated subnets live in.
            subnets: (resource group, virtual network, subnet) triples that exist.
            fail_deployments: Fail every deployment with a transient error.
        """
        self._subscription_id = subscription_id
        self._subnets = subnets or []
        self._fail_deployments = fail_deployments

        self._state: MockResourceState | None = None
        self._clients: list[MockResourceClient] = []
        self._credentials: list[MockManagedIdentityCredential] = []
        self._patches: list[Any] = []

    @property
    def state(self) -> MockResourceState:
        if self._state is None:
            raise RuntimeError("MockAzureContext must be used as a context manager")
        return self._state

    @property
    def clients(self) -> list[MockResourceClient]:
        """Every ResourceManagementClient created inside the context."""
        return list(self._clients)

    @property
    def credentials(self) -> list[MockManagedIdentityCredential]:
        """Every credential handed out inside the context."""
        return list(self._credentials)

    def get_deployment_count(self) -> int:
        return self.state.deployment_count

    def get_resource_count(self) -> int:
        return self.state.resource_count

    def get_deployments(self) -> list[MockDeployment]:
        return self.state.get_deployment_history()

    def __enter__(self) -> MockAzureContext:
        self._state = MockResourceState()
        for resource_group, vnet_name, subnet_name in self._subnets:
            self._state.add_subnet(self._subscription_id, resource_group, vnet_name, subnet_name)

        def create_managed_identity(client_id: str | None = None) -> MockManagedIdentityCredential:
            credential = MockManagedIdentityCredential(client_id=client_id)
            self._credentials.append(credential)
            return credential

        def create_cli_credential() -> MockAzureCliCredential:
            credential = MockAzureCliCredential()
            self._credentials.append(credential)
            return credential

        def create_mock_client(credential: Any, subscription_id: str) -> MockResourceClient:
            client = MockResourceClient(
                state=self.state,
                subscription_id=subscription_id,
                fail_deployments=self._fail_deployments,
            )
            self._clients.append(client)
            return client

        self._patches = [
            mock.patch(
                "appgateway.security.ManagedIdentityCredential",
                side_effect=create_managed_identity,
            ),
            mock.patch(
                "appgateway.security.AzureCliCredential",
                side_effect=create_cli_credential,
            ),
            mock.patch(
                "appgateway.deployer.ResourceManagementClient",
                side_effect=create_mock_client,
            ),
        ]
        for patch in self._patches:
            patch.start()

        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        for patch in reversed(self._patches):
            patch.stop()
        self._patches.clear()


@contextmanager
def mock_azure_context(
    *,
    subscription_id: str = DEFAULT_SUBSCRIPTION_ID,
    subnets: list[tuple[str, str, str]] | None = None,
    fail_deployments: bool = False,
) -> Generator[MockAzureContext, None, None]:
    """Convenience wrapper around MockAzureContext."""
    with MockAzureContext(
        subscription_id=subscription_id,
        subnets=subnets,
        fail_deployments=fail_deployments,
    ) as ctx:
        yield ctx
