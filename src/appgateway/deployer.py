"""Provisioning driver for the application gateway composition.

Plans and applies the rendered template through Azure Resource Manager:

1. Look up the subnet the gateway attaches to (must already exist)
2. Render the template and run WhatIf at resource group scope
3. Drop NoChange/Ignore results and ignore-rule noise
4. Deploy in Incremental mode when significant changes remain
5. Read generated identifiers back from the deployed resources

Every blocking SDK call runs in the default executor under a timeout.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.resource.resources.models import (
    Deployment,
    DeploymentMode,
    DeploymentProperties,
    DeploymentWhatIf,
    DeploymentWhatIfProperties,
    WhatIfChange,
)

from . import resource_ids as ids
from .config import (
    MAX_DEPLOYMENT_NAME_LENGTH,
    MAX_DEPLOYMENT_RETRIES,
    MAX_WHATIF_CHANGES,
    RETRY_BACKOFF_BASE_SECONDS,
    Config,
)
from .ignore_rules import IgnoreRulesConfig, IgnoreRulesEvaluator
from .models import AppGatewaySpec
from .outputs import GatewayOutputs, collect_outputs
from .security import get_credential
from .template import NETWORK_API_VERSION, public_ip_name, render_template, template_parameters

logger = logging.getLogger(__name__)

# Status codes worth another deployment attempt
RETRYABLE_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504})


class DependencyLookupError(Exception):
    """Raised when a resource the gateway depends on does not exist."""

    pass


class DeploymentError(Exception):
    """Raised when a deployment is refused or cannot complete."""

    pass


class ChangeType(str, Enum):
    """ARM WhatIf change types."""

    CREATE = "Create"
    DELETE = "Delete"
    DEPLOY = "Deploy"
    IGNORE = "Ignore"
    MODIFY = "Modify"
    NO_CHANGE = "NoChange"
    UNSUPPORTED = "Unsupported"


@dataclass
class PlanResult:
    """Significant changes WhatIf reports for a configuration."""

    app_gateway_name: str
    template: dict[str, Any]
    changes: list[WhatIfChange] = field(default_factory=list)
    create_count: int = 0
    modify_count: int = 0
    delete_count: int = 0
    no_change_count: int = 0
    ignored_count: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    def summary(self) -> list[tuple[str, str]]:
        """(change type, resource id) pairs, in WhatIf order."""
        return [(str(_change_type(c)), c.resource_id) for c in self.changes]


@dataclass
class ApplyResult:
    """Result of a single apply."""

    app_gateway_name: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    plan: PlanResult | None = None
    deployed: bool = False
    deployment_name: str | None = None
    skipped_reason: str | None = None
    outputs: GatewayOutputs | None = None
    error: Exception | None = None

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class DestroyResult:
    """Result of tearing a gateway down."""

    app_gateway_name: str
    deleted: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    error: Exception | None = None

    @property
    def success(self) -> bool:
        return self.error is None


def _change_type(change: Any) -> str:
    value = getattr(change, "change_type", "")
    return getattr(value, "value", value)


def _is_retryable(error: HttpResponseError) -> bool:
    # No status code means the request never got a response
    return error.status_code is None or error.status_code in RETRYABLE_STATUS_CODES


def _resource_body(resource: Any) -> dict[str, Any]:
    return {
        "id": resource.id,
        "name": resource.name,
        "properties": resource.properties or {},
    }


class Deployer:
    """Drives plan, apply and destroy for one subscription.

    The deployer holds no per-gateway state; each call takes the validated
    configuration it operates on.
    """

    def __init__(
        self,
        config: Config,
        ignore_rules: IgnoreRulesConfig | None = None,
        credential: TokenCredential | None = None,
    ) -> None:
        """Initialize the deployer.

        Args:
            config: Validated driver configuration.
            ignore_rules: WhatIf ignore rules; loaded from config.ignore_rules_file
                (or the defaults) when omitted.
            credential: Azure credential; obtained via get_credential() when omitted.

        Raises:
            SecretlessViolationError: If credential secrets are in the environment.
            IgnoreRulesError: If the ignore rules file is invalid.
        """
        self._config = config

        if ignore_rules is None:
            if config.ignore_rules_file is not None:
                ignore_rules = IgnoreRulesConfig.from_file(str(config.ignore_rules_file))
            else:
                ignore_rules = IgnoreRulesConfig()
        self._ignore_rules = IgnoreRulesEvaluator(ignore_rules)

        self._credential = credential or get_credential(
            client_id=config.managed_identity_client_id,
            use_cli_credential=config.use_cli_credential,
        )
        self._client = ResourceManagementClient(
            credential=self._credential,
            subscription_id=config.subscription_id,
        )

    @property
    def config(self) -> Config:
        return self._config

    def render(self, spec: AppGatewaySpec) -> dict[str, Any]:
        return render_template(spec, self._config.subscription_id)

    async def plan(self, spec: AppGatewaySpec) -> PlanResult:
        """Preview the changes a deployment of spec would make.

        Raises:
            DependencyLookupError: If the target subnet does not exist.
            DeploymentError: If WhatIf returns an unreasonable number of changes.
            HttpResponseError: If the WhatIf call fails.
            TimeoutError: If WhatIf exceeds the configured timeout.
        """
        await self._lookup_subnet(spec)

        template = self.render(spec)
        whatif = DeploymentWhatIf(
            properties=DeploymentWhatIfProperties(
                template=template,
                parameters=template_parameters(spec),
                mode=DeploymentMode.INCREMENTAL,
            ),
        )

        whatif_result = await self._execute_with_timeout(
            lambda: self._client.deployments.begin_what_if(
                spec.resource_group_name,
                self._whatif_deployment_name(spec),
                whatif,
            ),
            timeout_seconds=self._config.whatif_timeout_seconds,
            operation_name="WhatIf",
        )

        raw_changes: list[WhatIfChange] = []
        if whatif_result.properties is not None and whatif_result.properties.changes:
            raw_changes = whatif_result.properties.changes

        # Bound the response before walking it
        if len(raw_changes) > MAX_WHATIF_CHANGES:
            raise DeploymentError(
                f"WhatIf returned {len(raw_changes)} changes, exceeding limit of "
                f"{MAX_WHATIF_CHANGES}"
            )

        result = PlanResult(app_gateway_name=spec.app_gateway_name, template=template)
        result.changes = self._filter_significant_changes(raw_changes, result)

        logger.info(
            "Plan complete",
            extra={
                "app_gateway_name": spec.app_gateway_name,
                "create": result.create_count,
                "modify": result.modify_count,
                "delete": result.delete_count,
                "significant": len(result.changes),
                "ignored_properties": result.ignored_count,
            },
        )
        return result

    async def apply(self, spec: AppGatewaySpec, force: bool = False) -> ApplyResult:
        """Plan, then deploy when there is something to change.

        Failures are recorded on the result rather than raised.

        Args:
            spec: Validated gateway configuration.
            force: Deploy even when the plan reports no changes.
        """
        result = ApplyResult(app_gateway_name=spec.app_gateway_name)

        try:
            plan = await self.plan(spec)
            result.plan = plan

            if not plan.has_changes and not force:
                result.skipped_reason = "no changes"
                result.outputs = await self.outputs(spec)
                return result

            if len(plan.changes) > self._config.max_changes:
                raise DeploymentError(
                    f"Plan has {len(plan.changes)} significant changes, "
                    f"exceeding MAX_CHANGES={self._config.max_changes}"
                )

            if self._config.dry_run:
                result.skipped_reason = "dry run"
                logger.info(
                    "DRY RUN: would apply changes",
                    extra={
                        "app_gateway_name": spec.app_gateway_name,
                        "change_count": len(plan.changes),
                    },
                )
                return result

            result.deployment_name = await self._apply_with_retry(spec, plan.template)
            result.deployed = True
            result.outputs = await self.outputs(spec)

        except (AzureError, TimeoutError, DependencyLookupError, DeploymentError) as e:
            result.error = e

        finally:
            result.end_time = datetime.now(UTC)
            self._log_result(result)

        return result

    async def destroy(self, spec: AppGatewaySpec) -> DestroyResult:
        """Delete the gateway, then its public IP. Absent resources are skipped.

        Diagnostic settings are an extension of the gateway and go with it.
        """
        result = DestroyResult(app_gateway_name=spec.app_gateway_name)
        subscription_id = self._config.subscription_id

        targets = [
            ids.gateway_id(subscription_id, spec.resource_group_name, spec.app_gateway_name),
            ids.public_ip_id(subscription_id, spec.resource_group_name, public_ip_name(spec)),
        ]

        try:
            for target in targets:
                exists = await self._run_with_timeout(
                    lambda target=target: self._client.resources.check_existence_by_id(
                        target, NETWORK_API_VERSION
                    ),
                    timeout_seconds=self._config.whatif_timeout_seconds,
                    operation_name="Existence check",
                )
                if not exists:
                    result.skipped.append(target)
                    continue

                await self._execute_with_timeout(
                    lambda target=target: self._client.resources.begin_delete_by_id(
                        target, NETWORK_API_VERSION
                    ),
                    timeout_seconds=self._config.deployment_timeout_seconds,
                    operation_name="Delete",
                )
                result.deleted.append(target)
                logger.info("Deleted resource", extra={"resource_id": target})

        except (AzureError, TimeoutError) as e:
            result.error = e
            logger.error(
                "Destroy failed",
                extra={"app_gateway_name": spec.app_gateway_name, "error": str(e)},
            )

        return result

    async def outputs(self, spec: AppGatewaySpec) -> GatewayOutputs:
        """Read identifiers from the deployed gateway and public IP.

        Raises:
            DeploymentError: If the gateway has not been deployed.
            HttpResponseError: If reading either resource fails otherwise.
            TimeoutError: If a read exceeds the configured timeout.
        """
        subscription_id = self._config.subscription_id
        gw_id = ids.gateway_id(subscription_id, spec.resource_group_name, spec.app_gateway_name)
        pip_id = ids.public_ip_id(subscription_id, spec.resource_group_name, public_ip_name(spec))

        try:
            gateway = await self._get_resource(gw_id)
        except ResourceNotFoundError as e:
            raise DeploymentError(f"Application gateway not found: {gw_id}") from e

        try:
            public_ip: dict[str, Any] | None = await self._get_resource(pip_id)
        except ResourceNotFoundError:
            public_ip = None

        return collect_outputs(gateway, public_ip)

    async def _lookup_subnet(self, spec: AppGatewaySpec) -> str:
        subnet = ids.subnet_id(
            self._config.subscription_id,
            spec.network_resource_group,
            spec.virtual_network_name,
            spec.subnet_name,
        )
        try:
            await self._get_resource(subnet)
        except ResourceNotFoundError as e:
            raise DependencyLookupError(
                f"Subnet '{spec.subnet_name}' not found in virtual network "
                f"'{spec.virtual_network_name}' (resource group '{spec.network_resource_group}')"
            ) from e
        return subnet

    async def _get_resource(self, resource_id: str) -> dict[str, Any]:
        resource = await self._run_with_timeout(
            lambda: self._client.resources.get_by_id(resource_id, NETWORK_API_VERSION),
            timeout_seconds=self._config.whatif_timeout_seconds,
            operation_name="Resource lookup",
        )
        return _resource_body(resource)

    def _whatif_deployment_name(self, spec: AppGatewaySpec) -> str:
        name = f"{self._config.deployment_prefix}-{spec.app_gateway_name}"
        return name[:MAX_DEPLOYMENT_NAME_LENGTH]

    def _deployment_name(self, spec: AppGatewaySpec) -> str:
        # Format: {prefix}-{gateway}-{timestamp}-{suffix}
        # Lengths: prefix + 1 + gateway + 1 + 10 + 1 + 4 = prefix + gateway + 17
        prefix = self._config.deployment_prefix
        max_gateway_len = MAX_DEPLOYMENT_NAME_LENGTH - (len(prefix) + 17)
        gateway = spec.app_gateway_name[:max_gateway_len]
        return f"{prefix}-{gateway}-{int(time.time())}-{random.randint(1000, 9999)}"

    async def _run_with_timeout(
        self,
        operation: Callable[[], Any],
        timeout_seconds: int,
        operation_name: str,
    ) -> Any:
        """Run a blocking SDK call in the executor with a timeout."""
        loop = asyncio.get_event_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, operation),
                timeout=timeout_seconds,
            )
        except TimeoutError:
            logger.error(
                f"{operation_name} timed out",
                extra={"timeout_seconds": timeout_seconds},
            )
            raise

    async def _execute_with_timeout(
        self,
        begin_operation: Callable[[], Any],
        timeout_seconds: int,
        operation_name: str,
    ) -> Any:
        """Start a long-running operation and wait for its result with a timeout.

        Args:
            begin_operation: Callable that returns an LROPoller.
            timeout_seconds: Maximum time to wait for completion.
            operation_name: Human-readable name for logging.

        Raises:
            TimeoutError: If the operation exceeds the timeout.
            HttpResponseError: If Azure returns an error.
        """
        loop = asyncio.get_event_loop()
        poller = await loop.run_in_executor(None, begin_operation)

        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, poller.result),
                timeout=timeout_seconds,
            )
        except TimeoutError:
            logger.error(
                f"{operation_name} timed out",
                extra={"timeout_seconds": timeout_seconds},
            )
            raise

    async def _apply_with_retry(self, spec: AppGatewaySpec, template: dict[str, Any]) -> str:
        """Deploy with exponential backoff on transient failures.

        Returns:
            Name of the successful deployment.

        Raises:
            HttpResponseError: If the error is not transient or all retries fail.
        """
        last_error: HttpResponseError | None = None

        for attempt in range(1, MAX_DEPLOYMENT_RETRIES + 1):
            try:
                return await self._deploy(spec, template)
            except HttpResponseError as e:
                last_error = e
                if not _is_retryable(e):
                    raise

                if attempt < MAX_DEPLOYMENT_RETRIES:
                    # Exponential backoff with jitter
                    backoff = RETRY_BACKOFF_BASE_SECONDS * (2 ** (attempt - 1))
                    wait_time = backoff + random.uniform(0, backoff * 0.2)

                    logger.warning(
                        "Deployment failed, retrying",
                        extra={
                            "attempt": attempt,
                            "max_attempts": MAX_DEPLOYMENT_RETRIES,
                            "wait_seconds": wait_time,
                            "error": str(e),
                        },
                    )
                    await asyncio.sleep(wait_time)

        assert last_error is not None, "Retry loop completed without setting last_error"
        raise last_error

    async def _deploy(self, spec: AppGatewaySpec, template: dict[str, Any]) -> str:
        deployment_name = self._deployment_name(spec)
        deployment = Deployment(
            properties=DeploymentProperties(
                template=template,
                parameters=template_parameters(spec),
                mode=DeploymentMode.INCREMENTAL,
            ),
        )

        logger.info(
            "Starting deployment",
            extra={
                "app_gateway_name": spec.app_gateway_name,
                "resource_group": spec.resource_group_name,
                "deployment_name": deployment_name,
            },
        )

        await self._execute_with_timeout(
            lambda: self._client.deployments.begin_create_or_update(
                spec.resource_group_name,
                deployment_name,
                deployment,
            ),
            timeout_seconds=self._config.deployment_timeout_seconds,
            operation_name="Deployment",
        )
        return deployment_name

    def _filter_significant_changes(
        self, changes: list[WhatIfChange], result: PlanResult
    ) -> list[WhatIfChange]:
        """Drop NoChange/Ignore results, then apply ignore rules."""
        preliminary = []
        for change in changes:
            change_type = _change_type(change)

            if change_type == ChangeType.CREATE.value:
                result.create_count += 1
            elif change_type == ChangeType.MODIFY.value:
                result.modify_count += 1
            elif change_type == ChangeType.DELETE.value:
                result.delete_count += 1
            elif change_type == ChangeType.NO_CHANGE.value:
                result.no_change_count += 1

            if change_type not in (ChangeType.NO_CHANGE.value, ChangeType.IGNORE.value):
                preliminary.append(change)

        filtered, ignored_count = self._ignore_rules.filter_whatif_changes(preliminary)
        result.ignored_count = ignored_count
        # Modify changes made entirely of ignored paths are not modifications
        result.modify_count -= len(preliminary) - len(filtered)
        return filtered

    def _log_result(self, result: ApplyResult) -> None:
        extra: dict[str, Any] = {
            "app_gateway_name": result.app_gateway_name,
            "duration_seconds": result.duration_seconds,
            "deployed": result.deployed,
            "deployment_name": result.deployment_name,
            "skipped_reason": result.skipped_reason,
        }
        if result.plan is not None:
            extra["change_count"] = len(result.plan.changes)

        if result.error is not None:
            extra["error"] = str(result.error)
            logger.error("Apply failed", extra=extra)
        else:
            logger.info("Apply result", extra=extra)
