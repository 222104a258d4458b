"""Application Gateway CLI (appgw).

Usage:
    appgw render gateway.yaml      # Print the ARM template
    appgw lint gateway.yaml        # Check names and references
    appgw plan gateway.yaml        # WhatIf against the live resource group
    appgw apply gateway.yaml       # Deploy and print outputs
    appgw outputs gateway.yaml     # Print outputs of a deployed gateway
    appgw destroy gateway.yaml     # Delete the gateway and its public IP
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click
from azure.core.exceptions import AzureError

from .config import DEFAULT_DEPLOYMENT_PREFIX, Config, ConfigurationError
from .deployer import DependencyLookupError, Deployer, DeploymentError
from .ignore_rules import IgnoreRulesError
from .main import setup_logging
from .models import AppGatewaySpec
from .references import Severity, lint_spec
from .security import SecretlessViolationError
from .spec_loader import SpecLoadError, load_spec
from .template import render_template

# Exit code for `plan --detailed-exitcode` when changes are pending
PLAN_CHANGES_EXIT_CODE = 2

SPEC_FILE = click.Path(exists=True, dir_okay=False, path_type=Path)


@dataclass
class CliContext:
    """Options shared by every command."""

    subscription_id: str | None
    deployment_prefix: str
    client_id: str | None
    use_cli_credential: bool
    ignore_rules_file: Path | None

    def config(self, spec_file: Path, dry_run: bool = False) -> Config:
        if not self.subscription_id:
            raise click.ClickException(
                "Azure subscription ID required. Set AZURE_SUBSCRIPTION_ID or use --subscription."
            )
        try:
            return Config(
                subscription_id=self.subscription_id,
                spec_file=spec_file,
                deployment_prefix=self.deployment_prefix,
                dry_run=dry_run,
                managed_identity_client_id=self.client_id,
                use_cli_credential=self.use_cli_credential,
                ignore_rules_file=self.ignore_rules_file,
            )
        except ConfigurationError as e:
            raise click.ClickException(str(e)) from e

    def deployer(self, spec_file: Path, dry_run: bool = False) -> Deployer:
        config = self.config(spec_file, dry_run=dry_run)
        try:
            return Deployer(config)
        except SecretlessViolationError as e:
            raise click.ClickException(str(e)) from e
        except IgnoreRulesError as e:
            raise click.ClickException(f"Invalid ignore rules: {e}") from e


def _load(spec_file: Path) -> AppGatewaySpec:
    try:
        return load_spec(spec_file)
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=False))


@click.group()
@click.version_option(version="0.1.0", prog_name="appgw")
@click.option(
    "--subscription", "-s", envvar="AZURE_SUBSCRIPTION_ID", help="Azure subscription ID"
)
@click.option(
    "--prefix",
    "deployment_prefix",
    envvar="APPGW_DEPLOYMENT_PREFIX",
    default=DEFAULT_DEPLOYMENT_PREFIX,
    show_default=True,
    help="ARM deployment name prefix",
)
@click.option("--client-id", envvar="AZURE_CLIENT_ID", help="User-assigned managed identity")
@click.option(
    "--az-login",
    "use_cli_credential",
    envvar="USE_AZURE_CLI_CREDENTIAL",
    is_flag=True,
    help="Authenticate with the Azure CLI login instead of a managed identity",
)
@click.option(
    "--ignore-rules",
    envvar="IGNORE_RULES_FILE",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML file with extra WhatIf ignore rules",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
@click.option("--json-logs", is_flag=True, help="Emit JSON log lines on stdout")
@click.pass_context
def cli(
    ctx: click.Context,
    subscription: str | None,
    deployment_prefix: str,
    client_id: str | None,
    use_cli_credential: bool,
    ignore_rules: Path | None,
    log_level: str,
    json_logs: bool,
) -> None:
    """Application Gateway CLI (appgw).

    Renders, checks and deploys an Azure Application Gateway from a YAML
    definition.

    \b
    Quick Start:
        appgw lint gateway.yaml
        appgw plan gateway.yaml --az-login
        appgw apply gateway.yaml --az-login
    """
    setup_logging(log_level, json_format=json_logs)
    ctx.obj = CliContext(
        subscription_id=subscription,
        deployment_prefix=deployment_prefix,
        client_id=client_id,
        use_cli_credential=use_cli_credential,
        ignore_rules_file=ignore_rules,
    )


@cli.command()
@click.argument("spec_file", type=SPEC_FILE)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    help="Write the template to a file instead of stdout",
)
@click.pass_obj
def render(obj: CliContext, spec_file: Path, output: Path | None) -> None:
    """Render the ARM template for a gateway definition."""
    if not obj.subscription_id:
        raise click.ClickException(
            "Azure subscription ID required. Set AZURE_SUBSCRIPTION_ID or use --subscription."
        )
    spec = _load(spec_file)
    template = render_template(spec, obj.subscription_id)

    if output is None:
        _echo_json(template)
        return

    output.write_text(json.dumps(template, indent=2) + "\n", encoding="utf-8")
    click.secho(f"✓ Wrote {output}", fg="green", err=True)


@cli.command()
@click.argument("spec_file", type=SPEC_FILE)
@click.option("--strict", is_flag=True, help="Treat warnings as errors")
def lint(spec_file: Path, strict: bool) -> None:
    """Check names and cross-references without calling Azure."""
    spec = _load(spec_file)
    findings = lint_spec(spec)

    for finding in findings:
        color = "red" if finding.severity == Severity.ERROR else "yellow"
        click.secho(str(finding), fg=color)

    errors = sum(1 for f in findings if f.severity == Severity.ERROR)
    warnings = len(findings) - errors

    if errors or (strict and warnings):
        raise click.ClickException(f"{errors} error(s), {warnings} warning(s)")

    click.secho(f"✓ {spec_file}: {warnings} warning(s)", fg="green")


@cli.command()
@click.argument("spec_file", type=SPEC_FILE)
@click.option(
    "--detailed-exitcode",
    is_flag=True,
    help=f"Exit with {PLAN_CHANGES_EXIT_CODE} when changes are pending",
)
@click.pass_obj
def plan(obj: CliContext, spec_file: Path, detailed_exitcode: bool) -> None:
    """Preview changes with ARM WhatIf."""
    spec = _load(spec_file)
    deployer = obj.deployer(spec_file)

    try:
        result = asyncio.run(deployer.plan(spec))
    except (AzureError, TimeoutError, DependencyLookupError, DeploymentError) as e:
        raise click.ClickException(f"Plan failed: {e}") from e

    for change_type, resource_id in result.summary():
        click.echo(f"  {change_type:<8} {resource_id}")

    click.echo(
        f"Plan: {result.create_count} to create, {result.modify_count} to modify, "
        f"{result.delete_count} to delete."
    )

    if detailed_exitcode and result.has_changes:
        raise SystemExit(PLAN_CHANGES_EXIT_CODE)


@cli.command()
@click.argument("spec_file", type=SPEC_FILE)
@click.option("--force", is_flag=True, help="Deploy even when the plan is empty")
@click.option("--dry-run", is_flag=True, envvar="DRY_RUN", help="Plan only, never deploy")
@click.pass_obj
def apply(obj: CliContext, spec_file: Path, force: bool, dry_run: bool) -> None:
    """Deploy the gateway and print its outputs."""
    spec = _load(spec_file)
    deployer = obj.deployer(spec_file, dry_run=dry_run)

    result = asyncio.run(deployer.apply(spec, force=force))
    if result.error is not None:
        raise click.ClickException(f"Apply failed: {result.error}")

    if result.skipped_reason:
        click.secho(f"Skipped deployment: {result.skipped_reason}", fg="yellow", err=True)
    else:
        click.secho(f"✓ Deployed {result.deployment_name}", fg="green", err=True)

    if result.outputs is not None:
        _echo_json(result.outputs.to_dict())


@cli.command()
@click.argument("spec_file", type=SPEC_FILE)
@click.pass_obj
def outputs(obj: CliContext, spec_file: Path) -> None:
    """Print identifiers of a deployed gateway as JSON."""
    spec = _load(spec_file)
    deployer = obj.deployer(spec_file)

    try:
        result = asyncio.run(deployer.outputs(spec))
    except (AzureError, TimeoutError, DeploymentError) as e:
        raise click.ClickException(f"Outputs failed: {e}") from e

    _echo_json(result.to_dict())


@cli.command()
@click.argument("spec_file", type=SPEC_FILE)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
def destroy(obj: CliContext, spec_file: Path, yes: bool) -> None:
    """Delete the gateway and its public IP."""
    spec = _load(spec_file)
    if not yes:
        click.confirm(
            f"Delete application gateway '{spec.app_gateway_name}' "
            f"in resource group '{spec.resource_group_name}'?",
            abort=True,
        )

    deployer = obj.deployer(spec_file)
    result = asyncio.run(deployer.destroy(spec))

    for resource_id in result.deleted:
        click.secho(f"✓ Deleted {resource_id}", fg="green")
    for resource_id in result.skipped:
        click.echo(f"  Not found {resource_id}")

    if result.error is not None:
        raise click.ClickException(f"Destroy failed: {result.error}")


if __name__ == "__main__":
    cli()
