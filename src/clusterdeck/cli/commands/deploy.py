"""CLI commands for cluster deployments.

Implements the 'clusterdeck deploy' command group for creating, deleting and
inspecting ECS cluster deployments.
"""

from __future__ import annotations

import sys
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

import click

from clusterdeck.config.loader import load_descriptor, load_settings
from clusterdeck.deploy.deployers import SUPPORTED_DEPLOY_TYPES
from clusterdeck.deploy.manager import DeploymentManager
from clusterdeck.deploy.registry import DeploymentRegistry
from clusterdeck.deploy.store import FileStore
from clusterdeck.lib.errors import (
    ConfigError,
    DeploymentError,
    FileNotFoundError,
    ValidationError,
)
from clusterdeck.lib.logging_config import (
    get_deployment_log_path,
    get_logger,
    setup_logging,
)
from clusterdeck.models.config import DeployerSettings
from clusterdeck.models.registry import DeploymentStatus

logger = get_logger(__name__)


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in CLI commands.

    Catches and handles configuration, validation and deployment errors with
    appropriate logging, user feedback, and exit codes.

    Exit codes:
        2: Configuration or validation error
        3: Deployment/execution error
    """
    try:
        yield
    except (ConfigError, FileNotFoundError) as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(2)
    except ValidationError as e:
        logger.error(f"Validation error: {e}")
        click.secho(f"Error: Invalid value for '{e.field}'", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(2)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(3)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(3)


def get_settings(ctx: click.Context) -> DeployerSettings:
    """Load settings once per invocation from the root command's options."""
    obj = ctx.ensure_object(dict)
    if "settings" not in obj:
        config_path = obj.get("config_path")
        obj["settings"] = load_settings(Path(config_path) if config_path else None)
    settings: DeployerSettings = obj["settings"]
    return settings


def build_manager(settings: DeployerSettings) -> DeploymentManager:
    """Wire a deployment manager over the settings' file store."""
    store = FileStore(settings.files_path)
    registry = DeploymentRegistry(store)
    registry.load()
    return DeploymentManager(settings, registry, store)


@click.group(name="deploy", invoke_without_command=True)
@click.pass_context
def deploy(ctx: click.Context) -> None:
    """Create and tear down ECS cluster deployments.

    Subcommands:

        create       Provision a cluster from a descriptor
        delete       Tear down a deployment
        list         List deployments
        service-url  Print where a container can be reached
        logs         Print a deployment's log

    Example:

        clusterdeck deploy create deployment.yaml

        clusterdeck deploy delete my-cluster-1A2B3C4D
    """
    ctx.ensure_object(dict)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@deploy.command()
@click.argument("descriptor_path", type=click.Path(exists=True))
@click.option(
    "--deploy-type",
    type=str,
    default=None,
    help=(
        f"Backend to deploy with, one of {', '.join(SUPPORTED_DEPLOY_TYPES)} "
        "(defaults to the configured backend)"
    ),
)
@click.option(
    "--unique-name",
    is_flag=True,
    help="Append a unique suffix to the deployment name",
)
@click.option(
    "--file",
    "files",
    multiple=True,
    type=(str, click.Path(exists=True, dir_okay=False)),
    help="Uploaded file as FILE_ID LOCAL_PATH; may be repeated",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose debug logging",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress progress output",
)
@click.pass_context
def create(
    ctx: click.Context,
    descriptor_path: str,
    deploy_type: str | None,
    unique_name: bool,
    files: tuple[tuple[str, str], ...],
    verbose: bool,
    quiet: bool,
) -> None:
    """Provision a cluster described by DESCRIPTOR_PATH."""
    if not quiet:
        setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        settings = get_settings(ctx)
        descriptor = load_descriptor(Path(descriptor_path))
        uploaded_files = {
            f"{descriptor.user_id}_{file_id}": local_path
            for file_id, local_path in files
        }

        if not quiet:
            click.echo()
            click.secho("Deployment:", bold=True)
            click.echo(f"  Name:      {descriptor.name}")
            click.echo(f"  Region:    {descriptor.region}")
            click.echo(f"  User:      {descriptor.user_id}")
            click.echo(f"  Nodes:     {len(descriptor.nodes)}")
            click.echo(f"  Services:  {len(descriptor.node_mapping)}")
            click.echo()

        manager = build_manager(settings)
        result = manager.create(
            descriptor,
            deploy_type=deploy_type,
            uploaded_files=uploaded_files,
            create_name=unique_name,
        )
        name = result.name if result else descriptor.name

        if quiet:
            click.echo(name)
            sys.exit(0)

        click.echo()
        click.secho("Deployment Ready!", fg="green", bold=True)
        click.echo(f"  Name:      {name}")
        if result:
            for service_name, mapping in sorted(result.service_mappings.items()):
                click.echo(
                    f"  {service_name}: node {mapping.node_id} "
                    f"{mapping.public_url or '(no public address)'}"
                )
        click.echo()


@deploy.command()
@click.argument("name")
@click.option(
    "--force",
    is_flag=True,
    help="Skip confirmation prompt",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose debug logging",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress progress output",
)
@click.pass_context
def delete(ctx: click.Context, name: str, force: bool, verbose: bool, quiet: bool) -> None:
    """Tear down the deployment NAME."""
    if not quiet:
        setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        settings = get_settings(ctx)

        if not force:
            confirm = click.confirm(f"Delete deployment '{name}'?", default=False)
            if not confirm:
                click.secho("Delete aborted.", fg="yellow")
                sys.exit(0)

        manager = build_manager(settings)
        manager.restore(names=[name])
        manager.delete(name)

        if quiet:
            click.echo("deleted")
            sys.exit(0)

        click.echo()
        click.secho("Deployment Deleted", fg="green", bold=True)
        click.echo(f"  Name:      {name}")
        click.echo()


@deploy.command(name="list")
@click.option("--user", "user_id", type=str, default=None, help="Only this user")
@click.option(
    "--status",
    type=click.Choice([status.value for status in DeploymentStatus]),
    default=None,
    help="Only deployments in this status",
)
@click.pass_context
def list_deployments(ctx: click.Context, user_id: str | None, status: str | None) -> None:
    """List persisted deployments, oldest first."""
    with handle_deployment_errors():
        settings = get_settings(ctx)
        records = FileStore(settings.files_path).load_deployments()
        if user_id is not None:
            records = [r for r in records if r.user_id == user_id]
        if status is not None:
            records = [r for r in records if r.status.value == status]

        if not records:
            click.echo("No deployments found.")
            return

        for record in sorted(records, key=lambda r: r.created):
            click.echo(
                f"{record.name}\t{record.deploy_type}\t{record.user_id}\t"
                f"{record.status.value}\t{record.created.isoformat()}"
            )


@deploy.command(name="service-url")
@click.argument("name")
@click.argument("service")
@click.pass_context
def service_url(ctx: click.Context, name: str, service: str) -> None:
    """Print host:port where SERVICE of deployment NAME is published."""
    with handle_deployment_errors():
        manager = build_manager(get_settings(ctx))
        manager.restore(names=[name])
        click.echo(manager.service_url(name, service))


@deploy.command()
@click.argument("name")
@click.pass_context
def logs(ctx: click.Context, name: str) -> None:
    """Print the log of deployment NAME."""
    with handle_deployment_errors():
        settings = get_settings(ctx)
        log_path = get_deployment_log_path(settings.files_path, name)
        if not log_path.exists():
            raise FileNotFoundError(
                str(log_path), f"No log recorded for deployment '{name}'"
            )
        click.echo(log_path.read_text(encoding="utf-8"), nl=False)
