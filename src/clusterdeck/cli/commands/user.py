"""CLI commands for managing users' AWS profiles."""

from __future__ import annotations

import click

from clusterdeck.cli.commands.deploy import get_settings, handle_deployment_errors
from clusterdeck.deploy.store import FileStore
from clusterdeck.lib.errors import NotFoundError
from clusterdeck.models.registry import AWSProfile


def _mask(secret: str) -> str:
    return "*" * max(len(secret) - 4, 0) + secret[-4:]


@click.group(name="user")
def user() -> None:
    """Manage AWS profiles used to provision deployments."""


@user.command()
@click.argument("user_id")
@click.option("--aws-id", required=True, help="AWS access key id")
@click.option(
    "--aws-secret",
    prompt=True,
    hide_input=True,
    help="AWS secret access key",
)
@click.pass_context
def add(ctx: click.Context, user_id: str, aws_id: str, aws_secret: str) -> None:
    """Store the AWS profile of USER_ID, replacing any existing one."""
    with handle_deployment_errors():
        store = FileStore(get_settings(ctx).files_path)
        store.store_profile(
            AWSProfile(user_id=user_id, aws_id=aws_id, aws_secret=aws_secret)
        )
        click.secho(f"Stored AWS profile for {user_id}", fg="green")


@user.command()
@click.argument("user_id")
@click.pass_context
def get(ctx: click.Context, user_id: str) -> None:
    """Show the AWS profile of USER_ID."""
    with handle_deployment_errors():
        store = FileStore(get_settings(ctx).files_path)
        profile = next(
            (p for p in store.load_profiles() if p.user_id == user_id), None
        )
        if profile is None:
            raise NotFoundError(
                resource="profile", message=f"No AWS profile stored for {user_id}"
            )
        click.echo(f"User:        {profile.user_id}")
        click.echo(f"AWS id:      {profile.aws_id}")
        click.echo(f"AWS secret:  {_mask(profile.aws_secret)}")


@user.command()
@click.argument("user_id")
@click.pass_context
def delete(ctx: click.Context, user_id: str) -> None:
    """Delete the AWS profile of USER_ID."""
    with handle_deployment_errors():
        store = FileStore(get_settings(ctx).files_path)
        if not store.delete_profile(user_id):
            raise NotFoundError(
                resource="profile", message=f"No AWS profile stored for {user_id}"
            )
        click.secho(f"Deleted AWS profile for {user_id}", fg="green")


@user.command(name="list")
@click.pass_context
def list_users(ctx: click.Context) -> None:
    """List users with a stored AWS profile."""
    with handle_deployment_errors():
        store = FileStore(get_settings(ctx).files_path)
        profiles = sorted(store.load_profiles(), key=lambda p: p.user_id)
        if not profiles:
            click.echo("No profiles found.")
            return
        for profile in profiles:
            click.echo(f"{profile.user_id}\t{profile.aws_id}")
