"""clusterdeck command line entry point."""

from __future__ import annotations

from pathlib import Path

import click

from clusterdeck import __version__
from clusterdeck.cli.commands.deploy import deploy
from clusterdeck.cli.commands.user import user
from clusterdeck.config.env_loader import load_env_file


@click.group()
@click.version_option(__version__, prog_name="clusterdeck")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Settings file (defaults to ./clusterdeck.yaml when present)",
)
@click.option(
    "--env-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Load environment variables from this file instead of ./.env",
)
@click.pass_context
def main(ctx: click.Context, config_path: str | None, env_file: str | None) -> None:
    """Provision and tear down ECS clusters on AWS."""
    load_env_file(Path(env_file) if env_file else None)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


main.add_command(deploy)
main.add_command(user)


if __name__ == "__main__":  # pragma: no cover
    main()
