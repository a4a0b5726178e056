"""Main CLI entry point for holdfast.

Registers the command groups and exposes ``main`` for the console script.
"""

import click

from holdfast import __version__
from holdfast.cli.commands.build import build
from holdfast.cli.commands.deploy import deploy


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="holdfast")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """holdfast - health-gated releases for compose applications.

    Generate deploy artifacts that roll out a new release, wait for it to
    report healthy and fall back to the previous release when it does not.
    """
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(deploy)
cli.add_command(build)


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
