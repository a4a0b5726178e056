"""CLI commands for image builds.

Implements the 'holdfast build' command group. ``buildctl`` runs BuildKit's
client against a temporary daemon started just for the one command.
"""

from __future__ import annotations

import os
import sys

import click
from pydantic import ValidationError as PydanticValidationError

from holdfast.build.buildkit import run_buildctl
from holdfast.build.supervisor import exit_on_sigterm
from holdfast.config.validator import to_holdfast_error
from holdfast.lib.errors import ConfigError, SupervisorError, ValidationError
from holdfast.lib.logging_config import get_logger, setup_logging
from holdfast.models.build import ENV_VAR_MAP, BuildkitConfig
from holdfast.lib.flags import is_truthy

logger = get_logger(__name__)


@click.group(name="build")
def build() -> None:
    """Build container images."""


@build.command(
    name="buildctl",
    context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def buildctl(args: tuple[str, ...]) -> None:
    """Run buildctl against an ephemeral buildkitd.

    All arguments are passed to buildctl unchanged. The daemon is configured
    from BUILDCTL, BUILDKITD, ROOTLESSKIT, XDG_RUNTIME_DIR, BUILDKITD_FLAGS
    and BUILDCTL_CONNECT_RETRIES_MAX; DEBUG_BUILD enables debug output.

    Example:

        holdfast build buildctl build --frontend dockerfile.v0 --local context=.
    """
    setup_logging(verbose=is_truthy(os.environ.get("DEBUG_BUILD")))

    try:
        config = BuildkitConfig.from_env(os.environ)
    except PydanticValidationError as exc:
        error = to_holdfast_error(exc)
        _report_config_error(error)
        sys.exit(2)

    try:
        with exit_on_sigterm():
            returncode = run_buildctl(config, args)
    except SupervisorError as e:
        logger.error(f"BuildKit daemon failed: {e}")
        click.secho("Error: buildkitd did not become ready", fg="red", err=True)
        click.echo(f"  {e}", err=True)
        sys.exit(1)

    sys.exit(returncode)


def _report_config_error(error: ConfigError | ValidationError) -> None:
    env_name = ENV_VAR_MAP.get(error.field, error.field)
    logger.error(f"Configuration error: {error}")
    click.secho("Error: Configuration error", fg="red", err=True)
    click.echo(f"  {env_name}: {error.message}", err=True)
