"""CLI commands for generating and inspecting deployments.

Implements the 'holdfast deploy' command group: compiling deploy artifacts
and inspecting the release catalog of a working directory.
"""

from __future__ import annotations

import sys
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import click
from pydantic import ValidationError as PydanticValidationError

from holdfast.config.defaults import (
    DEFAULT_MAX_RETRIES,
    ENV_COMPOSE_FILES,
    ENV_DEBUG,
    ENV_DEBUG_DEPRECATED,
    ENV_MAX_RETRY,
    ENV_NO_PIN,
    ENV_PROBE,
    ENV_PROJECT_NAME,
    ENV_VERSION,
    ENV_WORKDIR,
)
from holdfast.config.env_loader import env_flag
from holdfast.config.validator import to_holdfast_error
from holdfast.lib.errors import (
    ConfigError,
    DeploymentError,
    DockerNotAvailableError,
    FileNotFoundError,
    ValidationError,
)
from holdfast.lib.logging_config import get_logger, setup_logging
from holdfast.models.plan import PlanRequest

if TYPE_CHECKING:
    from holdfast.deploy.compiler import CompiledPlan

logger = get_logger(__name__)


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in deploy commands.

    Exit codes:
        2: Configuration or validation error
        3: Deployment/execution error
    """
    try:
        yield
    except (ConfigError, ValidationError, FileNotFoundError) as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e}", err=True)
        sys.exit(2)
    except DockerNotAvailableError as e:
        logger.error(f"Docker not available: {e}")
        click.secho("Error: Docker is not available", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(3)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(3)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(3)


@click.group(name="deploy", invoke_without_command=True)
@click.pass_context
def deploy(ctx: click.Context) -> None:
    """Generate health-gated deploy artifacts for compose applications.

    Subcommands:

        generate  Compile a self-contained deploy artifact
        status    Show the release catalog of a working directory

    Example:

        holdfast deploy generate --version v2 -f compose.yml \\
            --workdir /srv/app --probe web
    """
    ctx.ensure_object(dict)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@deploy.command()
@click.option(
    "--version",
    "version",
    envvar=ENV_VERSION,
    default=None,
    help="Release version to deploy [env: VERSION]",
)
@click.option(
    "--compose-file",
    "-f",
    "compose_files",
    multiple=True,
    envvar=ENV_COMPOSE_FILES,
    help="Compose file to merge; repeatable [env: COMPOSE_FILES]",
)
@click.option(
    "--workdir",
    envvar=ENV_WORKDIR,
    default=None,
    help="Working directory on the target host [env: WORKDIR]",
)
@click.option(
    "--probe",
    envvar=ENV_PROBE,
    default=None,
    help="Service whose health gates the release [env: HEALTHCHECK_PROBE]",
)
@click.option(
    "--max-retry",
    "max_retries",
    envvar=ENV_MAX_RETRY,
    type=int,
    default=DEFAULT_MAX_RETRIES,
    show_default=True,
    help="Health check attempts, 5 seconds apart [env: MAX_RETRY]",
)
@click.option(
    "--no-pin-digests",
    is_flag=True,
    help="Keep image tags instead of pinning digests [env: NOLOCK_IMAGES]",
)
@click.option(
    "--project-name",
    envvar=ENV_PROJECT_NAME,
    default=None,
    help="Compose project name [env: COMPOSE_PROJECT_NAME]",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the artifact here instead of a temporary file",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show the resolved plan without writing an artifact",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose debug logging [env: DEBUG_DEPLOY]",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Only print the artifact path",
)
def generate(
    version: str | None,
    compose_files: tuple[str, ...],
    workdir: str | None,
    probe: str | None,
    max_retries: int,
    no_pin_digests: bool,
    project_name: str | None,
    output: str | None,
    dry_run: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """Compile a self-contained deploy artifact.

    Resolves and validates the compose files once, here, and writes an
    executable that performs the rollout on the target host with no
    further parameters. The artifact path is printed on success.

    Example:

        holdfast deploy generate --version v2 -f compose.yml -f prod.yml \\
            --workdir /srv/app --probe web

        VERSION=v2 COMPOSE_FILES="compose.yml prod.yml" WORKDIR=/srv/app \\
            HEALTHCHECK_PROBE=web holdfast deploy generate
    """
    if env_flag(ENV_DEBUG_DEPRECATED):
        click.secho(
            "WARNING: DEBUG variable is deprecated. Please set DEBUG_DEPLOY instead",
            fg="yellow",
            err=True,
        )
    verbose = verbose or env_flag(ENV_DEBUG)
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        request = _build_request(
            version=version,
            compose_files=compose_files,
            workdir=workdir,
            probe=probe,
            max_retries=max_retries,
            pin_digests=not (no_pin_digests or env_flag(ENV_NO_PIN)),
            project_name=project_name,
        )

        from holdfast.deploy.compiler import PlanCompiler

        compiler = PlanCompiler()

        if not quiet:
            click.echo()
            click.secho("Deploy Configuration:", bold=True)
            click.echo(f"  Version:   {request.version}")
            click.echo(f"  Workdir:   {request.workdir}")
            click.echo(f"  Probe:     {request.probe}")
            click.echo(f"  Retries:   {request.max_retries}")
            click.echo(f"  Pinning:   {'on' if request.pin_digests else 'off'}")
            click.echo(f"  Compose:   {', '.join(request.compose_files)}")
            click.echo()

        if dry_run:
            compiled = compiler.resolve(request)
            _display_plan(compiled)
            click.echo()
            click.secho("[DRY RUN] No artifact was written", fg="yellow")
            sys.exit(0)

        compiled, artifact = compiler.compile(
            request, Path(output) if output else None
        )

        if quiet:
            click.echo(str(artifact.path))
            return

        click.secho("Artifact Generated!", fg="green", bold=True)
        click.echo(f"  Project:   {compiled.plan.project_name}")
        click.echo(f"  Services:  {', '.join(compiled.plan.services)}")
        if compiled.pins.pinned:
            click.echo(f"  Pinned:    {len(compiled.pins.pinned)} image(s)")
        click.echo()
        click.secho("  Next steps:", bold=True)
        click.echo(f"    Copy to the target host and run: {artifact.path.name}")
        click.echo()
        click.echo(str(artifact.path))


@deploy.command()
@click.option(
    "--workdir",
    envvar=ENV_WORKDIR,
    required=True,
    type=click.Path(file_okay=False),
    help="Deployment working directory [env: WORKDIR]",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Only print the current version",
)
def status(workdir: str, quiet: bool) -> None:
    """Show current, previous and retained releases of a working directory."""
    from holdfast.runtime.releases import ReleaseManager

    with handle_deployment_errors():
        manager = ReleaseManager(Path(workdir))
        current = manager.read_current()
        previous = manager.read_previous()

        if quiet:
            click.echo(current or "none")
            return

        click.echo()
        click.secho("Deployment Status", bold=True)
        click.echo(f"  Workdir:   {workdir}")
        click.echo(f"  Current:   {current or 'none'}")
        click.echo(f"  Previous:  {previous or 'none'}")
        click.echo()

        releases = manager.list_releases()
        if not releases:
            click.echo("  No releases found.")
            click.echo()
            return

        click.secho("  Releases:", bold=True)
        for release in releases:
            marker = "*" if release.version == current else " "
            released = release.release_date or "not committed"
            click.echo(f"  {marker} {release.version:<24} {released}")
        click.echo()


def _build_request(
    *,
    version: str | None,
    compose_files: tuple[str, ...],
    workdir: str | None,
    probe: str | None,
    max_retries: int,
    pin_digests: bool,
    project_name: str | None,
) -> PlanRequest:
    """Validate generate inputs, failing fast on missing settings."""
    required = {
        "version": (version, "--version", ENV_VERSION),
        "compose_files": (compose_files, "--compose-file", ENV_COMPOSE_FILES),
        "workdir": (workdir, "--workdir", ENV_WORKDIR),
        "probe": (probe, "--probe", ENV_PROBE),
    }
    for field_name, (value, option, env_name) in required.items():
        if not value or (isinstance(value, str) and not value.strip()):
            raise ConfigError(
                field=field_name,
                message=(
                    f"Required setting is missing or empty. "
                    f"Pass {option} or set {env_name}."
                ),
            )

    try:
        return PlanRequest(
            version=version,
            compose_files=list(compose_files),
            workdir=workdir,
            probe=probe,
            max_retries=max_retries,
            pin_digests=pin_digests,
            project_name=project_name or None,
        )
    except PydanticValidationError as exc:
        raise to_holdfast_error(exc) from exc


def _display_plan(compiled: CompiledPlan) -> None:
    """Display a resolved plan for dry runs."""
    plan = compiled.plan
    click.secho("[DRY RUN] Would generate artifact:", fg="yellow")
    click.echo(f"  Project:   {plan.project_name}")
    click.echo(f"  Services:  {', '.join(plan.services)}")
    click.echo()
    click.secho("Resolved compose definition:", bold=True)
    for line in plan.definition.splitlines():
        click.echo(f"  {line}")
