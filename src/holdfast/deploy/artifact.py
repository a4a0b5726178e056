"""Deploy artifact rendering.

An artifact is a Python zip application: the standard-library runtime
package plus a generated ``__main__.py`` with the deployment plan embedded
as a string literal. It needs nothing at execution time beyond a Python 3
interpreter, the Docker CLI and the working directory.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import zipapp
from dataclasses import dataclass
from pathlib import Path

from jinja2 import Environment, StrictUndefined

import holdfast
from holdfast.config.defaults import (
    ARTIFACT_INTERPRETER,
    ARTIFACT_PREFIX,
    ARTIFACT_SUFFIX,
)
from holdfast.lib.errors import DeploymentError
from holdfast.models.plan import DeploymentPlan

# Jinja2 template for the artifact entry point
ARTIFACT_MAIN_TEMPLATE = """\
# holdfast deploy artifact
# Release:   {{ version_comment }}
# Generated: {{ generated_at_comment }}
# holdfast:  {{ holdfast_version }}
#
# Runs a health-gated rollout of the embedded plan. Takes no arguments.
# Set DEBUG_DEPLOY=1 for verbose output.
# Exit codes: 0 success, 1 rolled back, 2 failed without rollback,
# 3 another deployment in progress, 4 rollback failed, 5 rejected,
# 6 unexpected error.

import sys

from holdfast.runtime.entrypoint import main

PLAN = {{ plan_literal }}

if __name__ == "__main__":
    sys.exit(main(PLAN))
"""

# Files copied into every artifact, relative to the holdfast package
RUNTIME_MODULES = (
    "__init__.py",
    "lib/__init__.py",
    "lib/errors.py",
    "lib/flags.py",
    "lib/logging_config.py",
    "runtime/__init__.py",
    "runtime/engine.py",
    "runtime/entrypoint.py",
    "runtime/guard.py",
    "runtime/layout.py",
    "runtime/orchestrator.py",
    "runtime/plan.py",
    "runtime/probe.py",
    "runtime/releases.py",
)

_environment = Environment(
    autoescape=False,  # noqa: S701  # nosec B701 - renders Python, not HTML
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


@dataclass
class ArtifactResult:
    """Location and metadata of a written artifact."""

    path: Path
    version: str
    size: int


def _comment_safe(value: str) -> str:
    return " ".join(value.splitlines()) or "-"


def render_main(plan: DeploymentPlan) -> str:
    """Render the artifact ``__main__.py`` for ``plan``.

    Caller-controlled values only reach the output through ``repr()`` of the
    JSON plan (a Python string literal) or as single-line comments.
    """
    template = _environment.from_string(ARTIFACT_MAIN_TEMPLATE)
    return template.render(
        version_comment=_comment_safe(plan.version),
        generated_at_comment=_comment_safe(plan.generated_at),
        holdfast_version=holdfast.__version__,
        plan_literal=repr(plan.to_json()),
    )


def _package_root() -> Path:
    return Path(holdfast.__file__).resolve().parent


def _stage(plan: DeploymentPlan, staging: Path) -> None:
    package_root = _package_root()
    for relative in RUNTIME_MODULES:
        source = package_root / relative
        if not source.is_file():
            raise DeploymentError(
                operation="artifact",
                message=f"Runtime module missing from installation: {source}",
            )
        destination = staging / "holdfast" / relative
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, destination)

    (staging / "__main__.py").write_text(render_main(plan), encoding="utf-8")


def write_artifact(plan: DeploymentPlan, output: Path | None = None) -> ArtifactResult:
    """Write an executable artifact for ``plan``.

    Args:
        plan: Resolved deployment plan
        output: Destination path; a fresh temporary file when omitted

    Returns:
        ArtifactResult describing the written file
    """
    if output is None:
        fd, name = tempfile.mkstemp(prefix=ARTIFACT_PREFIX, suffix=ARTIFACT_SUFFIX)
        os.close(fd)
        target = Path(name)
    else:
        target = Path(output)
        target.parent.mkdir(parents=True, exist_ok=True)

    staging = Path(tempfile.mkdtemp(prefix="holdfast-artifact-"))
    try:
        _stage(plan, staging)
        zipapp.create_archive(
            staging,
            target=target,
            interpreter=ARTIFACT_INTERPRETER,
            compressed=True,
        )
    except OSError as exc:
        raise DeploymentError(
            operation="artifact",
            message=f"Failed to write artifact {target}: {exc}",
        ) from exc
    finally:
        shutil.rmtree(staging, ignore_errors=True)

    target.chmod(0o755)
    return ArtifactResult(path=target, version=plan.version, size=target.stat().st_size)
