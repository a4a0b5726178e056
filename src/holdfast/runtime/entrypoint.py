"""Entry point executed by generated deploy artifacts."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import TextIO

from holdfast.lib.errors import HoldfastError
from holdfast.lib.flags import is_truthy
from holdfast.lib.logging_config import setup_logging
from holdfast.runtime.engine import ContainerEngine, DockerComposeEngine
from holdfast.runtime.orchestrator import (
    DeploymentAttempt,
    DeploymentOrchestrator,
    Disposition,
)
from holdfast.runtime.plan import RuntimePlan
from holdfast.runtime.probe import HealthProbe
from holdfast.runtime.releases import ReleaseManager

logger = logging.getLogger(__name__)

# Reserved for failures before the state machine runs
PLAN_ERROR_EXIT_CODE = 64


def execute_plan(
    plan: RuntimePlan,
    engine: ContainerEngine | None = None,
    probe: HealthProbe | None = None,
) -> DeploymentAttempt:
    """Run the deployment described by ``plan`` and return the attempt."""
    engine = engine or DockerComposeEngine()
    releases = ReleaseManager(Path(plan.workdir), retention=plan.retention)
    probe = probe or HealthProbe(engine, interval=plan.probe_interval)
    orchestrator = DeploymentOrchestrator(releases, engine, probe)
    return orchestrator.run(
        version=plan.version,
        definition=plan.definition,
        probe_target=plan.probe_target,
        max_retries=plan.max_retries,
    )


def main(
    plan_json: str,
    engine: ContainerEngine | None = None,
    stdout: TextIO | None = None,
) -> int:
    """Artifact entry point; returns the process exit code."""
    out = stdout or sys.stdout
    setup_logging(verbose=is_truthy(os.environ.get("DEBUG_DEPLOY")))

    try:
        plan = RuntimePlan.from_json(plan_json)
    except HoldfastError as exc:
        logger.error("Invalid deploy plan: %s", exc)
        return PLAN_ERROR_EXIT_CODE

    try:
        attempt = execute_plan(plan, engine=engine)
    except Exception as exc:
        logger.exception("Unexpected error: %s", exc)
        print(Disposition.ERRORED.title, file=out)
        print(f"  Version:   {plan.version}", file=out)
        print(f"  Reason:    {exc}", file=out)
        return Disposition.ERRORED.exit_code

    print(attempt.summary(), file=out)
    return attempt.exit_code
