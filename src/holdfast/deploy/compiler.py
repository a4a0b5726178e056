"""Deployment plan compiler.

Turns a :class:`~holdfast.models.plan.PlanRequest` into a resolved
:class:`~holdfast.models.plan.DeploymentPlan` and writes it out as a
self-contained artifact. All validation happens here, at generation time; a
plan that reaches a target host is known to be well formed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from holdfast.config.defaults import ENV_VERSION
from holdfast.config.loader import ComposeLoader, ResolvedDefinition
from holdfast.deploy.artifact import ArtifactResult, write_artifact
from holdfast.deploy.pinning import ImageDigestResolver, PinResult
from holdfast.lib.errors import ValidationError
from holdfast.models.plan import DeploymentPlan, PlanRequest

logger = logging.getLogger(__name__)


@dataclass
class CompiledPlan:
    """A validated plan and the definition it was built from."""

    plan: DeploymentPlan
    definition: ResolvedDefinition
    pins: PinResult = field(default_factory=PinResult)


class PlanCompiler:
    """Validates deploy inputs and renders deploy artifacts.

    Args:
        loader: Compose fragment loader
        resolver_factory: Builds the digest resolver; only called when
            pinning is requested, so Docker is not needed otherwise
    """

    def __init__(
        self,
        loader: ComposeLoader | None = None,
        resolver_factory: Callable[[], ImageDigestResolver] | None = None,
    ) -> None:
        self.loader = loader or ComposeLoader()
        self._resolver_factory = resolver_factory

    def resolve(self, request: PlanRequest) -> CompiledPlan:
        """Merge, validate and optionally pin the request's definition.

        The release version is available to the fragments as ``${VERSION}``.

        Raises:
            ConfigError: If the definition cannot be loaded
            FileNotFoundError: If a compose fragment is missing
            ValidationError: If the probe target is not a defined service
            DeploymentError: If digest pinning fails
        """
        logger.debug("Resolving compose files: %s", ", ".join(request.compose_files))
        definition = self.loader.load(
            request.compose_files,
            request.project_name,
            variables={ENV_VERSION: request.version},
        )

        logger.debug("Checking probe container %s is present", request.probe)
        if request.probe not in definition.services:
            raise ValidationError(
                field="probe",
                message="unknown probe target",
                expected=f"one of: {', '.join(definition.service_names)}",
                actual=request.probe,
            )

        pins = PinResult()
        if request.pin_digests:
            resolver_factory = self._resolver_factory or ImageDigestResolver
            pins = resolver_factory().pin(definition)
        else:
            logger.debug("Not pinning image digests")

        plan = DeploymentPlan(
            version=request.version,
            workdir=request.workdir,
            project_name=definition.project_name,
            probe_target=request.probe,
            max_retries=request.max_retries,
            services=definition.service_names,
            definition=definition.to_yaml(),
        )
        return CompiledPlan(plan=plan, definition=definition, pins=pins)

    def compile(
        self, request: PlanRequest, output: Path | None = None
    ) -> tuple[CompiledPlan, ArtifactResult]:
        """Resolve ``request`` and write its artifact. Does not execute it."""
        compiled = self.resolve(request)
        logger.debug("Generating deploy artifact for %s", request.version)
        artifact = write_artifact(compiled.plan, output)
        logger.info("Wrote deploy artifact %s", artifact.path)
        return compiled, artifact
