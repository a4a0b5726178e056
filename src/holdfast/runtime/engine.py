"""Container engine control plane used by the orchestrator.

The orchestrator only needs a handful of operations over a compose file and
per-container health inspection. :class:`DockerComposeEngine` implements
them with the ``docker compose`` and ``docker inspect`` CLIs, which are the
only engine dependency of a generated artifact.
"""

from __future__ import annotations

import json
import logging
import subprocess  # nosec B404
from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import Enum
from pathlib import Path

from holdfast.lib.errors import EngineError

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health of a probe container as reported by the engine."""

    UNSUPPORTED = "unsupported"
    STARTING = "starting"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    STOPPED = "stopped"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> HealthStatus:
        """Map raw engine output to a status; anything unrecognized is UNKNOWN."""
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN


class ContainerEngine(ABC):
    """Abstract control plane over a multi-container application definition."""

    @abstractmethod
    def down(self, compose_file: Path, remove_orphans: bool = False) -> None:
        """Stop and remove the containers of a definition."""

    @abstractmethod
    def create(self, compose_file: Path) -> None:
        """Create (but do not start) the containers of a definition."""

    @abstractmethod
    def start(self, compose_file: Path) -> None:
        """Start previously created containers."""

    @abstractmethod
    def up(self, compose_file: Path) -> None:
        """Create and start containers in the background."""

    @abstractmethod
    def container_id(self, compose_file: Path, service: str) -> str:
        """Return the first container id of ``service``.

        Raises:
            EngineError: If no container exists for the service
        """

    @abstractmethod
    def health_signal_declared(self, container_id: str) -> bool:
        """Whether the container (or its image) defines a healthcheck."""

    @abstractmethod
    def health_status(self, container_id: str) -> HealthStatus:
        """Read the current health status of a container.

        Raises:
            EngineError: If the container cannot be inspected
        """


def _healthcheck_enabled(healthcheck: object) -> bool:
    if not isinstance(healthcheck, dict):
        return False
    test = healthcheck.get("Test")
    if not test:
        return False
    return list(test) != ["NONE"]


class DockerComposeEngine(ContainerEngine):
    """Container engine backed by the Docker CLI.

    Args:
        docker: Docker CLI executable
        compose_command: Command prefix for compose, e.g. ``["docker", "compose"]``
    """

    def __init__(
        self,
        docker: str = "docker",
        compose_command: Sequence[str] | None = None,
    ) -> None:
        self.docker = docker
        self.compose_command = list(compose_command or [docker, "compose"])

    def down(self, compose_file: Path, remove_orphans: bool = False) -> None:
        args = ["down"]
        if remove_orphans:
            args.append("--remove-orphans")
        self._compose("down", compose_file, *args)

    def create(self, compose_file: Path) -> None:
        self._compose("create", compose_file, "create")

    def start(self, compose_file: Path) -> None:
        self._compose("start", compose_file, "start")

    def up(self, compose_file: Path) -> None:
        self._compose("up", compose_file, "up", "-d")

    def container_id(self, compose_file: Path, service: str) -> str:
        output = self._compose(
            "container_id", compose_file, "ps", "-a", "-q", service, capture=True
        )
        for line in output.splitlines():
            if line.strip():
                return line.strip()
        raise EngineError(
            operation="container_id",
            command=[*self.compose_command, "--file", str(compose_file), "ps"],
            returncode=0,
            stderr=f"no container found for service '{service}'",
        )

    def health_signal_declared(self, container_id: str) -> bool:
        image_id = self._run(
            "inspect",
            [self.docker, "inspect", "--format", "{{.Image}}", container_id],
            capture=True,
        ).strip()
        image_healthcheck = self._inspect_json(
            [
                self.docker,
                "image",
                "inspect",
                "--format",
                "{{json .Config.Healthcheck}}",
                image_id,
            ]
        )
        if _healthcheck_enabled(image_healthcheck):
            return True

        # A healthcheck set in the definition lives on the container only
        container_healthcheck = self._inspect_json(
            [
                self.docker,
                "inspect",
                "--format",
                "{{json .Config.Healthcheck}}",
                container_id,
            ]
        )
        return _healthcheck_enabled(container_healthcheck)

    def health_status(self, container_id: str) -> HealthStatus:
        output = self._run(
            "health_status",
            [
                self.docker,
                "inspect",
                "--format",
                "{{if .State.Health}}{{.State.Health.Status}}{{end}}",
                container_id,
            ],
            capture=True,
        )
        return HealthStatus.parse(output)

    def _inspect_json(self, command: list[str]) -> object:
        output = self._run("inspect", command, capture=True).strip()
        if not output:
            return None
        try:
            return json.loads(output)
        except json.JSONDecodeError:
            logger.debug("Unparseable inspect output: %s", output)
            return None

    def _compose(
        self, operation: str, compose_file: Path, *args: str, capture: bool = False
    ) -> str:
        command = [*self.compose_command, "--file", str(compose_file), *args]
        return self._run(operation, command, capture=capture)

    def _run(self, operation: str, command: list[str], capture: bool = False) -> str:
        logger.debug("Running: %s", " ".join(command))
        try:
            result = subprocess.run(  # noqa: S603  # nosec B603
                command,
                stdout=subprocess.PIPE if capture else None,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as exc:
            raise EngineError(
                operation=operation, command=command, returncode=127, stderr=str(exc)
            ) from exc
        if result.returncode != 0:
            raise EngineError(
                operation=operation,
                command=command,
                returncode=result.returncode,
                stderr=result.stderr or "",
            )
        if result.stderr and not capture:
            for line in result.stderr.splitlines():
                logger.info("  %s", line)
        return result.stdout or ""
