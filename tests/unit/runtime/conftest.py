"""Fixtures for runtime tests: an in-memory container engine."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import pytest

from holdfast.lib.errors import EngineError
from holdfast.runtime.engine import ContainerEngine, HealthStatus
from holdfast.runtime.orchestrator import DeploymentOrchestrator
from holdfast.runtime.probe import HealthProbe
from holdfast.runtime.releases import ReleaseManager


class FakeEngine(ContainerEngine):
    """Container engine keyed by release version (the compose file's directory).

    Args:
        health: Version to the statuses returned by successive reads; the last
            status repeats once the list is exhausted
        healthcheck: Whether containers declare a health signal
        failures: ``(operation, version)`` pairs that raise EngineError
    """

    def __init__(
        self,
        health: dict[str, list[HealthStatus]] | None = None,
        healthcheck: bool = True,
        failures: set[tuple[str, str]] | None = None,
    ) -> None:
        self.health = {k: list(v) for k, v in (health or {}).items()}
        self.healthcheck = healthcheck
        self.failures = failures or set()
        self.calls: list[tuple[str, str]] = []
        self.running: set[str] = set()
        self.on_health_read: Callable[[str], None] | None = None

    def _record(self, operation: str, compose_file: Path) -> str:
        version = Path(compose_file).parent.name
        self.calls.append((operation, version))
        if (operation, version) in self.failures:
            raise EngineError(
                operation=operation,
                command=["docker", "compose", operation],
                returncode=1,
                stderr=f"{operation} {version} failed",
            )
        return version

    def down(self, compose_file: Path, remove_orphans: bool = False) -> None:
        version = self._record("down", compose_file)
        self.running.discard(version)

    def create(self, compose_file: Path) -> None:
        self._record("create", compose_file)

    def start(self, compose_file: Path) -> None:
        version = self._record("start", compose_file)
        self.running.add(version)

    def up(self, compose_file: Path) -> None:
        version = self._record("up", compose_file)
        self.running.add(version)

    def container_id(self, compose_file: Path, service: str) -> str:
        version = self._record("container_id", compose_file)
        return f"{version}/{service}"

    def health_signal_declared(self, container_id: str) -> bool:
        return self.healthcheck

    def health_status(self, container_id: str) -> HealthStatus:
        version = container_id.split("/", 1)[0]
        self.calls.append(("health_status", version))
        if self.on_health_read is not None:
            self.on_health_read(version)
        statuses = self.health.get(version, [HealthStatus.HEALTHY])
        if len(statuses) > 1:
            return statuses.pop(0)
        return statuses[0]

    def operations(self, version: str) -> list[str]:
        return [op for op, v in self.calls if v == version]


@pytest.fixture
def engine_factory() -> type[FakeEngine]:
    return FakeEngine


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    return tmp_path / "srv" / "app"


@pytest.fixture
def releases(workdir: Path, clock: Callable[[], datetime]) -> ReleaseManager:
    return ReleaseManager(workdir, clock=clock)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_orchestrator(
    releases: ReleaseManager, sleeps: list[float]
) -> Callable[[FakeEngine], DeploymentOrchestrator]:
    """Build an orchestrator over ``releases`` that records probe sleeps."""

    def _make(engine: FakeEngine) -> DeploymentOrchestrator:
        probe = HealthProbe(engine, interval=5.0, sleep=sleeps.append)
        return DeploymentOrchestrator(releases, engine, probe)

    return _make
