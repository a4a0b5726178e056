"""Deployment state machine.

One attempt runs strictly sequentially::

    INIT -> LOCKED -> OLD_STOPPED -> NEW_CREATED -> NEW_STARTED -> PROBING
         -> COMMITTED | ROLLED_BACK | NO_ROLLBACK | ROLLBACK_FAILED

``LOCK_FAILED`` is only reachable from ``INIT`` and ``REJECTED`` only from
``LOCKED``. ``ERRORED`` ends an attempt interrupted by an unexpected error
from any non-terminal state. The old release is stopped before the new one
is created, so a rollout accepts a short full-down window instead of running
two versions' containers side by side.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from holdfast.lib.errors import (
    EngineError,
    HealthCheckTimeout,
    HoldfastError,
    LockError,
    ReleaseExistsError,
    RollbackError,
)
from holdfast.runtime.engine import ContainerEngine
from holdfast.runtime.guard import DeploymentLock
from holdfast.runtime.layout import DEFAULT_MAX_RETRIES
from holdfast.runtime.probe import HealthProbe
from holdfast.runtime.releases import Release, ReleaseManager

logger = logging.getLogger(__name__)


class DeploymentState(str, Enum):
    """States of a deployment attempt."""

    INIT = "init"
    LOCKED = "locked"
    OLD_STOPPED = "old_stopped"
    NEW_CREATED = "new_created"
    NEW_STARTED = "new_started"
    PROBING = "probing"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    NO_ROLLBACK = "no_rollback"
    ROLLBACK_FAILED = "rollback_failed"
    LOCK_FAILED = "lock_failed"
    REJECTED = "rejected"
    ERRORED = "errored"


class Disposition(Enum):
    """Terminal outcome of an attempt and its process exit code."""

    SUCCEEDED = (0, "Deployment successful")
    ROLLED_BACK = (1, "Deployment failed, rolled back")
    NO_ROLLBACK = (2, "Deployment failed, no previous version to roll back to")
    LOCK_FAILED = (3, "Another deployment is already in progress")
    ROLLBACK_FAILED = (4, "Deployment failed and rollback failed")
    REJECTED = (5, "Deployment rejected")
    ERRORED = (6, "Deployment aborted by an unexpected error")

    def __init__(self, exit_code: int, title: str) -> None:
        self.exit_code = exit_code
        self.title = title

    @property
    def succeeded(self) -> bool:
        return self is Disposition.SUCCEEDED


_TERMINAL_DISPOSITIONS = {
    DeploymentState.COMMITTED: Disposition.SUCCEEDED,
    DeploymentState.ROLLED_BACK: Disposition.ROLLED_BACK,
    DeploymentState.NO_ROLLBACK: Disposition.NO_ROLLBACK,
    DeploymentState.ROLLBACK_FAILED: Disposition.ROLLBACK_FAILED,
    DeploymentState.LOCK_FAILED: Disposition.LOCK_FAILED,
    DeploymentState.REJECTED: Disposition.REJECTED,
    DeploymentState.ERRORED: Disposition.ERRORED,
}


@dataclass
class DeploymentAttempt:
    """In-memory record of one deployment attempt.

    Attributes:
        version: Requested release version
        old_version: Version that was current when the attempt started
        state: Current state machine state
        history: States visited, in order
        probe_attempts: Health status reads performed
        healthcheck_supported: Whether the probe target declared a health signal
        reason: Why the attempt ended the way it did
        pruned: Releases removed by retention on commit
    """

    version: str
    old_version: str | None = None
    state: DeploymentState = DeploymentState.INIT
    history: list[DeploymentState] = field(
        default_factory=lambda: [DeploymentState.INIT]
    )
    probe_attempts: int = 0
    healthcheck_supported: bool | None = None
    reason: str = ""
    pruned: list[str] = field(default_factory=list)

    def advance(self, state: DeploymentState) -> None:
        logger.debug("Deployment %s: %s -> %s", self.version, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    @property
    def finished(self) -> bool:
        return self.state in _TERMINAL_DISPOSITIONS

    @property
    def disposition(self) -> Disposition:
        """Terminal disposition of a finished attempt."""
        try:
            return _TERMINAL_DISPOSITIONS[self.state]
        except KeyError:
            raise RuntimeError(
                f"Deployment attempt is not finished (state: {self.state.value})"
            ) from None

    @property
    def exit_code(self) -> int:
        return self.disposition.exit_code

    def summary(self) -> str:
        """Human readable summary of a finished attempt."""
        lines = [
            self.disposition.title,
            f"  Version:   {self.version}",
            f"  Previous:  {self.old_version or 'none'}",
        ]
        if self.reason:
            lines.append(f"  Reason:    {self.reason}")
        return "\n".join(lines)


@dataclass
class _Rollout:
    """Releases touched by the attempt in progress."""

    old_release: Release | None = None
    release: Release | None = None


class DeploymentOrchestrator:
    """Sequences lock, stop-old, create-new, start-new, probe, commit/rollback.

    Args:
        releases: Release catalog of the working directory
        engine: Container engine control plane
        probe: Health probe poller
        lock_factory: Builds the concurrency guard for the working directory
    """

    def __init__(
        self,
        releases: ReleaseManager,
        engine: ContainerEngine,
        probe: HealthProbe,
        lock_factory: Callable[[Path], DeploymentLock] = DeploymentLock,
    ) -> None:
        self.releases = releases
        self.engine = engine
        self.probe = probe
        self._lock_factory = lock_factory

    @property
    def workdir(self) -> Path:
        return self.releases.workdir

    def run(
        self,
        version: str,
        definition: str,
        probe_target: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> DeploymentAttempt:
        """Run one deployment attempt to a terminal state.

        Args:
            version: Release version to deploy
            definition: Resolved compose document for the release
            probe_target: Service whose health gates the commit
            max_retries: Health status reads before giving up

        Returns:
            The finished attempt; inspect ``disposition`` for the outcome
        """
        attempt = DeploymentAttempt(version=version)

        try:
            self.workdir.mkdir(parents=True, exist_ok=True)
            lock = self._lock_factory(self.workdir)
            lock.acquire()
        except LockError as exc:
            attempt.reason = str(exc)
            attempt.advance(DeploymentState.LOCK_FAILED)
            logger.error("%s", exc)
            return attempt
        except OSError as exc:
            attempt.reason = f"Cannot prepare working directory {self.workdir}: {exc}"
            attempt.advance(DeploymentState.ERRORED)
            logger.error("%s", attempt.reason)
            return attempt

        rollout = _Rollout()
        try:
            attempt.advance(DeploymentState.LOCKED)
            self._deploy(attempt, rollout, definition, probe_target, max_retries)
        except (HoldfastError, OSError, ValueError) as exc:
            self._abandon(attempt, rollout, exc)
        finally:
            lock.release()
        return attempt

    def _deploy(
        self,
        attempt: DeploymentAttempt,
        rollout: _Rollout,
        definition: str,
        probe_target: str,
        max_retries: int,
    ) -> None:
        version = attempt.version
        attempt.old_version = self.releases.read_current()

        logger.info("-------------- Deploy info --------------")
        logger.info("Working directory: %s", self.workdir)
        logger.info("Deploying version: %s", version)
        logger.info("Max retries for healthy status: %d", max_retries)
        logger.info("Previous version: %s", attempt.old_version or "none")
        logger.info("-----------------------------------------")

        if self.releases.exists(version):
            attempt.reason = str(ReleaseExistsError(version))
            attempt.advance(DeploymentState.REJECTED)
            logger.error("%s", attempt.reason)
            return

        if attempt.old_version is not None:
            old_release = self.releases.get_release(attempt.old_version)
            rollout.old_release = old_release
            logger.info("Stopping old version: %s", attempt.old_version)
            try:
                self.engine.down(old_release.compose_file, remove_orphans=True)
            except EngineError as exc:
                attempt.reason = f"Failed to stop previous release: {exc}"
                logger.error("%s", attempt.reason)
                self._restart_old(attempt, old_release)
                return
        attempt.advance(DeploymentState.OLD_STOPPED)

        release = self.releases.create_release(version, definition)
        rollout.release = release
        logger.info("Creating version %s", version)
        try:
            self.engine.create(release.compose_file)
            target = self.probe.inspect_target(release, probe_target)
            attempt.healthcheck_supported = target.healthcheck_supported
            attempt.advance(DeploymentState.NEW_CREATED)

            self.engine.start(release.compose_file)
            attempt.advance(DeploymentState.NEW_STARTED)

            attempt.advance(DeploymentState.PROBING)
            result = self.probe.wait_healthy(target, max_retries)
        except HealthCheckTimeout as exc:
            attempt.probe_attempts = exc.attempts
            attempt.reason = str(exc)
            logger.warning("Health check timeout: %s", exc)
            self._fail(attempt, release, rollout.old_release)
            return
        except EngineError as exc:
            attempt.reason = str(exc)
            logger.error("Failed to start version %s: %s", version, exc)
            self._fail(attempt, release, rollout.old_release)
            return

        attempt.probe_attempts = result.attempts
        attempt.pruned = self.releases.commit(version, attempt.old_version)
        attempt.advance(DeploymentState.COMMITTED)
        logger.info("Deployment successful: %s", version)

    def _fail(
        self,
        attempt: DeploymentAttempt,
        release: Release,
        old_release: Release | None,
    ) -> None:
        self._stop_quietly(release)

        if old_release is None:
            logger.error(
                "Health check failed, no old version available for rollback"
            )
            attempt.advance(DeploymentState.NO_ROLLBACK)
            return

        logger.warning("Rolling back to: %s", old_release.version)
        restored = self._start_old(attempt, old_release)
        logger.info("Cleaning up broken version %s", release.version)
        self._abort_quietly(release.version)
        attempt.advance(
            DeploymentState.ROLLED_BACK if restored else DeploymentState.ROLLBACK_FAILED
        )

    def _abandon(
        self, attempt: DeploymentAttempt, rollout: _Rollout, exc: Exception
    ) -> None:
        """End an attempt interrupted by an unexpected error.

        Unless the new release already became current, it is stopped and
        removed and the old release is started again.
        """
        attempt.reason = f"Unexpected error: {exc}"
        logger.exception("Deployment of %s aborted", attempt.version)

        if self._is_current(attempt.version):
            logger.warning(
                "Release %s is already current, leaving it running", attempt.version
            )
        else:
            if rollout.release is not None:
                self._stop_quietly(rollout.release)
            # create_release may have failed after making the directory
            if attempt.state is not DeploymentState.LOCKED:
                self._abort_quietly(attempt.version)
            if rollout.old_release is not None:
                self._start_old(attempt, rollout.old_release)
        attempt.advance(DeploymentState.ERRORED)

    def _restart_old(self, attempt: DeploymentAttempt, old_release: Release) -> None:
        restored = self._start_old(attempt, old_release)
        attempt.advance(
            DeploymentState.ROLLED_BACK if restored else DeploymentState.ROLLBACK_FAILED
        )

    def _start_old(self, attempt: DeploymentAttempt, old_release: Release) -> bool:
        try:
            self.engine.up(old_release.compose_file)
        except EngineError as exc:
            error = RollbackError(
                old_release.version,
                f"Failed to restart release '{old_release.version}': {exc}",
            )
            attempt.reason = f"{attempt.reason}; {error.message}".lstrip("; ")
            logger.critical("%s", error)
            return False
        return True

    def _is_current(self, version: str) -> bool:
        try:
            return self.releases.read_current() == version
        except (HoldfastError, OSError):
            return False

    def _stop_quietly(self, release: Release) -> None:
        try:
            self.engine.down(release.compose_file, remove_orphans=True)
        except EngineError as exc:
            logger.warning("Failed to stop release %s: %s", release.version, exc)

    def _abort_quietly(self, version: str) -> None:
        if not self.releases.exists(version):
            return
        try:
            self.releases.abort_release(version)
        except (HoldfastError, OSError) as exc:
            logger.warning("Failed to remove release %s: %s", version, exc)
