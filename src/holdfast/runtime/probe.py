"""Health probe poller for the designated probe service of a release."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from holdfast.lib.errors import EngineError, HealthCheckTimeout
from holdfast.runtime.engine import ContainerEngine, HealthStatus
from holdfast.runtime.layout import DEFAULT_MAX_RETRIES, DEFAULT_PROBE_INTERVAL
from holdfast.runtime.releases import Release

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeTarget:
    """Concrete container standing in for a release's health.

    Attributes:
        service: Probe service name from the definition
        container_id: Container instance of the service
        healthcheck_supported: Whether a health signal is declared at all
    """

    service: str
    container_id: str
    healthcheck_supported: bool


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a successful probe."""

    target: ProbeTarget
    status: HealthStatus
    attempts: int

    @property
    def healthcheck_supported(self) -> bool:
        return self.target.healthcheck_supported


class HealthProbe:
    """Polls a probe container until it is healthy or retries run out.

    Timeouts are attempt-counted: at most ``max_retries`` status reads with
    ``interval`` seconds of sleep after each non-healthy read.

    Args:
        engine: Container engine used for inspection
        interval: Seconds between status reads
        sleep: Sleep function, injectable for tests
    """

    def __init__(
        self,
        engine: ContainerEngine,
        interval: float = DEFAULT_PROBE_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.engine = engine
        self.interval = interval
        self._sleep = sleep

    def inspect_target(self, release: Release, service: str) -> ProbeTarget:
        """Locate the probe container of a created release.

        Raises:
            EngineError: If the container cannot be found or inspected
        """
        container_id = self.engine.container_id(release.compose_file, service)
        supported = self.engine.health_signal_declared(container_id)
        logger.debug(
            "Probe container %s for service %s (healthcheck: %s)",
            container_id,
            service,
            supported,
        )
        return ProbeTarget(
            service=service,
            container_id=container_id,
            healthcheck_supported=supported,
        )

    def wait_healthy(
        self, target: ProbeTarget, max_retries: int = DEFAULT_MAX_RETRIES
    ) -> ProbeResult:
        """Wait for the probe container to report healthy.

        Containers without a health signal are trusted on successful start.

        Raises:
            ValueError: If ``max_retries`` is less than 1
            HealthCheckTimeout: If no read reported healthy
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        if not target.healthcheck_supported:
            logger.warning(
                "Probe container %s (%s) does not support healthcheck, committing",
                target.container_id,
                target.service,
            )
            return ProbeResult(
                target=target, status=HealthStatus.UNSUPPORTED, attempts=0
            )

        logger.info(
            "Waiting for health check (timeout: %ss)",
            _format_seconds(max_retries * self.interval),
        )
        status = HealthStatus.UNKNOWN
        for attempt in range(1, max_retries + 1):
            try:
                status = self.engine.health_status(target.container_id)
            except EngineError as exc:
                logger.debug("Health inspection failed: %s", exc)
                status = HealthStatus.STARTING

            if status is HealthStatus.HEALTHY:
                logger.info("Health check passed")
                return ProbeResult(target=target, status=status, attempts=attempt)

            logger.info(
                "Waiting for healthy status... (attempt %d/%d, status: %s)",
                attempt,
                max_retries,
                status.value,
            )
            self._sleep(self.interval)

        raise HealthCheckTimeout(target.service, max_retries, status.value)

    def probe(
        self, release: Release, service: str, max_retries: int = DEFAULT_MAX_RETRIES
    ) -> ProbeResult:
        """Inspect the probe target of ``release`` and wait for it."""
        return self.wait_healthy(self.inspect_target(release, service), max_retries)


def _format_seconds(seconds: float) -> str:
    return str(int(seconds)) if float(seconds).is_integer() else f"{seconds:g}"
