"""Deployment runtime executed on the target host.

Everything in this package is copied into generated deploy artifacts and
therefore depends on the standard library only.
"""

from holdfast.runtime.engine import ContainerEngine, DockerComposeEngine, HealthStatus
from holdfast.runtime.guard import DeploymentLock
from holdfast.runtime.orchestrator import (
    DeploymentAttempt,
    DeploymentOrchestrator,
    DeploymentState,
    Disposition,
)
from holdfast.runtime.plan import RuntimePlan
from holdfast.runtime.probe import HealthProbe, ProbeResult, ProbeTarget
from holdfast.runtime.releases import Release, ReleaseManager

__all__ = [
    "ContainerEngine",
    "DeploymentAttempt",
    "DeploymentLock",
    "DeploymentOrchestrator",
    "DeploymentState",
    "Disposition",
    "DockerComposeEngine",
    "HealthProbe",
    "HealthStatus",
    "ProbeResult",
    "ProbeTarget",
    "Release",
    "ReleaseManager",
    "RuntimePlan",
]
