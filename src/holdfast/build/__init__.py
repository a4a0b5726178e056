"""Image build helpers: ephemeral BuildKit daemon supervision."""

from holdfast.build.buildkit import run_buildctl
from holdfast.build.supervisor import DaemonHandle, DaemonSupervisor

__all__ = ["DaemonHandle", "DaemonSupervisor", "run_buildctl"]
