"""holdfast - health-gated release rollouts for Docker Compose applications.

holdfast compiles a release version and a set of compose fragments into a
single self-contained deploy artifact. Run on the target host, the artifact
stops the live release, starts the new one, waits for its probe service to
report healthy and then either commits the release or rolls back.

Main features:
- Release catalog with atomic ``current``/``previous`` pointers
- Bounded health probing with automatic rollback
- Per-workdir deployment lock
- Generation-time definition resolution and image digest pinning

This module is bundled into deploy artifacts; keep it free of third-party
imports.
"""

from holdfast.lib.errors import (
    ConfigError,
    DeploymentError,
    HoldfastError,
    LockError,
    ValidationError,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigError",
    "DeploymentError",
    "HoldfastError",
    "LockError",
    "ValidationError",
]
