"""Run ``buildctl`` against an ephemeral, supervised buildkitd.

Starts buildkitd (behind rootlesskit unless running as root), waits until it
answers ``buildctl debug workers``, runs the requested buildctl command and
stops the daemon again whatever happens.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess  # nosec B404
import tempfile
from collections.abc import Callable, Sequence
from pathlib import Path

from holdfast.build.supervisor import (
    DaemonSupervisor,
    linear_backoff,
    require_ready,
)
from holdfast.models.build import BuildkitConfig

logger = logging.getLogger(__name__)

ROOT_ADDRESS = "unix:///run/buildkit/buildkitd.sock"


def buildkit_address(config: BuildkitConfig, is_root: bool) -> str:
    """Socket address buildkitd listens on."""
    if is_root:
        return ROOT_ADDRESS
    return f"unix://{config.xdg_runtime_dir}/buildkit/buildkitd.sock"


def daemon_command(config: BuildkitConfig, address: str, is_root: bool) -> list[str]:
    """Command line starting buildkitd."""
    command: list[str] = [] if is_root else [config.rootlesskit]
    command.append(config.buildkitd)
    command.extend(shlex.split(config.buildkitd_flags))
    if config.debug:
        command.append("--debug")
    command.append(f"--addr={address}")
    return command


def buildctl_command(config: BuildkitConfig, address: str, args: Sequence[str]) -> list[str]:
    """Command line running buildctl against ``address``."""
    command = [config.buildctl]
    if config.debug:
        command.append("--debug")
    command.append(f"--addr={address}")
    command.extend(args)
    return command


def _running_as_root() -> bool:
    return os.geteuid() == 0


def _workers_ready(config: BuildkitConfig, address: str) -> Callable[[], bool]:
    def _check() -> bool:
        result = subprocess.run(  # noqa: S603  # nosec B603
            [config.buildctl, f"--addr={address}", "debug", "workers"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        return result.returncode == 0

    return _check


def run_buildctl(
    config: BuildkitConfig,
    args: Sequence[str],
    supervisor: DaemonSupervisor | None = None,
    is_root: bool | None = None,
) -> int:
    """Run buildctl with ``args`` against a temporary buildkitd.

    Returns:
        buildctl's exit status

    Raises:
        SupervisorError: If buildkitd never became ready
    """
    supervisor = supervisor or DaemonSupervisor()
    root = _running_as_root() if is_root is None else is_root
    address = buildkit_address(config, root)
    logger.info("XDG_RUNTIME_DIR: %s", config.xdg_runtime_dir)
    logger.info("Running as %s", "root" if root else "non-root")

    runtime_dir = Path(tempfile.mkdtemp(prefix="buildctl-daemonless."))
    logger.info("Runtime dir: %s", runtime_dir)
    try:
        with supervisor.supervised(
            daemon_command(config, address, root), runtime_dir / "log"
        ) as handle:
            ready = supervisor.wait_until_ready(
                handle,
                _workers_ready(config, address),
                max_attempts=config.connect_retries_max,
                backoff=linear_backoff(),
            )
            require_ready(ready, handle, address, config.connect_retries_max)

            command = buildctl_command(config, address, args)
            logger.info("Running: %s", " ".join(command))
            return subprocess.run(command).returncode  # noqa: S603  # nosec B603
    finally:
        logger.info("Cleaning up runtime dir %s", runtime_dir)
        shutil.rmtree(runtime_dir, ignore_errors=True)
