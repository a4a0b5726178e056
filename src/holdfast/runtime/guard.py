"""Per-workdir deployment lock.

Overlapping deployments against one working directory are rejected rather
than queued: the pointer swap performed at commit is not safe under
concurrent writers. The lock is an advisory ``flock`` on a fixed file inside
the working directory, so deployments to different directories never
contend, and the kernel drops it if the process dies.
"""

from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
from types import TracebackType

from holdfast.lib.errors import LockError
from holdfast.runtime.layout import LOCK_FILE_NAME

logger = logging.getLogger(__name__)


class DeploymentLock:
    """Exclusive, non-blocking lock for one deployment working directory.

    Example:
        >>> with DeploymentLock(Path("/srv/app")):
        ...     run_deployment()
    """

    def __init__(self, workdir: Path) -> None:
        self.workdir = Path(workdir)
        self.path = self.workdir / LOCK_FILE_NAME
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        """Whether this instance currently holds the lock."""
        return self._fd is not None

    def acquire(self) -> None:
        """Take the lock with a single attempt.

        Raises:
            LockError: If another holder already has the lock
        """
        if self._fd is not None:
            return

        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            os.close(fd)
            raise LockError(str(self.workdir)) from exc
        except OSError:
            os.close(fd)
            raise

        self._fd = fd
        logger.debug("Acquired deployment lock %s", self.path)

    def release(self) -> None:
        """Release the lock if held."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
        logger.debug("Released deployment lock %s", self.path)

    def __enter__(self) -> DeploymentLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
