"""Supervision of short-lived background daemons.

A daemon is spawned detached in its own session with output going to a log
file, polled until it accepts work, and torn down with SIGTERM followed by
SIGKILL after a grace period.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess  # nosec B404
import sys
import threading
import time
from collections.abc import Callable, Generator, Iterable, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from holdfast.lib.errors import SupervisorError

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 5.0


def linear_backoff(base: float = 0.1, step: float = 0.02) -> Callable[[int], float]:
    """Return a schedule sleeping ``base + step * attempt`` seconds."""

    def _delay(attempt: int) -> float:
        return base + step * attempt

    return _delay


class LogTail:
    """Follows a log file on a background thread and copies new lines out."""

    def __init__(
        self, path: Path, out: TextIO | None = None, poll_interval: float = 0.2
    ) -> None:
        self.path = path
        self._out = out or sys.stdout
        self._poll_interval = poll_interval
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name="log-tail", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread.is_alive():
            self._thread.join(timeout=self._poll_interval * 5)

    def _run(self) -> None:
        position = 0
        while True:
            stopping = self._stop.is_set()
            try:
                with self.path.open("r", encoding="utf-8", errors="replace") as log:
                    log.seek(position)
                    chunk = log.read()
                    position = log.tell()
            except OSError:
                chunk = ""
            if chunk:
                self._out.write(chunk)
                self._out.flush()
            if stopping:
                return
            self._stop.wait(self._poll_interval)


@dataclass
class DaemonHandle:
    """A spawned daemon process and its log."""

    process: subprocess.Popen[bytes]
    command: list[str]
    log_path: Path
    log_tail: LogTail | None = field(default=None, repr=False)

    @property
    def pid(self) -> int:
        return self.process.pid

    def is_running(self) -> bool:
        return self.process.poll() is None

    def read_log(self) -> str:
        try:
            return self.log_path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return ""


class DaemonSupervisor:
    """Spawns, waits for and terminates a detached daemon.

    Args:
        sleep: Sleep function, injectable for tests
        tail_logs: Copy the daemon log to stdout while it runs
    """

    def __init__(
        self,
        sleep: Callable[[float], None] = time.sleep,
        tail_logs: bool = True,
    ) -> None:
        self._sleep = sleep
        self._tail_logs = tail_logs

    def spawn_detached(
        self,
        command: Sequence[str],
        log_path: Path,
        env: dict[str, str] | None = None,
    ) -> DaemonHandle:
        """Start ``command`` in a new session, appending output to ``log_path``."""
        command = list(command)
        logger.info("Starting daemon: %s", " ".join(command))
        with log_path.open("ab") as log:
            process = subprocess.Popen(  # noqa: S603  # nosec B603
                command,
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=subprocess.STDOUT,
                start_new_session=True,
                env=env,
            )

        handle = DaemonHandle(process=process, command=command, log_path=log_path)
        if self._tail_logs:
            handle.log_tail = LogTail(log_path)
            handle.log_tail.start()
        logger.info("Started daemon with pid %d", handle.pid)
        return handle

    def wait_until_ready(
        self,
        handle: DaemonHandle,
        check: Callable[[], bool],
        max_attempts: int,
        backoff: Callable[[int], float] | Iterable[float],
    ) -> bool:
        """Poll ``check`` until it succeeds or ``max_attempts`` is exhausted.

        Returns False early if the daemon exits while being waited on.
        """
        delays: Callable[[int], float]
        if callable(backoff):
            delays = backoff
        else:
            schedule = list(backoff)
            if not schedule:
                raise ValueError("backoff schedule must not be empty")

            def delays(attempt: int) -> float:
                return schedule[min(attempt, len(schedule) - 1)]

        for attempt in range(max_attempts + 1):
            if check():
                logger.debug("Daemon ready after %d attempts", attempt + 1)
                return True
            if not handle.is_running():
                logger.error("Daemon exited with status %s", handle.process.returncode)
                return False
            self._sleep(delays(attempt))
        return False

    def terminate(
        self, handle: DaemonHandle, grace_period: float = DEFAULT_GRACE_PERIOD
    ) -> None:
        """Stop the daemon: SIGTERM, then SIGKILL after ``grace_period``."""
        if handle.log_tail is not None:
            handle.log_tail.stop()

        if not handle.is_running():
            return

        logger.info("Stopping daemon (pid=%d)...", handle.pid)
        self._signal(handle, signal.SIGTERM)

        waited = 0.0
        while waited < grace_period:
            if not handle.is_running():
                logger.info("Daemon exited")
                return
            self._sleep(1.0)
            waited += 1.0

        if handle.is_running():
            logger.warning("Daemon did not exit in time, forcibly killing...")
            self._signal(handle, signal.SIGKILL)
            handle.process.wait()

    @staticmethod
    def _signal(handle: DaemonHandle, signum: int) -> None:
        try:
            os.kill(handle.pid, signum)
        except ProcessLookupError:
            pass

    @contextmanager
    def supervised(
        self,
        command: Sequence[str],
        log_path: Path,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        env: dict[str, str] | None = None,
    ) -> Generator[DaemonHandle, None, None]:
        """Run a daemon for the duration of a ``with`` block."""
        handle = self.spawn_detached(command, log_path, env=env)
        try:
            yield handle
        finally:
            self.terminate(handle, grace_period)


@contextmanager
def exit_on_sigterm() -> Generator[None, None, None]:
    """Turn SIGTERM into SystemExit so ``finally`` blocks still run."""

    def _handler(signum: int, frame: object) -> None:
        raise SystemExit(128 + signum)

    previous = signal.signal(signal.SIGTERM, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


def require_ready(ready: bool, handle: DaemonHandle, address: str, attempts: int) -> None:
    """Raise SupervisorError with the daemon log if it never became ready."""
    if ready:
        return
    raise SupervisorError(
        f"could not connect to {address} after {attempts} trials\n"
        f"========== log ==========\n{handle.read_log()}"
    )
