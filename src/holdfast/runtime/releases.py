"""Release catalog and pointer management.

The catalog (``releases/<version>/``) plus the ``current`` and ``previous``
symlinks are the entire persisted state of a deployment working directory.
All mutation goes through :class:`ReleaseManager`; callers are expected to
hold the :class:`~holdfast.runtime.guard.DeploymentLock` while using it.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from holdfast.lib.errors import DeploymentError, ReleaseExistsError
from holdfast.runtime.layout import (
    CURRENT_POINTER,
    DEFAULT_RETENTION,
    DEFINITION_FILE_NAME,
    PREVIOUS_POINTER,
    RELEASE_DATE_FORMAT,
    RELEASE_DATE_MARKER,
    RELEASES_DIR_NAME,
    is_safe_version,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Release:
    """Handle to one release directory in the catalog.

    Attributes:
        version: Release version identifier
        path: Release directory
        committed: Whether the release-date marker has been written
        release_date: Marker contents, when committed
    """

    version: str
    path: Path
    committed: bool = False
    release_date: str | None = None

    @property
    def compose_file(self) -> Path:
        """Path of the resolved application definition."""
        return self.path / DEFINITION_FILE_NAME


class ReleaseManager:
    """Owns the release catalog and the current/previous pointers.

    Args:
        workdir: Deployment working directory
        retention: Number of most recently created releases kept on commit
        clock: Returns the current UTC time; used for the release-date marker
            and for stamping release creation order
    """

    def __init__(
        self,
        workdir: Path,
        retention: int = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if retention < 1:
            raise ValueError("retention must be at least 1")
        self.workdir = Path(workdir)
        self.releases_dir = self.workdir / RELEASES_DIR_NAME
        self.retention = retention
        self._clock = clock

    def release_path(self, version: str) -> Path:
        """Return the directory for ``version`` without touching the disk."""
        if not is_safe_version(version):
            raise DeploymentError(
                operation="release",
                message=f"Unsafe release version: {version!r}",
            )
        return self.releases_dir / version

    def exists(self, version: str) -> bool:
        """Whether a release directory exists for ``version``."""
        return self.release_path(version).is_dir()

    def get_release(self, version: str) -> Release:
        """Return the handle for an existing release.

        Raises:
            DeploymentError: If the release does not exist
        """
        path = self.release_path(version)
        if not path.is_dir():
            raise DeploymentError(
                operation="release",
                message=f"Release '{version}' not found in {self.releases_dir}",
            )
        marker = path / RELEASE_DATE_MARKER
        release_date = None
        if marker.is_file():
            release_date = marker.read_text(encoding="utf-8").strip()
        return Release(
            version=version,
            path=path,
            committed=release_date is not None,
            release_date=release_date,
        )

    def create_release(self, version: str, definition: str) -> Release:
        """Materialize a new release directory with its definition file.

        Args:
            version: Release version identifier
            definition: Resolved compose document, written verbatim

        Returns:
            Handle for the new, uncommitted release

        Raises:
            ReleaseExistsError: If a directory for ``version`` already exists
        """
        path = self.release_path(version)
        self.releases_dir.mkdir(parents=True, exist_ok=True)
        try:
            path.mkdir()
        except FileExistsError as exc:
            raise ReleaseExistsError(version) from exc

        compose_file = path / DEFINITION_FILE_NAME
        compose_file.write_text(definition, encoding="utf-8")
        compose_file.chmod(0o444)

        created = self._clock().timestamp()
        os.utime(path, (created, created))
        logger.info("Created release %s", version)
        return Release(version=version, path=path)

    def commit(self, version: str, previous_version: str | None = None) -> list[str]:
        """Promote ``version`` to current and prune the catalog.

        The release-date marker is written first, then each pointer is
        swapped with a single rename so readers never see a missing or
        half-written pointer.

        Args:
            version: Release to make current
            previous_version: Release to record as previous, if any

        Returns:
            Versions removed by retention pruning
        """
        release = self.get_release(version)

        created_ns = release.path.stat().st_mtime_ns
        marker = release.path / RELEASE_DATE_MARKER
        tmp_marker = release.path / f".{RELEASE_DATE_MARKER}.tmp"
        tmp_marker.write_text(
            self._clock().strftime(RELEASE_DATE_FORMAT) + "\n", encoding="utf-8"
        )
        os.replace(tmp_marker, marker)
        # Keep creation order stable for pruning
        os.utime(release.path, ns=(created_ns, created_ns))

        self._repoint(CURRENT_POINTER, version)
        if previous_version is not None:
            self._repoint(PREVIOUS_POINTER, previous_version)

        logger.info("Committed release %s (previous: %s)", version, previous_version)
        return self.prune()

    def abort_release(self, version: str) -> None:
        """Delete a release that never became current."""
        path = self.release_path(version)
        if version in (self.read_current(), self.read_previous()):
            raise DeploymentError(
                operation="abort_release",
                message=f"Refusing to delete release '{version}': it is still referenced",
            )
        shutil.rmtree(path)
        logger.info("Removed aborted release %s", version)

    def read_current(self) -> str | None:
        """Return the current version, or None before the first deployment."""
        return self._read_pointer(CURRENT_POINTER)

    def read_previous(self) -> str | None:
        """Return the previous version, or None if there is none."""
        return self._read_pointer(PREVIOUS_POINTER)

    def list_releases(self) -> list[Release]:
        """Return all releases, most recently created first."""
        if not self.releases_dir.is_dir():
            return []
        entries = [
            entry
            for entry in self.releases_dir.iterdir()
            if entry.is_dir() and not entry.is_symlink() and is_safe_version(entry.name)
        ]
        entries.sort(key=lambda p: (p.stat().st_mtime_ns, p.name), reverse=True)
        return [self.get_release(entry.name) for entry in entries]

    def prune(self) -> list[str]:
        """Remove releases beyond the retention window.

        Only committed releases count towards the window. Uncommitted ones,
        left behind by a failed first deployment, are removed as well.

        Best effort: failures are logged and never raised. The current and
        previous releases are never removed.
        """
        try:
            releases = self.list_releases()
            keep = {self.read_current(), self.read_previous()}
        except (DeploymentError, OSError) as exc:
            logger.warning("Skipping release cleanup: %s", exc)
            return []

        committed = [release for release in releases if release.committed]
        stale = committed[self.retention :]
        stale.extend(release for release in releases if not release.committed)

        removed: list[str] = []
        for release in stale:
            if release.version in keep:
                continue
            try:
                shutil.rmtree(release.path)
            except OSError as exc:
                logger.warning("Failed to remove old release %s: %s", release.version, exc)
                continue
            removed.append(release.version)

        if removed:
            logger.info("Cleaned up old releases: %s", ", ".join(removed))
        return removed

    def _read_pointer(self, name: str) -> str | None:
        pointer = self.workdir / name
        try:
            target = os.readlink(pointer)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise DeploymentError(
                operation="read_pointer",
                message=f"'{pointer}' is not a release pointer: {exc}",
            ) from exc
        return Path(target).name or None

    def _repoint(self, name: str, version: str) -> None:
        pointer = self.workdir / name
        target = Path(RELEASES_DIR_NAME) / version
        tmp_pointer = self.workdir / f".{name}.{os.getpid()}.tmp"
        if tmp_pointer.is_symlink() or tmp_pointer.exists():
            tmp_pointer.unlink()
        tmp_pointer.symlink_to(target, target_is_directory=True)
        os.replace(tmp_pointer, pointer)
        logger.debug("Pointer %s -> %s", name, target)
