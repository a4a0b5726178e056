"""Pytest configuration and shared fixtures for holdfast tests."""

import os
import shutil
import tempfile
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest


@pytest.fixture
def temp_dir() -> Generator[Path]:
    """Create a temporary directory for test file operations.

    Yields:
        Path to temporary directory

    Cleanup:
        Automatically removes directory after test
    """
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def isolated_env() -> Generator[dict[str, str]]:
    """Provide isolated environment variables for testing.

    Saves current environment and restores after test.

    Yields:
        Dictionary of original environment variables

    Cleanup:
        Restores original environment after test
    """
    original_env = os.environ.copy()
    yield original_env
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Deterministic UTC clock advancing one minute per call."""
    start = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    ticks = iter(range(10_000))

    def _now() -> datetime:
        return start + timedelta(minutes=next(ticks))

    return _now


@pytest.fixture
def write_compose(tmp_path: Path) -> Callable[..., Path]:
    """Write a compose fragment into the test directory and return its path."""

    def _write(content: str, name: str = "compose.yml") -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write
