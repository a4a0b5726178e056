"""Unit tests for the holdfast build CLI commands."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from holdfast.cli.commands.build import build
from holdfast.lib.errors import SupervisorError

ENV = {
    "BUILDCTL": "buildctl",
    "BUILDKITD": "buildkitd",
    "ROOTLESSKIT": "rootlesskit",
    "XDG_RUNTIME_DIR": "/run/user/1000",
    "DEBUG_BUILD": None,
}


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner."""
    return CliRunner()


class TestBuildctl:
    """Tests for 'holdfast build buildctl'."""

    def test_passes_arguments_through(self, runner: CliRunner) -> None:
        with patch("holdfast.cli.commands.build.run_buildctl") as mock_run:
            mock_run.return_value = 0

            result = runner.invoke(
                build,
                ["buildctl", "build", "--frontend", "dockerfile.v0", "--local", "context=."],
                env=ENV,
            )

        assert result.exit_code == 0, result.output
        config, args = mock_run.call_args[0]
        assert config.xdg_runtime_dir == "/run/user/1000"
        assert list(args) == [
            "build",
            "--frontend",
            "dockerfile.v0",
            "--local",
            "context=.",
        ]

    def test_exit_code_propagates(self, runner: CliRunner) -> None:
        with patch("holdfast.cli.commands.build.run_buildctl", return_value=7):
            result = runner.invoke(build, ["buildctl", "du"], env=ENV)

        assert result.exit_code == 7

    def test_missing_configuration(self, runner: CliRunner) -> None:
        env = {**ENV, "BUILDKITD": None}

        with patch("holdfast.cli.commands.build.run_buildctl") as mock_run:
            result = runner.invoke(build, ["buildctl", "du"], env=env)

        assert result.exit_code == 2
        assert "BUILDKITD" in result.output
        mock_run.assert_not_called()

    def test_daemon_not_ready(self, runner: CliRunner) -> None:
        with patch(
            "holdfast.cli.commands.build.run_buildctl",
            side_effect=SupervisorError("could not connect after 20 trials"),
        ):
            result = runner.invoke(build, ["buildctl", "du"], env=ENV)

        assert result.exit_code == 1
        assert "buildkitd did not become ready" in result.output
