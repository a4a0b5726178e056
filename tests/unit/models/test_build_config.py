"""Tests for the BuildKit runner configuration."""

from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from holdfast.models.build import BuildkitConfig

ENV = {
    "BUILDCTL": "buildctl",
    "BUILDKITD": "buildkitd",
    "ROOTLESSKIT": "rootlesskit",
    "XDG_RUNTIME_DIR": "/run/user/1000",
}


class TestBuildkitConfig:
    """Tests for BuildkitConfig.from_env."""

    def test_from_env_defaults(self) -> None:
        config = BuildkitConfig.from_env(ENV)

        assert config.buildctl == "buildctl"
        assert config.connect_retries_max == 20
        assert config.buildkitd_flags == ""
        assert config.debug is False

    def test_from_env_overrides(self) -> None:
        env = {
            **ENV,
            "BUILDCTL_CONNECT_RETRIES_MAX": "5",
            "BUILDKITD_FLAGS": "--oci-worker-no-process-sandbox",
            "DEBUG_BUILD": "true",
        }

        config = BuildkitConfig.from_env(env)

        assert config.connect_retries_max == 5
        assert config.buildkitd_flags == "--oci-worker-no-process-sandbox"
        assert config.debug is True

    @pytest.mark.parametrize("missing", ["BUILDCTL", "XDG_RUNTIME_DIR"])
    def test_required_variables(self, missing: str) -> None:
        env = {k: v for k, v in ENV.items() if k != missing}

        with pytest.raises(PydanticValidationError):
            BuildkitConfig.from_env(env)

    def test_empty_variable_rejected(self) -> None:
        with pytest.raises(PydanticValidationError):
            BuildkitConfig.from_env({**ENV, "BUILDKITD": ""})
