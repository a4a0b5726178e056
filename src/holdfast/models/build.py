"""Pydantic model for the daemonless BuildKit runner."""

from __future__ import annotations

from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

from holdfast.lib.flags import is_truthy

# Environment variable to field name mapping
ENV_VAR_MAP = {
    "buildctl": "BUILDCTL",
    "buildkitd": "BUILDKITD",
    "rootlesskit": "ROOTLESSKIT",
    "xdg_runtime_dir": "XDG_RUNTIME_DIR",
    "connect_retries_max": "BUILDCTL_CONNECT_RETRIES_MAX",
    "buildkitd_flags": "BUILDKITD_FLAGS",
}


class BuildkitConfig(BaseModel):
    """Settings for running ``buildctl`` against an ephemeral buildkitd.

    Attributes:
        buildctl: buildctl executable
        buildkitd: buildkitd executable
        rootlesskit: rootlesskit executable used when not running as root
        xdg_runtime_dir: Runtime directory holding the rootless socket
        connect_retries_max: Readiness checks before giving up
        buildkitd_flags: Extra flags passed to buildkitd
        debug: Pass --debug to buildkitd and buildctl
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    buildctl: str = Field(..., min_length=1)
    buildkitd: str = Field(..., min_length=1)
    rootlesskit: str = Field(..., min_length=1)
    xdg_runtime_dir: str = Field(..., min_length=1)
    connect_retries_max: int = Field(default=20, ge=0)
    buildkitd_flags: str = Field(default="")
    debug: bool = Field(default=False)

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> BuildkitConfig:
        """Build the configuration from environment variables.

        Raises:
            pydantic.ValidationError: If a required variable is missing or empty
        """
        values: dict[str, object] = {}
        for field_name, env_name in ENV_VAR_MAP.items():
            if env_name in environ:
                values[field_name] = environ[env_name]
        values["debug"] = is_truthy(environ.get("DEBUG_BUILD"))
        return cls.model_validate(values)
