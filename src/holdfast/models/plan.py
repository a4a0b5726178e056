"""Pydantic models for deploy plan generation.

``PlanRequest`` holds the caller-supplied inputs of ``holdfast deploy
generate``; ``DeploymentPlan`` is the resolved plan serialized into an
artifact.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

from holdfast.runtime.layout import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_PROBE_INTERVAL,
    DEFAULT_RETENTION,
    VERSION_GRAMMAR,
    is_safe_version,
)
from holdfast.runtime.plan import PLAN_SCHEMA_VERSION, RuntimePlan


def _validate_version(v: str) -> str:
    if not is_safe_version(v):
        raise ValueError(f"Invalid release version {v!r}. Expected {VERSION_GRAMMAR}")
    return v


class PlanRequest(BaseModel):
    """Inputs for compiling a deploy artifact.

    Attributes:
        version: Caller-approved release version
        compose_files: Compose fragments, merged in order
        workdir: Deployment working directory on the target host
        probe: Service whose health gates the commit
        max_retries: Health status reads before rolling back
        pin_digests: Pin image references to registry digests
        project_name: Compose project name override
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    version: str = Field(..., min_length=1, description="Release version")
    compose_files: list[str] = Field(
        ..., min_length=1, description="Compose fragment paths"
    )
    workdir: str = Field(..., min_length=1, description="Target working directory")
    probe: str = Field(..., min_length=1, description="Probe target service")
    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES, ge=1, description="Health check attempts"
    )
    pin_digests: bool = Field(default=True, description="Pin image digests")
    project_name: str | None = Field(
        default=None, description="Compose project name override"
    )

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate the version is usable as a release directory name."""
        return _validate_version(v)

    @field_validator("compose_files")
    @classmethod
    def validate_compose_files(cls, v: list[str]) -> list[str]:
        """Reject empty fragment entries."""
        files = [item.strip() for item in v if item and item.strip()]
        if not files:
            raise ValueError("At least one compose file is required")
        return files

    @field_validator("workdir")
    @classmethod
    def validate_workdir(cls, v: str) -> str:
        """Require an absolute working directory on the target host."""
        if not v.startswith("/"):
            raise ValueError(f"Working directory must be an absolute path: {v}")
        return v.rstrip("/") or "/"


class DeploymentPlan(BaseModel):
    """Resolved plan baked into a deploy artifact."""

    model_config = ConfigDict(extra="forbid")

    schema_version: int = Field(default=PLAN_SCHEMA_VERSION)
    version: str
    workdir: str
    project_name: str
    probe_target: str
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=1)
    probe_interval: float = Field(default=DEFAULT_PROBE_INTERVAL, gt=0)
    retention: int = Field(default=DEFAULT_RETENTION, ge=1)
    services: list[str] = Field(default_factory=list)
    definition: str = Field(..., min_length=1)
    generated_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate the version is usable as a release directory name."""
        return _validate_version(v)

    def to_runtime(self) -> RuntimePlan:
        """Return the standard-library view used inside the artifact."""
        return RuntimePlan.from_dict(self.model_dump(mode="json"))

    def to_json(self) -> str:
        """Serialize the plan for embedding."""
        return self.model_dump_json(indent=2)
