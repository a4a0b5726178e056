"""Pydantic models for holdfast deploy plans and build configuration."""

from holdfast.models.build import BuildkitConfig
from holdfast.models.plan import DeploymentPlan, PlanRequest

__all__ = ["BuildkitConfig", "DeploymentPlan", "PlanRequest"]
