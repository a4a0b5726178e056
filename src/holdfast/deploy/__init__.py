"""holdfast deploy plan compilation.

This package validates deploy requests, resolves compose definitions,
pins image digests and renders self-contained deploy artifacts.
"""

from holdfast.deploy.artifact import ArtifactResult, render_main, write_artifact
from holdfast.deploy.compiler import CompiledPlan, PlanCompiler
from holdfast.deploy.pinning import ImageDigestResolver, PinResult

__all__ = [
    "ArtifactResult",
    "CompiledPlan",
    "ImageDigestResolver",
    "PinResult",
    "PlanCompiler",
    "render_main",
    "write_artifact",
]
