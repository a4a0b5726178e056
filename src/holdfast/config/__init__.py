"""Configuration loading and resolution for deploy plans.

Main components:
- ComposeLoader: merge and resolve compose fragments
- Environment variable substitution (Compose ``${VAR}`` syntax)
- Validation helpers turning pydantic errors into holdfast errors
- Default values shared with the runtime
"""

from holdfast.config.env_loader import (
    env_flag,
    load_env_file,
    substitute_env_vars,
)
from holdfast.config.loader import ComposeLoader, ResolvedDefinition, merge_documents

__all__ = [
    "ComposeLoader",
    "ResolvedDefinition",
    "env_flag",
    "load_env_file",
    "merge_documents",
    "substitute_env_vars",
]
