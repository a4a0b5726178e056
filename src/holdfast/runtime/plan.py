"""Deployment plan as seen by a generated artifact."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any

from holdfast.lib.errors import ConfigError
from holdfast.runtime.layout import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_PROBE_INTERVAL,
    DEFAULT_RETENTION,
    is_safe_version,
)

PLAN_SCHEMA_VERSION = 1

_REQUIRED_FIELDS = ("version", "workdir", "probe_target", "definition")


@dataclass(frozen=True)
class RuntimePlan:
    """Everything a deploy artifact needs, baked in at generation time."""

    version: str
    workdir: str
    probe_target: str
    definition: str
    project_name: str = ""
    max_retries: int = DEFAULT_MAX_RETRIES
    probe_interval: float = DEFAULT_PROBE_INTERVAL
    retention: int = DEFAULT_RETENTION
    services: list[str] = field(default_factory=list)
    generated_at: str = ""
    schema_version: int = PLAN_SCHEMA_VERSION

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuntimePlan:
        """Build a plan from its serialized form.

        Raises:
            ConfigError: If the payload is incomplete or from a newer schema
        """
        schema_version = data.get("schema_version", PLAN_SCHEMA_VERSION)
        if schema_version != PLAN_SCHEMA_VERSION:
            raise ConfigError(
                field="schema_version",
                message=f"Unsupported plan schema version: {schema_version}",
            )
        for name in _REQUIRED_FIELDS:
            if not data.get(name):
                raise ConfigError(field=name, message="Required plan field is empty")
        if not is_safe_version(data["version"]):
            raise ConfigError(
                field="version", message=f"Unsafe release version: {data['version']!r}"
            )

        known = set(cls.__dataclass_fields__)
        return cls(**{key: value for key, value in data.items() if key in known})

    @classmethod
    def from_json(cls, payload: str) -> RuntimePlan:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ConfigError(field="plan", message=f"Invalid plan JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(field="plan", message="Plan must be a JSON object")
        return cls.from_dict(data)

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2, sort_keys=True)
