"""Compose fragment loading, merging and resolution.

Fragments are read, interpolated and merged once, at generation time, so a
generated artifact is reproducible regardless of later environment drift on
the machine that produced it. The resolved definition is written into each
release directory and must not refer to files next to the fragments.
"""

from __future__ import annotations

import copy
import logging
import os
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from holdfast.config.defaults import DOTENV_FILE_NAME
from holdfast.config.env_loader import (
    build_interpolation_env,
    load_env_file,
    substitute_env_vars,
)
from holdfast.lib.errors import ConfigError, FileNotFoundError

logger = logging.getLogger(__name__)

# Sequences that Compose concatenates (de-duplicated) instead of replacing
MERGED_SEQUENCE_KEYS = frozenset(
    {
        "ports",
        "expose",
        "volumes",
        "dns",
        "dns_search",
        "extra_hosts",
        "env_file",
        "cap_add",
        "cap_drop",
        "devices",
        "secrets",
        "configs",
    }
)

# Keys accepting either "KEY=VALUE" lists or mappings
MAPPING_OR_LIST_KEYS = frozenset({"environment", "labels"})

# Never inherited through extends
EXTENDS_EXCLUDED_KEYS = ("depends_on", "volumes_from")

_PROJECT_NAME_INVALID = re.compile(r"[^a-z0-9_-]")


@dataclass
class ResolvedDefinition:
    """A merged, fully interpolated application definition.

    Attributes:
        document: Parsed compose document
        sources: Fragment paths in merge order
    """

    document: dict[str, Any]
    sources: list[Path] = field(default_factory=list)

    @property
    def project_name(self) -> str:
        return str(self.document.get("name", ""))

    @property
    def services(self) -> dict[str, dict[str, Any]]:
        return self.document.get("services") or {}

    @property
    def service_names(self) -> list[str]:
        return sorted(self.services)

    def to_yaml(self) -> str:
        """Serialize the definition as written into each release.

        Values are already interpolated, so every ``$`` is escaped for the
        second interpolation pass the engine applies on the target host.
        """
        return yaml.safe_dump(
            _escape_interpolation(self.document),
            sort_keys=False,
            default_flow_style=False,
        )


def normalize_project_name(name: str) -> str:
    """Normalize a name the way Compose derives project names."""
    normalized = _PROJECT_NAME_INVALID.sub("", name.lower())
    return normalized.lstrip("_-")


def _to_mapping(value: Any) -> dict[str, Any]:
    if isinstance(value, Mapping):
        return dict(value)
    result: dict[str, Any] = {}
    for item in value or []:
        key, sep, item_value = str(item).partition("=")
        result[key] = item_value if sep else None
    return result


def _merge_sequences(base: list[Any], override: list[Any]) -> list[Any]:
    merged = list(base)
    for item in override:
        if item not in merged:
            merged.append(item)
    return merged


def merge_documents(base: dict[str, Any], override: Mapping[str, Any]) -> None:
    """Merge ``override`` into ``base`` in place using Compose rules.

    Mappings merge recursively, list-form ``environment``/``labels`` are
    normalized to mappings, sequences in ``MERGED_SEQUENCE_KEYS`` are
    concatenated and any other value is replaced.
    """
    for key, override_value in override.items():
        base_value = base.get(key)

        if key in MAPPING_OR_LIST_KEYS and key in base:
            merged = _to_mapping(base_value)
            merged.update(_to_mapping(override_value))
            base[key] = merged
        elif isinstance(base_value, dict) and isinstance(override_value, Mapping):
            merge_documents(base_value, override_value)
        elif (
            key in MERGED_SEQUENCE_KEYS
            and isinstance(base_value, list)
            and isinstance(override_value, list)
        ):
            base[key] = _merge_sequences(base_value, override_value)
        else:
            base[key] = override_value


def resolve_path(value: str, base_dir: Path) -> str:
    """Absolute form of a compose path relative to ``base_dir``."""
    expanded = os.path.expanduser(value)
    if os.path.isabs(expanded):
        return os.path.normpath(expanded)
    return os.path.normpath(os.path.join(base_dir, expanded))


def _is_remote_context(context: str) -> bool:
    return "://" in context or context.startswith("git@")


def _include_paths(include: Any) -> list[str]:
    if include is None:
        return []
    if isinstance(include, (str, Mapping)):
        include = [include]
    paths: list[str] = []
    for entry in include:
        if isinstance(entry, Mapping):
            entry = entry.get("path")
        if isinstance(entry, str):
            paths.append(entry)
        elif isinstance(entry, list):
            paths.extend(str(item) for item in entry)
        else:
            raise ConfigError(field="include", message=f"Invalid include entry {entry!r}")
    return paths


def _absolutize_volume(volume: Any, base_dir: Path) -> Any:
    if isinstance(volume, str):
        source, sep, rest = volume.partition(":")
        if sep and source.startswith((".", "~")):
            return f"{resolve_path(source, base_dir)}:{rest}"
        return volume
    if isinstance(volume, Mapping) and volume.get("type") == "bind" and volume.get("source"):
        resolved = dict(volume)
        resolved["source"] = resolve_path(str(volume["source"]), base_dir)
        return resolved
    return volume


def _absolutize_build(build: Any, base_dir: Path) -> Any:
    if isinstance(build, str):
        return build if _is_remote_context(build) else resolve_path(build, base_dir)
    if isinstance(build, Mapping):
        resolved = dict(build)
        context = str(build.get("context") or ".")
        if not _is_remote_context(context):
            resolved["context"] = resolve_path(context, base_dir)
        return resolved
    return build


def _normalize_env_files(env_file: Any, base_dir: Path) -> list[dict[str, Any]]:
    entries = [env_file] if isinstance(env_file, (str, Mapping)) else list(env_file or [])
    normalized: list[dict[str, Any]] = []
    for entry in entries:
        if isinstance(entry, Mapping):
            path, required = entry.get("path"), entry.get("required", True)
        else:
            path, required = entry, True
        if not path:
            raise ConfigError(field="env_file", message=f"Invalid env_file entry {entry!r}")
        normalized.append(
            {"path": resolve_path(str(path), base_dir), "required": bool(required)}
        )
    return normalized


def _absolutize_paths(fragment: dict[str, Any], base_dir: Path) -> None:
    """Rewrite host paths in ``fragment`` relative to ``base_dir``, in place."""
    for service in (fragment.get("services") or {}).values():
        if not isinstance(service, dict):
            continue
        if "build" in service:
            service["build"] = _absolutize_build(service["build"], base_dir)
        if "env_file" in service:
            service["env_file"] = _normalize_env_files(service["env_file"], base_dir)
        if isinstance(service.get("volumes"), list):
            service["volumes"] = [
                _absolutize_volume(volume, base_dir) for volume in service["volumes"]
            ]

    for section in ("secrets", "configs"):
        for entry in (fragment.get(section) or {}).values():
            if isinstance(entry, dict) and entry.get("file"):
                entry["file"] = resolve_path(str(entry["file"]), base_dir)


def _inline_env_files(service: dict[str, Any], env: Mapping[str, str]) -> None:
    """Replace ``env_file`` with its values, ``environment`` taking precedence.

    Raises:
        FileNotFoundError: If a required env file does not exist
    """
    env_files = service.pop("env_file", None)
    if not env_files:
        return

    values: dict[str, Any] = {}
    for entry in env_files:
        path = Path(entry["path"])
        if not path.is_file():
            if entry["required"]:
                raise FileNotFoundError(str(path), "Referenced by env_file.")
            logger.debug("Skipping optional env_file %s", path)
            continue
        for key, value in load_env_file(path, keep_unset=True).items():
            if value is None:
                if key in env:
                    values[key] = env[key]
                continue
            values[key] = value

    values.update(_to_mapping(service.get("environment")))
    service["environment"] = values


def _escape_interpolation(value: Any) -> Any:
    """Escape ``$`` so the engine's own interpolation leaves values intact."""
    if isinstance(value, str):
        return value.replace("$", "$$")
    if isinstance(value, dict):
        return {key: _escape_interpolation(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_escape_interpolation(item) for item in value]
    return value


class ComposeLoader:
    """Loads and resolves compose fragments into one definition.

    The result depends on no file outside itself: relative paths are made
    absolute, ``env_file`` entries are inlined into ``environment`` and
    ``include``/``extends`` are expanded. Paths in the fragments given on the
    command line are relative to the first fragment's directory; paths in
    included or extended files are relative to those files.

    Args:
        environ: Variables for interpolation; defaults to the process
            environment layered over the ``.env`` next to the first fragment
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ

    def load(
        self,
        compose_files: Sequence[str | Path],
        project_name: str | None = None,
        variables: Mapping[str, str] | None = None,
    ) -> ResolvedDefinition:
        """Merge ``compose_files`` in order and resolve the result.

        Args:
            compose_files: Fragments in merge order
            project_name: Overrides the derived project name
            variables: Interpolation variables taking precedence over the
                environment

        Raises:
            ConfigError: If no fragment is given, a fragment is not a YAML
                mapping, interpolation fails, ``extends`` cannot be resolved
                or the result has no services
            FileNotFoundError: If a fragment or required env file does not exist
        """
        if not compose_files:
            raise ConfigError(
                field="compose_files", message="At least one compose file is required"
            )

        paths = [Path(path) for path in compose_files]
        env = self._environment(paths[0])
        if variables:
            env.update(variables)
        project_dir = paths[0].resolve().parent

        document: dict[str, Any] = {}
        for path in paths:
            logger.debug("Merging compose fragment %s", path)
            merge_documents(document, self._load_file(path, env, project_dir))

        if not document.get("services"):
            raise ConfigError(
                field="services",
                message="No services defined in compose configuration",
            )
        for service in document["services"].values():
            if isinstance(service, dict):
                _inline_env_files(service, env)

        name = project_name or document.get("name") or project_dir.name
        normalized = normalize_project_name(str(name))
        if not normalized:
            raise ConfigError(
                field="name",
                message=f"Cannot derive a valid compose project name from {name!r}",
            )
        # Keep "name" first in the serialized document
        resolved = {"name": normalized}
        resolved.update({k: v for k, v in document.items() if k != "name"})

        return ResolvedDefinition(document=resolved, sources=paths)

    def _environment(self, first_fragment: Path) -> dict[str, str]:
        if self._environ is not None:
            return dict(self._environ)
        return build_interpolation_env(first_fragment.parent / DOTENV_FILE_NAME)

    def _load_file(
        self,
        path: Path,
        env: Mapping[str, str],
        base_dir: Path,
        chain: frozenset[Path] = frozenset(),
    ) -> dict[str, Any]:
        """Read one file with its includes, resolving paths against ``base_dir``."""
        key = path.resolve()
        if key in chain:
            raise ConfigError(
                field="include", message=f"Circular include or extends of {path}"
            )
        chain = chain | {key}

        fragment = self._read_fragment(path, env)
        document: dict[str, Any] = {}
        for include in _include_paths(fragment.pop("include", None)):
            included = Path(resolve_path(include, path.resolve().parent))
            logger.debug("Including compose file %s", included)
            merge_documents(
                document, self._load_file(included, env, included.parent, chain)
            )

        _absolutize_paths(fragment, base_dir)
        services = fragment.get("services")
        if isinstance(services, dict):
            fragment["services"] = {
                name: self._extend_service(name, services, path, env, chain)
                for name in services
            }
        merge_documents(document, fragment)
        return document

    def _extend_service(
        self,
        name: str,
        services: Mapping[str, Any],
        path: Path,
        env: Mapping[str, str],
        chain: frozenset[Path],
        seen: frozenset[str] = frozenset(),
    ) -> dict[str, Any]:
        service = dict(services.get(name) or {})
        extends = service.pop("extends", None)
        if extends is None:
            return service
        if name in seen:
            raise ConfigError(
                field="extends",
                message=f"Circular extends of service '{name}' in {path}",
            )
        if isinstance(extends, str):
            extends = {"service": extends}

        base_name = extends.get("service")
        base_path = path.resolve()
        if extends.get("file"):
            base_path = Path(resolve_path(str(extends["file"]), path.resolve().parent))
        if base_path != path.resolve():
            base_services = (
                self._load_file(base_path, env, base_path.parent, chain).get("services")
                or {}
            )
            base = (
                dict(base_services[base_name] or {})
                if base_name in base_services
                else None
            )
        else:
            base = (
                self._extend_service(base_name, services, path, env, chain, seen | {name})
                if base_name in services
                else None
            )
        if base is None:
            raise ConfigError(
                field="extends",
                message=f"Service '{name}' extends unknown service '{base_name}'",
            )

        for key in EXTENDS_EXCLUDED_KEYS:
            base.pop(key, None)
        merged = copy.deepcopy(base)
        merge_documents(merged, service)
        return merged

    @staticmethod
    def _read_fragment(path: Path, env: Mapping[str, str]) -> dict[str, Any]:
        if not path.is_file():
            raise FileNotFoundError(
                str(path), "Check the --compose-file / COMPOSE_FILES setting."
            )

        try:
            raw_text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(
                field="compose_files", message=f"Failed to read {path}: {exc}"
            ) from exc

        substituted = substitute_env_vars(raw_text, env)
        try:
            content = yaml.safe_load(substituted)
        except yaml.YAMLError as exc:
            raise ConfigError(
                field="compose_files", message=f"Invalid YAML in {path}: {exc}"
            ) from exc

        if content is None:
            return {}
        if not isinstance(content, dict):
            raise ConfigError(
                field="compose_files",
                message=f"{path} must contain a YAML mapping at the top level",
            )
        return content
