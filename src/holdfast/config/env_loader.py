"""Environment variable handling for compose fragments.

Substitution follows the Compose interpolation syntax:

- ``$$`` is a literal ``$``
- ``$VAR`` and ``${VAR}`` expand to the variable value
- ``${VAR:-default}`` uses ``default`` when VAR is unset or empty
- ``${VAR-default}`` uses ``default`` when VAR is unset
- ``${VAR:?message}`` / ``${VAR?message}`` fail with ``message``

An unset variable without a default is a configuration error: definitions
are resolved once at generation time and must not silently lose values.
"""

import os
import re
from collections.abc import Mapping
from pathlib import Path

from dotenv import dotenv_values

from holdfast.lib.errors import ConfigError
from holdfast.lib.flags import is_truthy

_INTERPOLATION_PATTERN = re.compile(
    r"""
    \$(?:
        (?P<escaped>\$)
      | (?P<named>[A-Za-z_][A-Za-z0-9_]*)
      | \{(?P<braced>[A-Za-z_][A-Za-z0-9_]*)
          (?:(?P<op>:-|-|:\?|\?)(?P<arg>[^}]*))?
        \}
      | (?P<invalid>)
    )
    """,
    re.VERBOSE,
)


def substitute_env_vars(text: str, env: Mapping[str, str] | None = None) -> str:
    """Expand Compose-style variable references in ``text``.

    Args:
        text: Raw document text
        env: Variables to use; defaults to the process environment

    Returns:
        Text with all references expanded

    Raises:
        ConfigError: If a variable is unset without default, a required
            variable is missing, or a reference is malformed

    Example:
        >>> substitute_env_vars("image: app:${TAG:-latest}", {})
        'image: app:latest'
    """
    variables = os.environ if env is None else env

    def _replace(match: re.Match[str]) -> str:
        if match.group("escaped") is not None:
            return "$"

        name = match.group("named") or match.group("braced")
        if name is None:
            snippet = text[match.start() : match.start() + 20]
            raise ConfigError(
                field="interpolation",
                message=f"Invalid interpolation format near {snippet!r}",
            )

        op = match.group("op")
        arg = match.group("arg") or ""
        value = variables.get(name)

        if op == ":-":
            return value if value else arg
        if op == "-":
            return value if value is not None else arg
        if op in (":?", "?"):
            missing = not value if op == ":?" else value is None
            if missing:
                raise ConfigError(
                    field=name,
                    message=arg or f"Required variable '{name}' is missing a value",
                )
            return value or ""

        if value is None:
            raise ConfigError(
                field=name,
                message=(
                    f"Environment variable '{name}' is not set. "
                    f"Set it or use ${{{name}:-default}} in the compose file."
                ),
            )
        return value

    return _INTERPOLATION_PATTERN.sub(_replace, text)


def load_env_file(path: Path, keep_unset: bool = False) -> dict[str, str | None]:
    """Read a dotenv file; a missing file yields no variables.

    Args:
        path: dotenv file
        keep_unset: Keep bare ``KEY`` lines as None instead of dropping them
    """
    if not path.is_file():
        return {}
    return {
        key: value
        for key, value in dotenv_values(path).items()
        if keep_unset or value is not None
    }


def build_interpolation_env(
    dotenv_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Merge dotenv values with the process environment (environment wins)."""
    env: dict[str, str] = {}
    if dotenv_path is not None:
        env.update(load_env_file(dotenv_path))
    env.update(os.environ if environ is None else environ)
    return env


def env_flag(name: str) -> bool:
    """Whether environment variable ``name`` holds a truthy value."""
    return is_truthy(os.environ.get(name))
