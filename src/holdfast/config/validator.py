"""Validation utilities for deploy request configuration."""

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from holdfast.lib.errors import ConfigError, ValidationError

# Pydantic error types that mean "the setting was not given at all"
_MISSING_ERROR_TYPES = frozenset({"missing", "string_too_short", "too_short"})


def flatten_pydantic_errors(exc: PydanticValidationError) -> list[str]:
    """Flatten Pydantic ValidationError into human-readable messages.

    Args:
        exc: Pydantic ValidationError exception

    Returns:
        List of human-readable error messages, one per field error

    Example:
        >>> from holdfast.models.plan import PlanRequest
        >>> try:
        ...     PlanRequest(version="../etc", compose_files=[], workdir="", probe="")
        ... except PydanticValidationError as e:
        ...     msgs = flatten_pydantic_errors(e)
    """
    errors: list[str] = []

    for error in exc.errors():
        field_path = _field_path(error)
        msg = error.get("msg", "Unknown error")

        if error.get("type", "") == "value_error":
            formatted = f"Field '{field_path}': {msg} (received: {error.get('input')!r})"
        else:
            formatted = f"Field '{field_path}': {msg}"

        errors.append(formatted)

    return errors if errors else ["Validation failed with unknown error"]


def to_holdfast_error(exc: PydanticValidationError) -> ConfigError | ValidationError:
    """Convert a pydantic failure into the matching holdfast exception.

    Missing or empty settings become ConfigError; anything else is a
    ValidationError carrying the first offending field and value.
    """
    errors = exc.errors()
    first = errors[0] if errors else {}
    field_path = _field_path(first)
    message = "; ".join(flatten_pydantic_errors(exc))

    if first.get("type") in _MISSING_ERROR_TYPES:
        return ConfigError(field=field_path, message=message)

    expected = str(first.get("ctx", {}).get("expected", "a valid value"))
    return ValidationError(
        field=field_path,
        message=message,
        expected=expected,
        actual=repr(first.get("input")),
    )


def _field_path(error: Any) -> str:
    loc = error.get("loc", ()) if error else ()
    return ".".join(str(item) for item in loc) if loc else "unknown"
