"""Boolean environment flags."""

TRUTHY_VALUES = frozenset({"y", "yes", "1", "t", "true"})


def is_truthy(value: str | None) -> bool:
    """Whether an environment value is one of y/yes/1/t/true (any case)."""
    return value is not None and value.strip().lower() in TRUTHY_VALUES
