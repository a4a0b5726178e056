"""On-disk layout of a deployment working directory.

    <workdir>/
        .deploy.lock
        current -> releases/<version>
        previous -> releases/<version>
        releases/<version>/compose.yml
        releases/<version>/release-date
"""

import re

LOCK_FILE_NAME = ".deploy.lock"
RELEASES_DIR_NAME = "releases"
CURRENT_POINTER = "current"
PREVIOUS_POINTER = "previous"
DEFINITION_FILE_NAME = "compose.yml"
RELEASE_DATE_MARKER = "release-date"
RELEASE_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SUTC"

DEFAULT_MAX_RETRIES = 30
DEFAULT_PROBE_INTERVAL = 5.0
DEFAULT_RETENTION = 3

# First character alphanumeric rules out ".", ".." and hidden names
VERSION_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")
VERSION_GRAMMAR = (
    "1-128 characters: letters, digits, '.', '_', '-', starting with a "
    "letter or digit"
)


def is_safe_version(version: str) -> bool:
    """Return True if ``version`` can be used as a release directory name."""
    return bool(VERSION_PATTERN.match(version))
