"""Default configuration values for holdfast."""

from holdfast.runtime.layout import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_PROBE_INTERVAL,
    DEFAULT_RETENTION,
    DEFINITION_FILE_NAME,
    LOCK_FILE_NAME,
    RELEASE_DATE_MARKER,
    RELEASES_DIR_NAME,
)

# Environment variables read by `holdfast deploy generate`
ENV_VERSION = "VERSION"
ENV_COMPOSE_FILES = "COMPOSE_FILES"
ENV_WORKDIR = "WORKDIR"
ENV_PROBE = "HEALTHCHECK_PROBE"
ENV_MAX_RETRY = "MAX_RETRY"
ENV_NO_PIN = "NOLOCK_IMAGES"
ENV_PROJECT_NAME = "COMPOSE_PROJECT_NAME"
ENV_DEBUG = "DEBUG_DEPLOY"
ENV_DEBUG_DEPRECATED = "DEBUG"

# Name of the dotenv file read next to the first compose fragment
DOTENV_FILE_NAME = ".env"

ARTIFACT_PREFIX = "deploy."
ARTIFACT_SUFFIX = ".pyz"
ARTIFACT_INTERPRETER = "/usr/bin/env python3"

__all__ = [
    "ARTIFACT_INTERPRETER",
    "ARTIFACT_PREFIX",
    "ARTIFACT_SUFFIX",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_PROBE_INTERVAL",
    "DEFAULT_RETENTION",
    "DEFINITION_FILE_NAME",
    "DOTENV_FILE_NAME",
    "ENV_COMPOSE_FILES",
    "ENV_DEBUG",
    "ENV_DEBUG_DEPRECATED",
    "ENV_MAX_RETRY",
    "ENV_NO_PIN",
    "ENV_PROBE",
    "ENV_PROJECT_NAME",
    "ENV_VERSION",
    "ENV_WORKDIR",
    "LOCK_FILE_NAME",
    "RELEASES_DIR_NAME",
    "RELEASE_DATE_MARKER",
]
