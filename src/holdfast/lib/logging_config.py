"""Logging configuration shared by the CLI and generated artifacts.

Only the standard library is used here; the module is bundled into deploy
artifacts together with the runtime package.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
VERBOSE_LOG_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s:%(lineno)d] - "
    "%(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Handlers installed by setup_logging, so repeated calls replace them
_installed_handlers: list[logging.Handler] = []


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure the holdfast logger hierarchy.

    Args:
        verbose: Enable DEBUG level output with function/line information
        quiet: Only show warnings and errors
    """
    if verbose:
        level = logging.DEBUG
        fmt = VERBOSE_LOG_FORMAT
    elif quiet:
        level = logging.WARNING
        fmt = LOG_FORMAT
    else:
        level = logging.INFO
        fmt = LOG_FORMAT

    logger = logging.getLogger("holdfast")
    for handler in _installed_handlers:
        logger.removeHandler(handler)
    _installed_handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level)
    _installed_handlers.append(handler)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger within the holdfast hierarchy."""
    return logging.getLogger(name)
