"""Logging configuration for netquality."""

import logging
import os
import sys

LOG_LEVEL_ENV_VAR = "NETQUALITY_LOG_LEVEL"

PACKAGE_LOGGER = "netquality"

# Probes run on their own threads, so the thread name tells them apart
LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s"

# Dependency loggers stay at this level whatever NETQUALITY_LOG_LEVEL says
THIRD_PARTY_LEVEL = logging.WARNING


def configure_logging() -> None:
    """Configure logging for the netquality package.

    NETQUALITY_LOG_LEVEL (case-insensitive, default INFO) sets the level of the
    ``netquality`` logger only. The root logger stays at WARNING so urllib3
    connection chatter does not drown probe output at DEBUG.

    Examples:
        $ NETQUALITY_LOG_LEVEL=DEBUG python -m netquality
        $ NETQUALITY_LOG_LEVEL=WARNING python -m netquality --json
    """
    level_name = os.environ.get(LOG_LEVEL_ENV_VAR, "INFO").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(
        level=THIRD_PARTY_LEVEL,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)

    logging.getLogger(__name__).debug("Logging configured: level=%s", logging.getLevelName(level))
