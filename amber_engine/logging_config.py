"""Logging setup for hosts embedding the engine.

The engine logs through the ``amber_engine`` logger and never configures
handlers on import. Hosts that want console output call ``configure_logging``.
"""

from __future__ import annotations

import logging
import time

LOGGER_NAME = "amber_engine"


def configure_logging(verbose: bool = False) -> logging.Logger:
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    if not logger.handlers:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%SZ",
        )
        # Timestamps carry a Z suffix, so render them in UTC.
        formatter.converter = time.gmtime
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger
