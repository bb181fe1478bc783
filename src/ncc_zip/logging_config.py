from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    verbose: bool = False,
    logger_name: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure process-wide logging and return a scoped logger.

    Log records go to stderr by default; stdout carries the build summary.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=[logging.StreamHandler(stream or sys.stderr)],
        force=True,
    )
    logger = logging.getLogger(logger_name or "ncc_zip")
    logger.debug("Logging configured with level %s", logging.getLevelName(level))
    return logger
