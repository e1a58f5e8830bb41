"""Logging setup for instasocial.

Enable debug output by setting INSTASOCIAL_DEBUG=1. In debug mode messages are
also written to ~/.instasocial_debug.log, since Textual captures stdout/stderr
while the UI is running.
"""
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import DEBUG_LOG_FILE

LOGGER_NAME = "instasocial"
FORMAT = "[%(name)s] %(levelname)s: %(message)s"


def setup_logging(debug: bool = False, log_file: Optional[Path] = DEBUG_LOG_FILE) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    level = logging.DEBUG if debug else logging.WARNING
    logger.setLevel(level)
    fmt = logging.Formatter(FORMAT)

    stream = logging.StreamHandler(sys.stderr)
    stream.setLevel(level)
    stream.setFormatter(fmt)
    logger.addHandler(stream)

    if debug and log_file is not None:
        try:
            fh = logging.FileHandler(log_file, encoding="utf-8")
            fh.setLevel(level)
            fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
            logger.addHandler(fh)
        except OSError:
            logger.warning("could not open debug log file %s", log_file)

    return logger
