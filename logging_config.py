"""Logging configuration for the shift cycle tracker."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def setup_logging(level: str | None = None, log_file: str | None = None) -> None:
    """Set up logging from arguments or SHIFTCYCLE_LOG_LEVEL / SHIFTCYCLE_LOG_FILE."""
    global _configured
    if _configured:
        return

    level = level or os.environ.get("SHIFTCYCLE_LOG_LEVEL", "WARNING")
    log_file = log_file or os.environ.get("SHIFTCYCLE_LOG_FILE")

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    _configured = True
    logging.debug("Logging configured at %s", level.upper())
