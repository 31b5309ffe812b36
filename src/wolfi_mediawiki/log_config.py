"""Logging configuration for the wolfi-mediawiki entry points.

Status lines for the operator go through rich consoles; the stdlib loggers
under ``wolfi_mediawiki.*`` carry the detail and are written to a log file.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_initialized = False


def default_log_dir() -> Path:
    return Path(os.environ.get(
        "WOLFI_MW_LOG_DIR", str(Path(tempfile.gettempdir()) / "wolfi-mediawiki-logs")
    ))


def setup_logging(
    *,
    log_dir: Optional[Path] = None,
    level: str = "INFO",
    verbose: bool = False,
) -> Path:
    """Attach a file handler (and a stderr handler when *verbose*) once.

    Returns the log file path.
    """
    global _initialized

    log_dir = log_dir or default_log_dir()
    log_path = log_dir / "pipeline.log"

    logger = logging.getLogger("wolfi_mediawiki")
    logger.setLevel(logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO))

    if _initialized:
        return log_path

    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)

    if verbose:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(stream_handler)

    _initialized = True
    return log_path
