"""Logging helpers for the HR workflow engine."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from hr_workflow.config import load_settings

_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    """Configure logging to stderr and, when set, the configured log file.

    ``level`` overrides the configured level, e.g. for a CLI ``--verbose``.
    """
    settings = load_settings()
    level_name = (level or settings.logging.level).upper()
    resolved = getattr(logging, level_name, logging.INFO)
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)

    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if settings.logging.file:
        try:
            Path(settings.logging.file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(settings.logging.file)
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)
        except OSError as exc:
            _logger.warning("Failed to open log file %s: %s", settings.logging.file, exc)

    logging.basicConfig(level=resolved, handlers=handlers, force=True)
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(max(resolved, logging.WARNING))

