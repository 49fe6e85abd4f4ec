"""Logging helpers for the knowledge hub services."""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

from knowledge_hub.config import load_settings

_LOG_FORMAT = "%(asctime)s | %(levelname)s | {service} | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_logging_configured = False
_logging_lock = threading.Lock()

_logger = logging.getLogger(__name__)


def configure_logging(service: str | None = None) -> None:
    """Configure process-wide logging from settings.

    Every line carries the service name, ``settings.server.service`` unless
    given.
    """
    global _logging_configured

    settings = load_settings()
    level = getattr(logging, settings.logging.level.upper(), logging.INFO)
    log_format = _LOG_FORMAT.format(service=service or settings.server.service)
    formatter = logging.Formatter(log_format, datefmt=_DATE_FORMAT)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [stream_handler]

    if settings.logging.file:
        try:
            Path(settings.logging.file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(settings.logging.file)
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)
        except OSError as exc:
            _logger.warning("Failed to open log file %s: %s", settings.logging.file, exc)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    # httpx logs every request at INFO; the request log middleware already covers it.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    if not _logging_configured:
        with _logging_lock:
            if not _logging_configured:
                configure_logging()
    return logging.getLogger(name)
