"""
utils/logging.py — structlog configuration for refresh workers.

Log lines go to stderr so that CLI output on stdout (``citypulse show``,
``citypulse status``) stays pipe-friendly. Output is JSON or console,
selected by settings.log_format. The CLI calls configure_logging() once.

Usage:
    from citypulse_pipeline.utils.logging import configure_logging

    configure_logging()
    log = structlog.get_logger(__name__).bind(dataset_id="crimeIncidents")
    log.info("page_fetched", offset=500, features=500)
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from citypulse_shared.config import settings

# httpx logs every request at INFO; page loops would drown the refresh events
_NOISY_LOGGERS = ("httpx", "httpcore")

_configured = False


def configure_logging(
    log_level: str | None = None,
    log_format: str | None = None,
    *,
    force: bool = False,
) -> None:
    """
    Configure structlog and stdlib logging for the process.

    Args:
        log_level:  Override settings.log_level ("DEBUG", "INFO", …).
        log_format: Override settings.log_format ("json" | "console").
        force:      Reconfigure even if already configured.
    """
    global _configured
    if _configured and not force:
        return

    level_name = (log_level or settings.log_level).upper()
    level = getattr(logging, level_name, logging.INFO)
    fmt = log_format or settings.log_format

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    _configured = True

