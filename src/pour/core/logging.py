"""Structured logging for pour.

Events go to <POUR_HOME>/logs/pour.log as JSON lines. With --verbose they
are also rendered to stderr.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog
from structlog.types import FilteringBoundLogger

LOG_FILE_NAME = "pour.log"

_CONFIGURED = False
_HANDLERS: list[logging.Handler] = []


def _drop_none(logger, method_name: str, event_dict: dict) -> dict:
    return {k: v for k, v in event_dict.items() if v is not None}


def _log_file() -> Path:
    home = Path(os.environ.get("POUR_HOME", Path.home() / ".pour"))
    log_dir = home / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / LOG_FILE_NAME


def configure_logging(
    level: str | None = None, enable_console: bool = False, force: bool = False
) -> None:
    """Configure structlog over the stdlib root logger.

    The level defaults to $POUR_LOG_LEVEL, then INFO. Only the first call
    takes effect unless force is set; the CLI forces once options are parsed.
    """
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    for handler in _HANDLERS:
        logging.root.removeHandler(handler)
        handler.close()
    _HANDLERS.clear()

    level = (level or os.environ.get("POUR_LOG_LEVEL", "INFO")).upper()
    numeric_level = getattr(logging, level, logging.INFO)

    handlers: list[logging.Handler] = [
        RotatingFileHandler(_log_file(), maxBytes=2_000_000, backupCount=2)
    ]
    if enable_console:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(logging.Formatter("%(message)s"))
        handlers.append(console)
        renderers = [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=[
            _drop_none,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            *renderers,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.root.setLevel(numeric_level)
    for handler in handlers:
        handler.setLevel(numeric_level)
        logging.root.addHandler(handler)
        _HANDLERS.append(handler)

    _CONFIGURED = True


def get_logger(name: str = "pour") -> FilteringBoundLogger:
    """A structlog logger; configures logging on first use.

    Events are snake_case names with keyword context, for example
    log.info("install_complete", package="wget", version="1.25.0").
    """
    if not _CONFIGURED:
        configure_logging()
    return structlog.get_logger(name)
