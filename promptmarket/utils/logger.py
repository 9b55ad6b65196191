"""Structured logging setup using structlog and rich.

Call ``setup_logging()`` once at application startup to configure every
logger in the process.  Afterwards, use ``get_logger(__name__)`` in each
module to obtain a bound structlog logger that writes human-readable
output to the terminal (via rich) and JSON lines to a rotating log file.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

_LOGGING_CONFIGURED: bool = False

# Overridable with the PROMPTMARKET_LOG_DIR environment variable.
_DEFAULT_LOG_DIR = Path(__file__).resolve().parents[2] / "data" / "logs"
_LOG_FILE_NAME = "promptmarket.log"
_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
_BACKUP_COUNT = 5


def _ensure_log_dir(log_dir: Path) -> Path:
    """Create the log directory if it does not already exist."""
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
        ),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def setup_logging(log_level: str = "INFO", log_dir: str | Path | None = None) -> None:
    """Configure structlog, stdlib logging, and all handlers.

    Idempotent: only the first call has any effect.

    Parameters
    ----------
    log_level:
        Root log level as a string (``DEBUG``, ``INFO``, etc.).
    log_dir:
        Directory for the rotating log file.  Falls back to
        ``PROMPTMARKET_LOG_DIR`` and then to ``<project>/data/logs``.
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    if _LOGGING_CONFIGURED:
        return

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    if log_dir is None:
        log_dir = os.environ.get("PROMPTMARKET_LOG_DIR", str(_DEFAULT_LOG_DIR))
    log_file = _ensure_log_dir(Path(log_dir)) / _LOG_FILE_NAME

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    shared_processors = _shared_processors()

    # Console: rich, human readable.
    console = Console(stderr=True, width=140)
    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=True,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        markup=False,
        log_time_format="[%Y-%m-%d %H:%M:%S]",
    )
    rich_handler.setLevel(numeric_level)
    rich_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=True),
            foreign_pre_chain=shared_processors,
        ),
    )
    root_logger.addHandler(rich_handler)

    # File: JSON lines, plain console rendering when attached to a terminal.
    file_handler = RotatingFileHandler(
        filename=str(log_file),
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(numeric_level)
    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=False)
            if sys.stderr.isatty()
            else structlog.processors.JSONRenderer(),
            foreign_pre_chain=shared_processors,
        ),
    )
    root_logger.addHandler(file_handler)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    _LOGGING_CONFIGURED = True


def get_logger(name: str, **initial_binds: Any) -> structlog.stdlib.BoundLogger:
    """Return a *bound* structlog logger for *name*.

    Parameters
    ----------
    name:
        Typically ``__name__`` of the calling module.
    **initial_binds:
        Key-value pairs permanently bound to the logger
        (e.g. ``component="workflow"``).
    """
    if not _LOGGING_CONFIGURED:
        setup_logging()
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    if initial_binds:
        logger = logger.bind(**initial_binds)
    return logger
