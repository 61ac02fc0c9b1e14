# logging.py

import logging
import os
from logging.handlers import RotatingFileHandler

import structlog
from structlog.contextvars import merge_contextvars

from Rollsmith.config import Settings


def _handler_level(name: str | None, fallback: int) -> int | None:
    if (name or "").upper() == "NONE":
        return None
    return getattr(logging, (name or "").upper(), fallback)


def setup_logging(settings: Settings | None = None) -> None:
    """Initialize structlog + stdlib logging.

    Defaults: INFO level, console on, file off. With settings, the console and
    rotating file handlers each take their own level (or NONE to disable).
    """
    level_name = (settings.logging_level if settings else "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.captureWarnings(True)

    # ProcessorFormatter renders BOTH structlog and stdlib/third-party logs as JSON
    processor_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            # Pull run-local context (e.g., run_id) from contextvars
            merge_contextvars,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        foreign_pre_chain=[
            structlog.processors.add_log_level,
            merge_contextvars,
        ],
    )

    root_handlers: list[logging.Handler] = []
    console_lvl = _handler_level(settings.logging_console if settings else level_name, level)
    if console_lvl is not None:
        ch = logging.StreamHandler()
        ch.setLevel(console_lvl)
        ch.setFormatter(processor_formatter)
        root_handlers.append(ch)

    file_lvl = _handler_level(settings.logging_file if settings else "NONE", level)
    if file_lvl is not None and settings is not None:
        path = settings.logging_file_path
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        fh = RotatingFileHandler(
            path,
            maxBytes=settings.logging_max_bytes,
            backupCount=settings.logging_backup_count,
        )
        fh.setLevel(file_lvl)
        fh.setFormatter(processor_formatter)
        root_handlers.append(fh)

    # force=True to replace any prior configuration
    logging.basicConfig(level=level, handlers=root_handlers, force=True)

    structlog.configure(
        processors=[
            merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            # Hand off to ProcessorFormatter on handlers
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
