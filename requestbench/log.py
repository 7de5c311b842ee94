"""Logging configuration using loguru.

Intercepts stdlib logging so that uvicorn, httpx, sqlalchemy, etc. all
flow through loguru with a unified format.

The storage service logs with timestamps and call sites.  CLI commands use
the compact format, because their stdout carries the command's output and
log lines only need to say what went wrong.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

# httpx logs one INFO line per request; the send pipeline already logs its own.
NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "aiosqlite", "sqlalchemy.engine")

SERVICE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
COMPACT_FORMAT = "<level>{level}</level>: {message}"


class _InterceptHandler(logging.Handler):
    """Bridge stdlib logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _stderr_sink(message: str) -> None:
    # Looked up per message so a replaced sys.stderr (test runners, click) is honoured.
    sys.stderr.write(message)


def setup_logging(level: str = "INFO", *, compact: bool = False) -> None:
    """Configure loguru as the sole logging sink.

    Call this once at process startup (CLI entry or server lifespan).
    """
    level = level.upper()

    logger.remove()
    logger.add(
        _stderr_sink,
        level=level,
        format=COMPACT_FORMAT if compact else SERVICE_FORMAT,
        colorize=sys.stderr.isatty(),
    )

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug("Logging initialised (level={}, compact={})", level, compact)
