"""
Loguru setup for the API process, the scheduler and the job entry points.

Every module logs through `get_logger(__name__)` and attaches structured
context with `.bind(...)`; stdlib loggers from uvicorn, SQLAlchemy, httpx
and APScheduler are routed into the same sinks.
"""

import logging
import sys
from typing import Any

from loguru import logger

from glintup.config import get_settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> | "
    "<level>{message}</level> | {extra}"
)
PLAIN_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]} | {message} | {extra}"

INTERCEPTED_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "sqlalchemy.engine",
    "httpx",
    "apscheduler",
)

# Access log lines that only matter when debugging
QUIET_PATHS = ("GET /health", "hub.challenge")


class InterceptHandler(logging.Handler):
    """Forward stdlib log records to loguru, keeping the original caller."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back  # type: ignore[assignment]
            depth += 1

        logger.bind(name=record.name).opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _drop_quiet_paths(record: dict[str, Any]) -> bool:
    message = record.get("message", "")
    return not any(path in message for path in QUIET_PATHS)


def setup_logging() -> None:
    """Install a single stderr sink; coloured DEBUG in debug mode, plain INFO otherwise."""
    debug = get_settings().debug

    logger.remove()
    logger.configure(extra={"name": "glintup"})

    if debug:
        logger.add(sys.stderr, level="DEBUG", format=CONSOLE_FORMAT, backtrace=True, diagnose=True)
    else:
        logger.add(
            sys.stderr,
            level="INFO",
            format=PLAIN_FORMAT,
            filter=_drop_quiet_paths,
            backtrace=True,
            diagnose=False,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in INTERCEPTED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False


def get_logger(name: str) -> Any:
    """Return the shared loguru logger bound to a module name."""
    return logger.bind(name=name)
