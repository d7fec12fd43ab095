"""Logging configuration using loguru.

The queue and hook modules log through loguru directly; the gateway adapter
and channel SDKs use stdlib ``logging``, which is routed into the same sink
by ``_InterceptHandler``.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from typing import TextIO

    from chatgate.inbound.settings import ChatgateSettings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Stdlib loggers capped at WARNING regardless of the configured level.
QUIET_LOGGERS = ("asyncio",)


class _InterceptHandler(logging.Handler):
    """Forward stdlib records to loguru at the original call-site."""

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

        logger.bind(stdlib_logger=record.name).opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(
    level: str = "INFO",
    *,
    serialize: bool = False,
    sink: TextIO | None = None,
) -> int:
    """Make loguru the only logging sink and return its handler id.

    ``serialize=True`` emits one JSON object per record instead of the
    coloured text format.  *sink* defaults to stderr so that stdout stays
    free for batch output.
    """
    level = level.upper()

    logger.remove()
    handler_id = logger.add(
        sink or sys.stderr,
        level=level,
        format=LOG_FORMAT,
        serialize=serialize,
        colorize=None if sink is None else False,
    )

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug("Logging initialised (level={}, serialize={})", level, serialize)
    return handler_id


def setup_logging_from_settings(settings: ChatgateSettings, *, sink: TextIO | None = None) -> int:
    return setup_logging(settings.log_level, serialize=settings.log_json, sink=sink)
