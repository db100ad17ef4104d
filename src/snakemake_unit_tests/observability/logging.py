"""Structured logging setup: structlog event dicts rendered through a stdlib handler."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from typing import Final, TextIO

import structlog

from snakemake_unit_tests.constants import LOG_FORMATS, LOG_LEVELS

_DEFAULT_LOGGER_NAME: Final[str] = "snakemake_unit_tests"


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for structured logging of one run."""

    level: int | str = "INFO"
    log_format: str = "console"
    logger_name: str = _DEFAULT_LOGGER_NAME
    stream: TextIO | None = field(default=None, compare=False)


@dataclass(slots=True)
class LoggingHandle:
    logger: logging.Logger
    handler: logging.Handler
    is_shutdown: bool = False

    def flush(self) -> None:
        self.handler.flush()

    def shutdown(self) -> None:
        if self.is_shutdown:
            return
        self.handler.flush()
        self.logger.removeHandler(self.handler)
        self.is_shutdown = True


def setup_logging(config: LoggingConfig | None = None) -> LoggingHandle:
    """Route every ``structlog.get_logger()`` call to one stream handler.

    Events are rendered as JSON lines (``json``) or key/value console text
    (``console``). Repeated calls replace the previous handler.
    """

    resolved = config if config is not None else LoggingConfig()
    level = _parse_log_level(resolved.level)
    if resolved.log_format not in LOG_FORMATS:
        raise ValueError(
            f"invalid log format {resolved.log_format!r}; expected one of: {', '.join(LOG_FORMATS)}"
        )

    renderer: structlog.types.Processor
    if resolved.log_format == "json":
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(resolved.stream if resolved.stream is not None else sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger(resolved.logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    logger.addHandler(handler)

    return LoggingHandle(logger=logger, handler=handler)


def _parse_log_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    normalized = level.strip().upper()
    if normalized not in LOG_LEVELS:
        raise ValueError(f"invalid log level {level!r}; expected one of: {', '.join(LOG_LEVELS)}")
    return int(logging.getLevelName(normalized))


__all__ = ["LoggingConfig", "LoggingHandle", "setup_logging"]
