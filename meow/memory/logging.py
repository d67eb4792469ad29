"""Structured logging for the memory layer.

Index and search events are rendered as `key=value` lines on stderr, so
they never interleave with the assistant's replies on stdout.
"""

from __future__ import annotations

import logging
import sys

import structlog


def resolve_level(level: str | int) -> int:
    """Map a level name such as "WARNING" (or a numeric level) to its value."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def configure_logging(level: str | int = "WARNING") -> None:
    """Configure structlog for the memory layer.

    Loggers are not cached, so calling this again (e.g. when a second
    agent starts with another level) applies to existing module loggers.

    Args:
        level: Level name from Config.memory_log_level, or a numeric level.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(resolve_level(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str):
    """Named logger for a memory module."""
    return structlog.get_logger(name)
