"""
Logging configuration module for MemoryMesh.

Configures structlog once per process. Output always goes to stderr because
stdout carries the MCP stdio transport.
"""

import logging
import sys

import structlog


def _renderer(log_format: str):
    if log_format == "json":
        return structlog.processors.JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(colors=False)


def configure_logging(level: str = "INFO", log_format: str = "console") -> None:
    """Configure structlog for the application.

    Args:
        level: Minimum level name, e.g. "INFO" or "DEBUG"; unknown names fall back to INFO
        log_format: "console" for human-readable lines, "json" for one object per line
    """
    level_value = logging.getLevelName(level.upper())
    if not isinstance(level_value, int):
        level_value = logging.INFO

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(log_format),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
