"""Structured logging setup"""

import logging
import sys
from typing import Optional

import structlog


def setup_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR)
        json_logs: Render JSON lines when True, human-readable console lines otherwise
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    # Logs go to stderr so CLI output on stdout stays machine-readable
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def get_logger(name: Optional[str] = None):
    """Get a structlog logger, optionally named"""
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()
