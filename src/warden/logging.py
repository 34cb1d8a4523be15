"""
Logging configuration.

Provides a single entry point for configuring structured logging. Child
process output, scheduler decisions and workflow steps all go through the
same structlog pipeline, so one stream on stderr tells the whole story of a
run.

Configuration is resolved from arguments first, then environment:
- WARDEN_LOG_LEVEL: DEBUG | INFO | WARNING | ERROR (default: INFO)
- WARDEN_LOG_FORMAT: json | console (default: console)

Usage:
    from warden.logging import configure_logging, get_logger

    configure_logging(level="DEBUG")
    log = get_logger(__name__)
    log.info("backup.started", repo="s3:bucket/app")
"""

import logging
import os
import sys
from typing import Any, Literal

import structlog
from structlog.types import Processor

# Track if logging has been configured
_configured = False


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
    force: bool = False,
) -> None:
    """
    Configure structured logging for the process.

    Should be called once at startup (the CLI does it). Subsequent calls are
    no-ops unless force=True.

    Args:
        level: Log level (overrides WARDEN_LOG_LEVEL env var)
        format: Output format (overrides WARDEN_LOG_FORMAT env var)
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    log_level = (level or os.environ.get("WARDEN_LOG_LEVEL", "INFO")).upper()
    log_format = (format or os.environ.get("WARDEN_LOG_FORMAT", "console")).lower()

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure stdlib logging to match
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level),
        force=True,
    )
    logging.getLogger("warden").setLevel(getattr(logging, log_level))

    _configured = True


def get_logger(name: str | None = None, **initial: Any) -> Any:
    """Return a structlog logger, optionally pre-bound with ``initial`` fields."""
    log = structlog.get_logger(name)
    if initial:
        log = log.bind(**initial)
    return log


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured
