"""Logging configuration for ks-controlplane.

Configures structlog on top of standard logging. The bootstrapper itself
logs through structlog; the server binaries it launches keep their own
stdout/stderr, so only its own events and those of its libraries pass
through here.
"""

import logging
import sys
from pathlib import Path

import structlog

# Library loggers that would otherwise log every readiness and health poll
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


def configure_logging(
    level: str = "info",
    log_file: str | Path | None = None,
    json_output: bool = False,
) -> None:
    """Configure logging for the bootstrapper.

    Called once by the ``ks-controlplane`` group before any command runs.

    Modes:
        Terminal: configure_logging(level) (stderr, human-readable)
        Service manager: configure_logging(level, json_output=True), one
            JSON object per line for journald or a log shipper
        File: configure_logging(level, log_file=path)

    Args:
        level: Log level (debug, info, warning, error, critical)
        log_file: Optional path to a log file instead of stderr
        json_output: If True, render events as JSON lines
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_file:
        handler: logging.Handler = logging.FileHandler(str(log_file))
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)

    logging.basicConfig(
        level=log_level,
        handlers=[handler],
        format="%(message)s",
        force=True,
    )

    # Polls run every second; keep library chatter out unless debugging
    library_level = logging.NOTSET if log_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    processors: list[structlog.types.Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger (typically for ``__name__``)."""
    return structlog.get_logger(name)
