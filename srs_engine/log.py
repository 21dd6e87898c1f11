"""Logging setup for applications embedding the engine.

The library modules only call ``structlog.get_logger``; nothing is configured
on import. Hosts call :func:`configure_logging` once at startup.
"""

import logging

import structlog


def configure_logging(level: str = "INFO", json: bool = True) -> None:
    """Initialise stdlib logging at *level* and route structlog through it.

    Events carry an ISO timestamp and are rendered as JSON, or as coloured
    key-value lines when *json* is ``False``.
    """

    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO))
    processors = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
