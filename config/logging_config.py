"""Structured logging configuration using structlog.

structlog's configuration is process-wide. Components that know the service
settings pass ``level``/``log_format`` and (re)configure it; components that
don't (WebSocket manager, relay, ad-hoc backends) just get a bound logger
under whatever configuration is active.
"""

import logging
import sys

import structlog

_active = {"level": "INFO", "format": "json", "configured": False}


def _renderer(log_format: str):
    if log_format == "console":
        return structlog.dev.ConsoleRenderer(colors=False)
    return structlog.processors.JSONRenderer()


def _configure(level: str, log_format: str):
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            _renderer(log_format),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        # Loggers are created before the API settings are known; keep them reconfigurable.
        cache_logger_on_first_use=False,
    )
    _active.update(level=level, format=log_format, configured=True)


def configure_logging(
    component: str,
    level: str | None = None,
    log_format: str | None = None,
    **context,
) -> structlog.BoundLogger:
    """Return a logger bound to ``component`` plus any extra context (e.g. ``session="abc"``).

    Reconfigures structlog only on first use or when the level or format changes.
    """
    wanted = (level or _active["level"], log_format or _active["format"])
    if not _active["configured"] or wanted != (_active["level"], _active["format"]):
        _configure(*wanted)
    return structlog.get_logger(component=component, **context)
