"""Structured logging setup shared by the processor and the API."""

import logging
import sys

import structlog

# Chatty client libraries; their request lines duplicate ours
NOISY_LOGGERS = ("httpx", "httpcore", "botocore", "anthropic", "urllib3")


def configure_logging(level: str = "INFO", fmt: str = "json", service: str = "talentsync") -> None:
    """Route structlog through stdlib logging on stdout.

    Args:
        level: Log level name (DEBUG, INFO, ...)
        fmt: "json" for machine-readable output, anything else for console
        service: Added to every event so processor and API lines can be told apart
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    def add_service(_logger, _method, event_dict):
        event_dict.setdefault("service", service)
        return event_dict

    renderer = structlog.processors.JSONRenderer() if fmt == "json" else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            add_service,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
