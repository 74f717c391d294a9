"""Structlog configuration for steamagg."""

import logging
import re
import sys
from typing import Any

import structlog

from steamagg.config import AggregatorConfig, LogFormat


# Web API URLs carry the key as a query parameter
API_KEY_PARAM = re.compile(r"([?&]key=)[^&\s]+", re.IGNORECASE)

# Libraries that log full request URLs at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def redact_api_key(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Mask key=... query parameters in every string value of an event."""
    for field, value in event_dict.items():
        if isinstance(value, str) and "key=" in value.lower():
            event_dict[field] = API_KEY_PARAM.sub(r"\1***", value)
    return event_dict


def configure_logging(config: AggregatorConfig | None = None) -> None:
    """
    Configure structlog for the aggregator.

    Events go to stdout. JSON mode is meant for the HTTP server and for
    `lookup --quiet`; console mode renders coloured key=value lines.

    Args:
        config: AggregatorConfig instance, uses defaults if None
    """
    if config is None:
        config = AggregatorConfig()

    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_api_key,
    ]

    if config.log_format == LogFormat.JSON:
        processors.extend([
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ])
    else:
        processors.extend([
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Logger bound to a component name (store, gateway, aggregator, ...)."""
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger_name=name)
    return logger
