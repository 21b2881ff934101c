import logging

import structlog
from structlog.contextvars import merge_contextvars

from flowrag.core.settings import settings


def rename_event_to_message(_, __, event_dict):
    """
    Processor that exposes the structlog event under the canonical `message` key.
    """
    if "event" in event_dict:
        event_dict["message"] = event_dict.pop("event")
    return event_dict


def configure_structlog(level: str | None = None, log_format: str | None = None):
    """
    Configures structlog on top of standard logging (JSON by default, console for local runs).
    """
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))

    resolved_level = str(level or settings.LOG_LEVEL or "INFO").upper()
    log_level = getattr(logging, resolved_level, logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=[handler],
        force=True,
    )

    resolved_format = str(log_format or settings.LOG_FORMAT or "json").lower()
    processors = [
        merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if resolved_format == "console":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(rename_event_to_message)
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
