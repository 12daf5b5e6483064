"""Structured logging for the reply bridge.

Every component logs dotted event names (``forward.send_failed``,
``delivery.retrying``, ``sweeper.completed``) through structlog and binds the
transaction ID, so one transaction can be followed from admission to webhook
delivery. Each event also carries ``service`` so bridge output can be told
apart from the chat driver's and the HTTP client's own stdlib logs, which go
to the same stream.

Examples:
    Configure once at start-up, usually from BridgeConfig::

        configure_logging(config.log_level, config.json_logs)

    Log about one transaction::

        logger = get_logger(__name__)
        logger.bind(trx_id="TRX1").warning("delivery.retrying", attempt=2, backoff_seconds=1.0)

    Output (JSON)::

        {"trx_id": "TRX1", "attempt": 2, "backoff_seconds": 1.0,
         "event": "delivery.retrying", "service": "reply-bridge",
         "level": "warning", "timestamp": "2024-01-01T00:00:00.000000Z"}
"""

import logging
import sys
from typing import Any

import structlog

SERVICE_NAME = "reply-bridge"


def _add_service(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Route bridge and library logs to stdout at one level.

    Args:
        level: Log level name, shared by structlog and the stdlib loggers.
        json_output: JSON lines when True, coloured console output otherwise.
    """
    numeric_level = getattr(logging, level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)

    processors: list[object] = [
        structlog.contextvars.merge_contextvars,
        _add_service,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=True),
    ]

    structlog.configure(
        processors=processors,  # type: ignore[arg-type]
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    return structlog.get_logger(name)
