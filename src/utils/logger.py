"""Structured logging for the relay: console for operators, JSONL for later analysis.

Every event carries the service name and, while a request is being handled, the
request id bound by request_context(), so one delivery can be followed from
intake through dispatch to each sink.
"""

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

from src.config import LOG_FILE, LOG_LEVEL, VERBOSE_LOGGING

BoundLogger = structlog.stdlib.BoundLogger

SERVICE_NAME = "calendar-relay"

# Graph SDK and HTTP clients log every request at INFO
QUIET_LOGGERS = ("azure", "httpx", "httpcore", "msal", "msgraph", "uvicorn.access")

_configured = False


def _level_from_env() -> int:
    if VERBOSE_LOGGING:
        return logging.DEBUG
    if LOG_LEVEL.isdigit():
        return int(LOG_LEVEL)
    return getattr(logging, LOG_LEVEL, logging.INFO)


def _add_service(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _add_service,
    ]


def _handler(handler: logging.Handler, renderer: Any, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=_shared_processors(),
        )
    )
    return handler


def _configure_logging() -> None:
    global _configured
    if _configured:
        return

    level = _level_from_env()
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)
    root_logger.addHandler(
        _handler(logging.StreamHandler(), structlog.dev.ConsoleRenderer(colors=True), level)
    )
    root_logger.addHandler(
        _handler(
            logging.FileHandler(LOG_FILE, encoding="utf-8"),
            structlog.processors.JSONRenderer(),
            level,
        )
    )
    logging.captureWarnings(True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str = "calendar_relay", **bindings: Any) -> BoundLogger:
    """Return the structured logger, optionally bound with context."""
    if not _configured:
        _configure_logging()
    logger = structlog.get_logger(name)
    if bindings:
        logger = logger.bind(**bindings)
    return logger


def new_request_id() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def request_context(**context: Any) -> Iterator[str]:
    """Bind a fresh request_id (plus any extra context) for the duration of one request.

    Yields the request id. Context bound before entering is restored on exit.
    """
    request_id = new_request_id()
    with structlog.contextvars.bound_contextvars(request_id=request_id, **context):
        yield request_id
