"""
Structured logging for the checkout service.

structlog renders JSON outside development and a coloured console view
locally. Every event carries the current request id and, once the caller is
authenticated, the customer id, so a single checkout can be followed across
resolver, reservation and payment log lines.
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Optional
from uuid import uuid4

import structlog
from structlog.types import EventDict, Processor

from storefront.core.config import get_settings

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
customer_id_ctx: ContextVar[Optional[str]] = ContextVar("customer_id", default=None)

_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "stripe")


def add_correlation_ids(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Stamp the event with the request and customer bound to this context."""
    request_id = request_id_ctx.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)
    customer_id = customer_id_ctx.get()
    if customer_id:
        event_dict.setdefault("customer_id", customer_id)
    return event_dict


def configure_logging() -> None:
    """
    Configure structlog and the stdlib root handler from settings.

    Safe to call more than once.
    """
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_correlation_ids,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if settings.is_development:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Bind a request id to the current context.

    Args:
        request_id: Id supplied by the caller; a UUID4 is generated if missing

    Returns:
        The id now bound
    """
    request_id = request_id or str(uuid4())
    request_id_ctx.set(request_id)
    return request_id


def get_request_id() -> str:
    return request_id_ctx.get()


def set_customer_id(customer_id: Optional[str]) -> None:
    customer_id_ctx.set(customer_id)


def clear_context() -> None:
    """Drop correlation ids at the end of a request."""
    request_id_ctx.set("")
    customer_id_ctx.set(None)


@contextmanager
def log_performance(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    slow_threshold_ms: float = 500.0,
    **context: Any,
) -> Iterator[None]:
    """
    Log how long a block took.

    Failures are logged at warning level and re-raised; blocks slower than
    ``slow_threshold_ms`` are logged at warning level too.

    Example:
        >>> with log_performance(logger, "place_order", customer_id=cid):
        ...     await orchestrator.place_order(...)
    """
    started = time.perf_counter()
    try:
        yield
    except BaseException as e:
        logger.warning(
            "Operation failed",
            operation=operation,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            error_type=type(e).__name__,
            **context,
        )
        raise

    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    log = logger.warning if duration_ms > slow_threshold_ms else logger.info
    log("Operation completed", operation=operation, duration_ms=duration_ms, **context)
