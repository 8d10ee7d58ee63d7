"""structlog setup for the billing engine.

Billing events carry enums, Decimal amounts and aware datetimes; they are
rendered as plain strings so JSON output stays parseable by log tooling.
Per-request and per-subscription context travels through
structlog.contextvars.
"""

import logging
import os
import sys
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Optional

import structlog
from structlog.typing import EventDict, Processor

APP_NAME = "subscription-billing-engine"

# third-party loggers that log every outbound call at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "google.api_core", "google.auth")


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["app"] = APP_NAME
    return event_dict


def render_billing_values(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Flatten enums, amounts and timestamps into strings."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
        elif isinstance(value, Decimal):
            event_dict[key] = str(value)
        elif isinstance(value, datetime):
            event_dict[key] = value.isoformat()
    return event_dict


def drop_debug_in_production(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    if method_name == "debug" and not is_debug_mode():
        raise structlog.DropEvent
    return event_dict


def is_debug_mode() -> bool:
    return os.getenv("LOG_LEVEL", "INFO").upper() == "DEBUG"


def configure_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_format: JSON lines if True, colored console output otherwise
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_app_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        render_billing_values,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if numeric_level > logging.DEBUG:
        processors.append(drop_debug_in_production)

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(colors=True, exception_formatter=structlog.dev.plain_traceback)
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind values (request_id, provider) to every later log in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def subscription_context(subscription_id: str, provider: Optional[Any] = None) -> Iterator[None]:
    """Tag logs inside the block with the subscription being worked on.

    Values bound before the block (request_id) are restored on exit.

    Example:
        with subscription_context(subscription.id, subscription.provider):
            sweeper.process(subscription)
    """
    values: dict[str, Any] = {"subscription_id": subscription_id}
    if provider is not None:
        values["provider"] = provider.value if isinstance(provider, Enum) else provider
    with structlog.contextvars.bound_contextvars(**values):
        yield
