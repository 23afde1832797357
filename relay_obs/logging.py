"""
Structured Logging (structlog).

Tool routing events are logged as an event name plus key/value context.
Catalog loads and tool calls bind agent_id/user_id/source_id into the
context so every event of a turn can be correlated. Credential material is
masked by the redact_secrets processor wherever it appears in an event.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

from relay_config.settings import Settings

REDACTED = "***"

SECRET_KEYS = frozenset(
    {"token", "api_key", "password", "secret", "authorization", "client_secret", "access_token"}
)

# Transport libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "asyncio")


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: REDACTED if str(k).lower() in SECRET_KEYS else _redact(v) for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    return value


def redact_secrets(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor: mask credential values at any depth."""
    return _redact(event_dict)


def setup_logging(settings: Settings) -> None:
    """
    Configure structlog for structured logging.

    Output format: JSON (default) or text (dev)
    Includes: bound call context, logger name, level, timestamp, exception info
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE))

    level = settings.LOG_LEVEL.upper()
    logging.basicConfig(format="%(message)s", handlers=handlers, level=level)
    if level != "DEBUG":
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_secrets,
    ]

    if settings.LOG_FORMAT == "json":
        processors.append(structlog.processors.JSONRenderer(default=str))
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def bound_call_context(**context: Any) -> Iterator[None]:
    """Bind non-empty context values to every event logged inside the block."""
    values = {k: v for k, v in context.items() if v is not None}
    with structlog.contextvars.bound_contextvars(**values):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get configured logger."""
    return structlog.get_logger(name)
