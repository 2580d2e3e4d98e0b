#!/usr/bin/env python3
"""
Structured Logging Module using structlog

Production-grade structured logging for the relay components:
- Request / tenant correlation through context variables
- Stage identifiers for execution flow (see constants.Stage)
- JSON formatting for log aggregation
- Credential redaction (request intents carry arbitrary HTTP headers)

Architectural Decision: structlog for production logging
- Context-aware logging with automatic field injection
- JSON output for log aggregation
- Async-safe via contextvars (each handler task has its own context)
"""

import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

import structlog
from structlog.types import EventDict, WrappedLogger

from request_relay.core.config.settings import get_settings

# Correlation ids for the message currently being handled
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
tenant_id_ctx: ContextVar[str | None] = ContextVar("tenant_id", default=None)

_BEARER_RE = re.compile(r"\b(Bearer|Basic)\s+[A-Za-z0-9._~+/=-]+", re.IGNORECASE)
_API_KEY_RE = re.compile(r"\b(api[_-]?key|token|secret|password)=([^&\s]+)", re.IGNORECASE)
_SENSITIVE_FIELDS = frozenset({"authorization", "proxy-authorization", "x-api-key", "cookie"})


def add_request_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add request and tenant ids from context variables.

    STAGE-L.1: Correlation injection
    """
    request_id = request_id_ctx.get()
    if request_id and "request_id" not in event_dict:
        event_dict["request_id"] = request_id
    tenant_id = tenant_id_ctx.get()
    if tenant_id and "tenant_id" not in event_dict:
        event_dict["tenant_id"] = tenant_id
    return event_dict


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add ISO timestamp to log event.

    STAGE-L.2: Timestamp injection
    """
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _redact_text(text: str) -> str:
    text = _BEARER_RE.sub(lambda m: f"{m.group(1)} [REDACTED]", text)
    return _API_KEY_RE.sub(lambda m: f"{m.group(1)}=[REDACTED]", text)


def _redact_headers(value):
    if isinstance(value, dict):
        return {
            k: ("[REDACTED]" if str(k).lower() in _SENSITIVE_FIELDS else _redact_headers(v))
            for k, v in value.items()
        }
    if isinstance(value, str):
        return _redact_text(value)
    return value


def redact_credentials(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Redact credentials from log events.

    STAGE-L.3: Credential redaction

    - Authorization / Cookie / X-Api-Key header values
    - Bearer and Basic tokens in free text
    - api_key=..., token=... query parameters in URLs
    """
    for key, value in list(event_dict.items()):
        if key in ("event", "url", "error") and isinstance(value, str):
            event_dict[key] = _redact_text(value)
        elif key in ("headers", "payload", "intent") and isinstance(value, dict):
            event_dict[key] = _redact_headers(value)
    return event_dict


def add_log_level_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Upper-case the level name.

    STAGE-L.4: Log level injection
    """
    if "level" in event_dict:
        event_dict["level"] = event_dict["level"].upper()
    return event_dict


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Setup structured logging with structlog.

    STAGE-L: Logging initialization

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
    """
    settings = get_settings()

    log_level = log_level or settings.logging.LOG_LEVEL
    log_format = log_format or settings.logging.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level.upper())
    )

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_request_context,
            add_timestamp,
            structlog.stdlib.add_log_level,
            add_log_level_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_credentials,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("message", stage=Stage.BUS_PUBLISH, exchange="perform-request-acme")
    """
    return structlog.get_logger(name)


def bind_request_context(request_id: str | None, tenant_id: str | None) -> None:
    """
    Set correlation ids for the message being handled.

    Every log entry emitted in the current task afterwards carries them.
    """
    request_id_ctx.set(request_id)
    tenant_id_ctx.set(tenant_id)


def get_request_context() -> tuple[str | None, str | None]:
    """Return the (request_id, tenant_id) pair bound to the current context."""
    return request_id_ctx.get(), tenant_id_ctx.get()


def clear_request_context() -> None:
    """Clear correlation ids at the end of message handling."""
    request_id_ctx.set(None)
    tenant_id_ctx.set(None)


def log_stage(
    logger: structlog.stdlib.BoundLogger, stage: str, message: str, level: str = "info", **kwargs
) -> None:
    """
    Log a message with stage information.

    Usage:
        log_stage(logger, Stage.SCHEDULER_TICK, "tick finished", fired=3)
    """
    log_func = getattr(logger, level.lower())
    log_func(message, stage=str(getattr(stage, "value", stage)), **kwargs)
