"""SafeAct — Structured logging configuration.

Uses structlog for structured, levelled logging with consistent key names
across all layers.  All log entries include:
    - timestamp (ISO-8601)
    - level
    - module (Python logger name)
    - plan_id / step_id / requested_by (bound via context variables when available)

String values are passed through the secret redactor before rendering, so a
command line or URL logged by a capability never leaks a credential.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import EventDict, WrappedLogger

from safeact.redaction import redact_value

# Context variables: automatically injected into log records when set.
_ctx_plan_id: ContextVar[str | None] = ContextVar("plan_id", default=None)
_ctx_step_id: ContextVar[int | None] = ContextVar("step_id", default=None)
_ctx_requested_by: ContextVar[str | None] = ContextVar("requested_by", default=None)


def bind_plan_context(
    plan_id: str | None = None,
    step_id: int | None = None,
    requested_by: str | None = None,
) -> None:
    """Bind execution context to the current async task."""
    if plan_id is not None:
        _ctx_plan_id.set(plan_id)
    if step_id is not None:
        _ctx_step_id.set(step_id)
    if requested_by is not None:
        _ctx_requested_by.set(requested_by)


def clear_plan_context() -> None:
    _ctx_plan_id.set(None)
    _ctx_step_id.set(None)
    _ctx_requested_by.set(None)


# ---------------------------------------------------------------------------
# Custom processors
# ---------------------------------------------------------------------------


def _inject_context_vars(
    _logger: WrappedLogger, _method: str, event_dict: EventDict
) -> EventDict:
    """Add ContextVar values to every log record."""
    if (plan_id := _ctx_plan_id.get()) is not None:
        event_dict["plan_id"] = plan_id
    if (step_id := _ctx_step_id.get()) is not None:
        event_dict["step_id"] = step_id
    if (requested_by := _ctx_requested_by.get()) is not None:
        event_dict["requested_by"] = requested_by
    return event_dict


def redact_event(
    _logger: WrappedLogger, _method: str, event_dict: EventDict
) -> EventDict:
    """Scrub secrets from every value of the event except the event name."""
    for key, value in event_dict.items():
        if key == "event":
            continue
        event_dict[key] = redact_value(value)
    return event_dict


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def configure_logging(
    level: str = "info",
    format: str = "console",
    log_file: str | None = None,
) -> None:
    """Configure structlog and stdlib logging.

    Call once at startup, before any log statements.

    Args:
        level:    One of debug, info, warning, error, critical.
        format:   ``"console"`` for human-readable output, ``"json"`` for
                  machine-readable structured logs.
        log_file: Optional path to write logs to in addition to stderr.
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _inject_context_vars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        redact_event,
    ]

    if format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # The CLI prints results on stdout; logs go to stderr.
    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(level.upper())

    for noisy in ("httpx", "httpcore", "asyncio", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger for *name*.

    Usage::

        log = get_logger(__name__)
        log.info("plan_started", plan_id="abc123", step_count=5)
    """
    return structlog.get_logger(name)
