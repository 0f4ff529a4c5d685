"""Event streaming — EventBus interface and in-process implementations.

Every observable occurrence inside the agent core (a plan being created, a
step finishing, a tool call, an audit entry) is published as a plain dict on
a topic.  Channel adapters (chat, terminal, HTTP) subscribe to render
progress; nothing in the core waits on a consumer.

  PlanRunner   ──emit("safeact.plans")──►  ┌──────────────┐ ◄── chat adapter
  execute_tool ──emit("safeact.tools")──►  │  EventBus    │ ◄── NDJSON log
  AuditTrail   ──emit("safeact.audit")──►  └──────────────┘ ◄── tests

Backends:
  - NullEventBus   → default, discards everything
  - LogEventBus    → NDJSON append-only file
  - LocalEventBus  → in-process listeners (sync or async callables)
  - FanoutEventBus → forwards to several backends at once
"""

from __future__ import annotations

import asyncio
import inspect
import json
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Awaitable, Callable, Union

from safeact.logging import get_logger

log = get_logger(__name__)

# ---------------------------------------------------------------------------
# Standard topic constants
# ---------------------------------------------------------------------------

TOPIC_PLANS = "safeact.plans"
TOPIC_TOOLS = "safeact.tools"
TOPIC_AUDIT = "safeact.audit"

EventListener = Callable[[str, dict[str, Any]], Union[None, Awaitable[None]]]


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------


class EventBus(ABC):
    """Abstract event bus.  All implementations must be safe for concurrent async use.

    The bus adds ``_topic`` and ``_timestamp`` keys before forwarding.
    """

    @abstractmethod
    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        """Publish *event* to *topic*.

        Must not raise: a failing backend is logged and skipped so that event
        delivery never breaks tool execution.
        """

    def _stamp(self, topic: str, event: dict[str, Any]) -> dict[str, Any]:
        event.setdefault("_topic", topic)
        event.setdefault("_timestamp", time.time())
        return event


class NullEventBus(EventBus):
    """Discards all events."""

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        pass


# ---------------------------------------------------------------------------
# LogEventBus: NDJSON file
# ---------------------------------------------------------------------------


class LogEventBus(EventBus):
    """Writes events as NDJSON, one line per event, append-only.

    Usage::

        bus = LogEventBus(Path("~/.safeact/events.ndjson"))
        await bus.emit(TOPIC_AUDIT, {"event": "audit_entry", "id": "..."})
    """

    def __init__(self, log_file: Path | None = None) -> None:
        self._file = log_file.expanduser() if log_file else None
        self._lock = asyncio.Lock()

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._stamp(topic, event)
        log.debug("event_bus_emit", topic=topic, event_type=event.get("type"))
        if self._file is None:
            return
        line = json.dumps(event, default=str) + "\n"
        async with self._lock:
            try:
                self._file.parent.mkdir(parents=True, exist_ok=True)
                with self._file.open("a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as exc:
                log.error("event_bus_write_failed", topic=topic, error=str(exc))


# ---------------------------------------------------------------------------
# LocalEventBus: in-process subscribers
# ---------------------------------------------------------------------------


class LocalEventBus(EventBus):
    """Delivers events to registered listeners in registration order.

    A listener receives ``(topic, event)`` and may be a plain function or a
    coroutine function.  Listener exceptions are logged and do not reach the
    emitter.

    Usage::

        bus = LocalEventBus()
        unsubscribe = bus.subscribe(lambda topic, event: print(topic, event))
        ...
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: list[tuple[EventListener, frozenset[str] | None]] = []

    def subscribe(
        self, listener: EventListener, topics: list[str] | None = None
    ) -> Callable[[], None]:
        entry = (listener, frozenset(topics) if topics else None)
        self._listeners.append(entry)

        def _unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return _unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._stamp(topic, event)
        for listener, topics in list(self._listeners):
            if topics is not None and topic not in topics:
                continue
            try:
                result = listener(topic, event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                log.error(
                    "event_listener_failed",
                    topic=topic,
                    listener=getattr(listener, "__name__", repr(listener)),
                    error=str(exc),
                )


# ---------------------------------------------------------------------------
# FanoutEventBus: broadcast to multiple backends simultaneously
# ---------------------------------------------------------------------------


class FanoutEventBus(EventBus):
    """Routes each event to multiple EventBus backends in parallel.

    Usage::

        bus = FanoutEventBus([LogEventBus(path), LocalEventBus()])
    """

    def __init__(self, backends: list[EventBus]) -> None:
        self._backends = backends

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._stamp(topic, event)
        results = await asyncio.gather(
            *(b.emit(topic, dict(event)) for b in self._backends),
            return_exceptions=True,
        )
        for backend, result in zip(self._backends, results):
            if isinstance(result, Exception):
                log.error(
                    "event_backend_failed",
                    topic=topic,
                    backend=type(backend).__name__,
                    error=str(result),
                )
