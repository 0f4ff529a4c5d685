"""Security layer — Audit trail.

Every ``CapabilitySandbox.execute()`` call produces exactly one
:class:`~safeact.security.models.AuditEntry`, whatever the outcome.  The
trail redacts it, truncates its output, appends it to a store, and publishes
it on the ``safeact.audit`` topic.

Stores:
  - MemoryAuditStore  → in-process list (tests, ephemeral sessions)
  - SQLiteAuditStore  → aiosqlite, WAL mode, queryable by collaborators

Usage::

    store = SQLiteAuditStore(Path("~/.safeact/audit.db"))
    await store.init()
    trail = AuditTrail(store, bus=LogEventBus(Path("~/.safeact/events.ndjson")))
    await trail.log(entry)
    rows = await store.query(capability="shell", result=AuditResult.DENIED)
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

import aiosqlite

from safeact.events.bus import TOPIC_AUDIT, EventBus, NullEventBus
from safeact.exceptions import AuditStoreError
from safeact.logging import get_logger
from safeact.security.models import AuditDecision, AuditEntry, AuditResult

log = get_logger(__name__)

AUDIT_OUTPUT_MAX_BYTES = 1024


def truncate_output(value: str, max_bytes: int = AUDIT_OUTPUT_MAX_BYTES) -> str:
    """Cut *value* to *max_bytes* of UTF-8 without splitting a character."""
    encoded = value.encode("utf-8")
    if len(encoded) <= max_bytes:
        return value
    return encoded[:max_bytes].decode("utf-8", errors="ignore") + "... [truncated]"


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class AuditStore(ABC):
    """Append-only sink for audit entries."""

    @abstractmethod
    async def append(self, entry: AuditEntry) -> None:
        """Persist *entry*.  Raise AuditStoreError on failure."""

    async def close(self) -> None:
        pass


class MemoryAuditStore(AuditStore):
    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []

    async def append(self, entry: AuditEntry) -> None:
        self._entries.append(entry)

    @property
    def entries(self) -> Sequence[AuditEntry]:
        return tuple(self._entries)


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS audit_log (
    id            TEXT PRIMARY KEY,
    timestamp     TEXT NOT NULL,
    capability    TEXT NOT NULL,
    action        TEXT NOT NULL,
    resource      TEXT NOT NULL DEFAULT '',
    params        TEXT NOT NULL DEFAULT '{}',
    decision      TEXT NOT NULL,
    result        TEXT NOT NULL,
    output        TEXT,
    error         TEXT,
    duration_ms   REAL NOT NULL DEFAULT 0,
    requested_by  TEXT NOT NULL DEFAULT 'agent'
);
CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log (timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_capability ON audit_log (capability);
CREATE INDEX IF NOT EXISTS idx_audit_result ON audit_log (result);
"""

_COLUMNS = (
    "id, timestamp, capability, action, resource, params, decision, result, "
    "output, error, duration_ms, requested_by"
)


class SQLiteAuditStore(AuditStore):
    """Async SQLite-backed audit store.

    Usage::

        store = SQLiteAuditStore(Path("~/.safeact/audit.db"))
        await store.init()
        await store.append(entry)
        recent = await store.recent(20)
    """

    def __init__(self, db_path: Path, output_max_bytes: int = AUDIT_OUTPUT_MAX_BYTES) -> None:
        self._db_path = db_path.expanduser()
        self._output_max_bytes = output_max_bytes
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def init(self) -> None:
        """Open the database and create the table if it does not exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = await aiosqlite.connect(str(self._db_path))
            self._conn.row_factory = aiosqlite.Row
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.executescript(_SCHEMA_SQL)
            await self._conn.commit()
            log.info("audit_store_ready", db=str(self._db_path))
        except Exception as exc:
            raise AuditStoreError(f"Failed to initialise audit store: {exc}") from exc

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise AuditStoreError("Audit store is not initialised; call init() first")
        return self._conn

    async def append(self, entry: AuditEntry) -> None:
        output = entry.output
        if output is not None:
            output = truncate_output(output, self._output_max_bytes)
        async with self._lock:
            conn = self._require_conn()
            try:
                await conn.execute(
                    f"INSERT INTO audit_log ({_COLUMNS}) VALUES (?,?,?,?,?,?,?,?,?,?,?,?)",
                    (
                        entry.id,
                        entry.timestamp.isoformat(),
                        entry.capability,
                        entry.action,
                        entry.resource,
                        json.dumps(entry.params, default=str),
                        entry.decision.value,
                        entry.result.value,
                        output,
                        entry.error,
                        entry.duration_ms,
                        entry.requested_by,
                    ),
                )
                await conn.commit()
            except Exception as exc:
                raise AuditStoreError(
                    f"Failed to write audit entry: {exc}", context={"entry_id": entry.id}
                ) from exc

    async def query(
        self,
        capability: str | None = None,
        action: str | None = None,
        result: AuditResult | str | None = None,
        requested_by: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = 1000,
    ) -> list[AuditEntry]:
        """Return entries matching every given filter, oldest first."""
        clauses: list[str] = []
        args: list[Any] = []
        if capability is not None:
            clauses.append("capability = ?")
            args.append(capability)
        if action is not None:
            clauses.append("action = ?")
            args.append(action)
        if result is not None:
            clauses.append("result = ?")
            args.append(AuditResult(result).value)
        if requested_by is not None:
            clauses.append("requested_by = ?")
            args.append(requested_by)
        if since is not None:
            clauses.append("timestamp >= ?")
            args.append(since.isoformat())
        if until is not None:
            clauses.append("timestamp <= ?")
            args.append(until.isoformat())

        sql = f"SELECT {_COLUMNS} FROM audit_log"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY timestamp ASC, rowid ASC LIMIT ?"
        args.append(limit)

        conn = self._require_conn()
        async with conn.execute(sql, args) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_entry(row) for row in rows]

    async def recent(self, limit: int = 20) -> list[AuditEntry]:
        """Return the *limit* newest entries, newest first."""
        conn = self._require_conn()
        async with conn.execute(
            f"SELECT {_COLUMNS} FROM audit_log ORDER BY timestamp DESC, rowid DESC LIMIT ?",
            (limit,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_entry(row) for row in rows]

    async def count(self) -> int:
        conn = self._require_conn()
        async with conn.execute("SELECT COUNT(*) FROM audit_log") as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0


def _row_to_entry(row: aiosqlite.Row) -> AuditEntry:
    return AuditEntry(
        id=row["id"],
        timestamp=datetime.fromisoformat(row["timestamp"]),
        capability=row["capability"],
        action=row["action"],
        resource=row["resource"],
        params=json.loads(row["params"] or "{}"),
        decision=AuditDecision(row["decision"]),
        result=AuditResult(row["result"]),
        output=row["output"],
        error=row["error"],
        duration_ms=row["duration_ms"],
        requested_by=row["requested_by"],
    )


# ---------------------------------------------------------------------------
# Trail
# ---------------------------------------------------------------------------


class AuditTrail:
    """Redacts, stores and publishes audit entries.

    ``log()`` is the only write path.  It never raises: a store failure is
    logged as ``audit_write_failed`` so that a broken disk cannot turn a
    denied action into an unhandled exception.
    """

    def __init__(
        self,
        store: AuditStore | None = None,
        bus: EventBus | None = None,
        output_max_bytes: int = AUDIT_OUTPUT_MAX_BYTES,
    ) -> None:
        self._store = store or MemoryAuditStore()
        self._bus = bus or NullEventBus()
        self._output_max_bytes = output_max_bytes
        self._lock = asyncio.Lock()
        self._count = 0

    @property
    def store(self) -> AuditStore:
        return self._store

    @property
    def count(self) -> int:
        """Number of entries accepted by ``log()`` since construction."""
        return self._count

    async def log(self, entry: AuditEntry) -> AuditEntry:
        safe = entry.redacted()
        if safe.output is not None:
            safe = replace(safe, output=truncate_output(safe.output, self._output_max_bytes))

        async with self._lock:
            self._count += 1
            try:
                await self._store.append(safe)
            except AuditStoreError as exc:
                log.error("audit_write_failed", entry_id=safe.id, error=exc.message)

        if safe.result is AuditResult.SUCCESS:
            log.debug(
                "audit_entry",
                capability=safe.capability,
                action=safe.action,
                decision=safe.decision.value,
            )
        else:
            log.info(
                "audit_entry",
                capability=safe.capability,
                action=safe.action,
                decision=safe.decision.value,
                result=safe.result.value,
                error=safe.error,
            )

        await self._bus.emit(TOPIC_AUDIT, {"type": "audit_entry", **safe.to_dict()})
        return safe
