"""Audit Event Persistence Layer

SQLite-based repository for storing and retrieving audit events.

Design Decisions:
- Single database file (default purchase_flow/data/audit.db)
- Append-only operations (no updates or deletes)
- Connection-per-operation for file databases; one shared connection
  for ":memory:" so tests see their own writes
- Retry logic for "database is locked" errors
"""

from __future__ import annotations

import json
import sqlite3
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from uuid import UUID

from purchase_flow.models.audit import AuditEvent, AuditEventType


class AuditRepository:
    """SQLite-based persistence for audit events.

    Storage Strategy:
        - Single table: audit_events
        - Event data stored as JSON
        - Automatic schema creation on first use

    Thread Safety:
        - Connection-per-operation pattern for file databases
        - Retry logic for "database is locked" errors (3 attempts)
    """

    MAX_RETRIES = 3
    RETRY_DELAY_MS = 100

    _COLUMNS = "event_id, event_type, timestamp, actor, receipt_id, data_json, created_at"

    def __init__(self, db_path: Optional[str] = None):
        """Initialize repository with database path.

        Args:
            db_path: Path to SQLite database file. If None, uses
                    purchase_flow/data/audit.db
        """
        if db_path is None:
            data_dir = Path(__file__).parent.parent / "data"
            data_dir.mkdir(exist_ok=True)
            db_path = str(data_dir / "audit.db")

        self.db_path = db_path

        # For :memory: databases, keep a persistent connection
        # (otherwise each new connection creates a fresh empty database)
        self._memory_conn = None
        self._lock = threading.Lock()
        if db_path == ":memory:":
            self._memory_conn = sqlite3.connect(":memory:", check_same_thread=False)

        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        if self._memory_conn is not None:
            return self._memory_conn
        return sqlite3.connect(self.db_path)

    def _release(self, conn: sqlite3.Connection) -> None:
        if conn is not self._memory_conn:
            conn.close()

    def _init_schema(self) -> None:
        """Create audit_events table and indexes if they don't exist."""
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS audit_events (
                    event_id TEXT PRIMARY KEY,
                    event_type TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    actor TEXT NOT NULL,
                    receipt_id TEXT,
                    data_json TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_audit_receipt_id
                ON audit_events(receipt_id)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_audit_event_type
                ON audit_events(event_type)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_audit_timestamp
                ON audit_events(timestamp)
            """)

            conn.commit()
        finally:
            self._release(conn)

    def save_event(self, event: AuditEvent) -> None:
        """Append an audit event.

        Raises:
            sqlite3.Error: If the write fails after all retries
        """
        data_json = json.dumps(event.data)
        row = (
            str(event.event_id),
            event.event_type.value,
            event.timestamp.isoformat(),
            event.actor,
            event.receipt_id,
            data_json,
            event.created_at.isoformat(),
        )

        for attempt in range(self.MAX_RETRIES):
            try:
                with self._lock:
                    conn = self._connect()
                    try:
                        conn.execute(
                            f"INSERT INTO audit_events ({self._COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                            row,
                        )
                        conn.commit()
                        return
                    finally:
                        self._release(conn)

            except sqlite3.OperationalError as e:
                if "locked" in str(e).lower():
                    if attempt < self.MAX_RETRIES - 1:
                        time.sleep(self.RETRY_DELAY_MS / 1000.0)
                        continue
                    raise sqlite3.OperationalError(
                        f"Database locked after {self.MAX_RETRIES} attempts: {e}"
                    ) from e
                raise

    def get_events_for_receipt(self, receipt_id: str, limit: int = 200) -> List[AuditEvent]:
        """Events for one purchase receipt, most recent first."""
        return self._query(
            f"SELECT {self._COLUMNS} FROM audit_events WHERE receipt_id = ? "
            "ORDER BY timestamp DESC LIMIT ?",
            (str(receipt_id), limit),
        )

    def get_recent_events(self, limit: int = 200) -> List[AuditEvent]:
        return self._query(
            f"SELECT {self._COLUMNS} FROM audit_events ORDER BY timestamp DESC LIMIT ?",
            (limit,),
        )

    def get_events_by_type(self, event_type: AuditEventType, limit: int = 200) -> List[AuditEvent]:
        return self._query(
            f"SELECT {self._COLUMNS} FROM audit_events WHERE event_type = ? "
            "ORDER BY timestamp DESC LIMIT ?",
            (event_type.value, limit),
        )

    def count_events(self) -> int:
        with self._lock:
            conn = self._connect()
            try:
                cursor = conn.execute("SELECT COUNT(*) FROM audit_events")
                return cursor.fetchone()[0]
            finally:
                self._release(conn)

    def _query(self, sql: str, params: tuple) -> List[AuditEvent]:
        with self._lock:
            conn = self._connect()
            try:
                cursor = conn.execute(sql, params)
                rows = cursor.fetchall()
            finally:
                self._release(conn)
        return [self._row_to_event(row) for row in rows]

    def _row_to_event(self, row: tuple) -> AuditEvent:
        event_id, event_type, timestamp, actor, receipt_id, data_json, created_at = row
        return AuditEvent(
            event_id=UUID(event_id),
            event_type=AuditEventType(event_type),
            timestamp=datetime.fromisoformat(timestamp),
            actor=actor,
            receipt_id=receipt_id,
            data=json.loads(data_json),
            created_at=datetime.fromisoformat(created_at),
        )
