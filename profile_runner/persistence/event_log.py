"""Append-only audit trail of runner events."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import structlog

from ..utils.time import utc_now
from .sqlite import ensure_parent_dir, sqlite_connection

logger = structlog.get_logger(__name__)

EVENT_TYPES = frozenset({
    "start", "finish", "error", "recover", "pause", "unpause", "cancel", "reset",
})


@dataclass
class RunnerEvent:
    """Stored runner event."""
    id: int
    ts: str
    profile_id: str
    event: str
    kind: Optional[str]
    params: dict[str, Any]
    session_id: Optional[str] = None
    outcome: Optional[str] = None
    duration_ms: Optional[int] = None


class RunnerEventLog:
    """SQLite-based runner event log, sharing the state store's database."""

    def __init__(self, db_path: str = "data/runner_state.db", timeout: float = 30.0):
        self.db_path = Path(db_path)
        self.timeout = timeout
        self.logger = logger

        ensure_parent_dir(self.db_path)
        self._init_database()

    def _init_database(self) -> None:
        """Initialize database schema."""
        with sqlite_connection(self.db_path, self.timeout, "init") as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS runner_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    ts TEXT NOT NULL,
                    profile_id TEXT NOT NULL,
                    session_id TEXT,
                    event TEXT NOT NULL,
                    kind TEXT,
                    params TEXT NOT NULL,
                    outcome TEXT,
                    duration_ms INTEGER
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_runner_events_profile ON runner_events(profile_id)
            """)

    def record(
        self,
        profile_id: str,
        event: str,
        kind: Optional[str] = None,
        params: Optional[dict[str, Any]] = None,
        session_id: Optional[str] = None,
        outcome: Optional[str] = None,
        duration_ms: Optional[int] = None
    ) -> int:
        """
        Append an event.

        Args:
            profile_id: Profile the event belongs to
            event: One of EVENT_TYPES
            kind: Activity or subsystem that produced the event
            params: Free-form JSON-serializable details
            session_id: Cycle the event belongs to
            outcome: Short outcome label (ok, error, timeout, ...)
            duration_ms: Duration of the session when known

        Returns:
            Row id of the stored event
        """
        if event not in EVENT_TYPES:
            raise ValueError(f"Unknown runner event type: {event}")

        with sqlite_connection(self.db_path, self.timeout, "record_event") as conn:
            cursor = conn.execute("""
                INSERT INTO runner_events (
                    ts, profile_id, session_id, event, kind, params, outcome, duration_ms
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                utc_now().isoformat(),
                profile_id,
                session_id,
                event,
                kind,
                json.dumps(params or {}, default=str),
                outcome,
                duration_ms,
            ))
            event_id = cursor.lastrowid

        self.logger.info(
            "Runner event",
            event_type=event,
            profile_id=profile_id,
            kind=kind,
            outcome=outcome or "N/A"
        )
        return event_id

    def events_for(self, profile_id: str, limit: int = 1000) -> list[RunnerEvent]:
        """Events of one profile in insertion order."""
        with sqlite_connection(self.db_path, self.timeout, "events_for") as conn:
            rows = conn.execute("""
                SELECT * FROM runner_events WHERE profile_id = ?
                ORDER BY id LIMIT ?
            """, (profile_id, limit)).fetchall()
        return [self._row_to_event(row) for row in rows]

    def count(self, profile_id: str, event: Optional[str] = None) -> int:
        """Number of events for a profile, optionally of one type."""
        query = "SELECT COUNT(*) FROM runner_events WHERE profile_id = ?"
        args: tuple = (profile_id,)
        if event is not None:
            query += " AND event = ?"
            args = (profile_id, event)
        with sqlite_connection(self.db_path, self.timeout, "count_events") as conn:
            return conn.execute(query, args).fetchone()[0]

    def _row_to_event(self, row) -> RunnerEvent:
        """Convert database row to RunnerEvent object."""
        return RunnerEvent(
            id=row["id"],
            ts=row["ts"],
            profile_id=row["profile_id"],
            event=row["event"],
            kind=row["kind"],
            params=json.loads(row["params"]),
            session_id=row["session_id"],
            outcome=row["outcome"],
            duration_ms=row["duration_ms"],
        )
