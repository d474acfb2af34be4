"""Durable per-profile runner records with atomic partial updates."""

import threading
from collections import defaultdict
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Optional

import structlog

from ..state.models import FLAG_FIELDS, UPDATABLE_FIELDS, RunnerFlags, RunnerState
from ..utils.time import format_timestamp, parse_timestamp, utc_now
from .sqlite import ensure_parent_dir, sqlite_connection

logger = structlog.get_logger(__name__)

StatePatch = dict[str, Any]


class RunnerStateStore:
    """
    SQLite-backed key/value store of RunnerState records.

    Every update is a read-merge-write inside one IMMEDIATE transaction held
    under the profile's lock, so concurrent updates touching disjoint fields
    of the same record never clobber each other. Reads of a missing profile
    return a default record without creating a row.
    """

    def __init__(self, db_path: str = "data/runner_state.db", timeout: float = 30.0):
        self.db_path = Path(db_path)
        self.timeout = timeout
        self.logger = logger.bind(db_path=str(self.db_path))
        self._locks_guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = defaultdict(threading.Lock)

        ensure_parent_dir(self.db_path)
        self._init_database()

    def _init_database(self) -> None:
        """Initialize database schema."""
        with self._get_connection("init") as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS runner_state (
                    profile_id TEXT PRIMARY KEY,
                    error_streak INTEGER NOT NULL DEFAULT 0,
                    running INTEGER NOT NULL DEFAULT 0,
                    needs_recovery INTEGER NOT NULL DEFAULT 0,
                    paused INTEGER NOT NULL DEFAULT 0,
                    paused_until TEXT,
                    last_recovery_step INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT
                )
            """)

    def _get_connection(self, operation: str = "query"):
        return sqlite_connection(self.db_path, self.timeout, operation)

    def _profile_lock(self, profile_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks[profile_id]

    def get(self, profile_id: str) -> RunnerState:
        """Current record, or a default-initialized one when absent."""
        with self._profile_lock(profile_id):
            with self._get_connection("get") as conn:
                row = conn.execute(
                    "SELECT * FROM runner_state WHERE profile_id = ?", (profile_id,)
                ).fetchone()

        if row is None:
            return RunnerState(profile_id=profile_id)
        return self._row_to_state(row)

    def exists(self, profile_id: str) -> bool:
        """Whether a record has ever been written for the profile."""
        with self._get_connection("exists") as conn:
            row = conn.execute(
                "SELECT 1 FROM runner_state WHERE profile_id = ?", (profile_id,)
            ).fetchone()
        return row is not None

    def update(self, profile_id: str, partial: StatePatch) -> RunnerState:
        """
        Merge the given fields into the profile's record atomically.

        Args:
            profile_id: Profile to update
            partial: Any of error_streak, flags (a mapping of running /
                needs_recovery / paused), paused_until, last_recovery_step

        Returns:
            The record as stored after the merge
        """
        return self.update_with(profile_id, lambda _current: partial)

    def update_with(self, profile_id: str,
                    compute: Callable[[RunnerState], StatePatch]) -> RunnerState:
        """
        Atomic read-modify-write.

        compute receives the current record and returns the partial update
        to merge; no other update for the profile can interleave.
        """
        with self._profile_lock(profile_id):
            with self._get_connection("update") as conn:
                conn.execute("BEGIN IMMEDIATE")
                row = conn.execute(
                    "SELECT * FROM runner_state WHERE profile_id = ?", (profile_id,)
                ).fetchone()
                current = self._row_to_state(row) if row else RunnerState(profile_id=profile_id)

                partial = compute(current)
                merged = self._merge(current, partial)
                self._write(conn, merged)
                conn.execute("COMMIT")

        self.logger.debug(
            "Runner state updated",
            profile_id=profile_id,
            fields=sorted(partial),
            error_streak=merged.error_streak,
            last_recovery_step=merged.last_recovery_step
        )
        return merged

    def all_states(self) -> list[RunnerState]:
        """All stored records ordered by profile id."""
        with self._get_connection("all_states") as conn:
            rows = conn.execute(
                "SELECT * FROM runner_state ORDER BY profile_id"
            ).fetchall()
        return [self._row_to_state(row) for row in rows]

    def delete(self, profile_id: str) -> bool:
        """Remove a record. Returns True when one existed."""
        with self._profile_lock(profile_id):
            with self._get_connection("delete") as conn:
                cursor = conn.execute(
                    "DELETE FROM runner_state WHERE profile_id = ?", (profile_id,)
                )
                return cursor.rowcount > 0

    @staticmethod
    def _merge(current: RunnerState, partial: StatePatch) -> RunnerState:
        unknown = set(partial) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown runner state fields: {sorted(unknown)}")

        changes: dict[str, Any] = {}

        if "error_streak" in partial:
            streak = partial["error_streak"]
            if not isinstance(streak, int) or isinstance(streak, bool) or streak < 0:
                raise ValueError(f"error_streak must be a non-negative integer, got {streak!r}")
            changes["error_streak"] = streak

        if "last_recovery_step" in partial:
            step = partial["last_recovery_step"]
            if not isinstance(step, int) or isinstance(step, bool) or step < 0:
                raise ValueError(f"last_recovery_step must be a non-negative integer, got {step!r}")
            changes["last_recovery_step"] = step

        if "paused_until" in partial:
            changes["paused_until"] = partial["paused_until"]

        if "flags" in partial:
            flag_patch = partial["flags"]
            unknown_flags = set(flag_patch) - FLAG_FIELDS
            if unknown_flags:
                raise ValueError(f"Unknown runner flags: {sorted(unknown_flags)}")
            changes["flags"] = replace(
                current.flags, **{k: bool(v) for k, v in flag_patch.items()}
            )

        changes["updated_at"] = utc_now()
        return replace(current, **changes)

    @staticmethod
    def _write(conn, state: RunnerState) -> None:
        conn.execute("""
            INSERT INTO runner_state (
                profile_id, error_streak, running, needs_recovery, paused,
                paused_until, last_recovery_step, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(profile_id) DO UPDATE SET
                error_streak = excluded.error_streak,
                running = excluded.running,
                needs_recovery = excluded.needs_recovery,
                paused = excluded.paused,
                paused_until = excluded.paused_until,
                last_recovery_step = excluded.last_recovery_step,
                updated_at = excluded.updated_at
        """, (
            state.profile_id,
            state.error_streak,
            int(state.flags.running),
            int(state.flags.needs_recovery),
            int(state.flags.paused),
            format_timestamp(state.paused_until),
            state.last_recovery_step,
            format_timestamp(state.updated_at),
        ))

    @staticmethod
    def _row_to_state(row) -> RunnerState:
        """Convert database row to RunnerState object."""
        return RunnerState(
            profile_id=row["profile_id"],
            error_streak=row["error_streak"],
            flags=RunnerFlags(
                running=bool(row["running"]),
                needs_recovery=bool(row["needs_recovery"]),
                paused=bool(row["paused"]),
            ),
            paused_until=parse_timestamp(row["paused_until"]),
            last_recovery_step=row["last_recovery_step"],
            updated_at=parse_timestamp(row["updated_at"]),
        )
