"""Shared SQLite connection handling for the runner stores."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import structlog

from ..errors import PersistenceError

logger = structlog.get_logger(__name__)


@contextmanager
def sqlite_connection(db_path: Path, timeout: float = 30.0,
                      operation: str = "query") -> Iterator[sqlite3.Connection]:
    """
    Open a connection in autocommit mode and translate sqlite errors.

    Callers manage transactions explicitly with BEGIN / COMMIT. Any
    sqlite3.Error rolls back the open transaction and is re-raised as
    PersistenceError.
    """
    conn = None
    try:
        conn = sqlite3.connect(str(db_path), timeout=timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        yield conn
    except sqlite3.Error as e:
        if conn is not None and conn.in_transaction:
            conn.rollback()
        logger.error("Database error", operation=operation, db_path=str(db_path), error=str(e))
        raise PersistenceError(
            f"Database error during {operation}: {e}",
            operation=operation,
            target=str(db_path)
        ) from e
    finally:
        if conn is not None:
            conn.close()


def ensure_parent_dir(db_path: Path) -> None:
    """Create the database directory if needed."""
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PersistenceError(
            f"Cannot create database directory: {e}",
            operation="init",
            target=str(db_path)
        ) from e
