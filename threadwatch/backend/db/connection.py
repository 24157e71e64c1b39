"""Database connection manager with WAL mode and schema bootstrap."""

import os
import sqlite3
from pathlib import Path

SCHEMA_SQL_PATH = Path(__file__).parent / "schema.sql"

DEFAULT_DB_PATH = "data/forum_monitor.db"


def resolve_db_path(db_path: str = None) -> str:
    """Return db_path, or SQLITE_PATH from the environment, or the default."""
    if db_path is None:
        db_path = os.environ.get('SQLITE_PATH', DEFAULT_DB_PATH)
    return db_path


def open_connection(db_path: str = None) -> sqlite3.Connection:
    """
    Open a long-lived SQLite connection shared across threads.

    The caller owns the connection and must close it. Parent directories are
    created for file databases; ":memory:" is passed through untouched.

    Args:
        db_path: Path to the SQLite database file. If None, reads from
                 SQLITE_PATH environment variable, falling back to
                 'data/forum_monitor.db'.

    Returns:
        sqlite3.Connection with WAL mode active and row_factory set to
        sqlite3.Row.
    """
    db_path = resolve_db_path(db_path)
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    # Connect with cross-thread compatibility; callers serialize access
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Create tables and indexes from schema.sql if they don't exist."""
    sql = SCHEMA_SQL_PATH.read_text()
    # executescript resets per-connection PRAGMAs, so run them separately
    lines = [line for line in sql.splitlines()
             if not line.strip().upper().startswith("PRAGMA")]
    conn.executescript("\n".join(lines))
    conn.execute("PRAGMA journal_mode = WAL")
