"""Dedup/cursor store for threads and comments.

This module handles every persistence operation of the crawl engine:
existence checks used for deduplication, idempotent inserts, and the
per-thread pagination cursor.

Key Types:
    ThreadStore: abstract store contract consumed by the orchestrator
    SqliteStore: SQLite implementation (default, WAL mode)
    MemoryStore: in-process implementation for tests and dry runs
    create_store: registry/factory selecting an implementation by name

Duplicate keys are never an error: ``insert_thread`` and ``insert_comment``
return False when the row already exists and leave it untouched.
"""

import sqlite3
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from threadwatch.backend.db.connection import init_schema, open_connection
from threadwatch.backend.utils.errors import ConfigError, StorageError
from threadwatch.backend.utils.logging_config import get_logger
from threadwatch.models.forum_models import Comment, Thread

logger = get_logger(__name__)


class ThreadStore(ABC):
    """Store contract consumed by the crawl orchestrator.

    Implementations must be safe for concurrent use from the scheduling
    thread and the admin API without external locking.
    """

    @abstractmethod
    def find_thread(self, link: str) -> Optional[Thread]:
        """Return the stored thread for ``link`` or None."""

    @abstractmethod
    def insert_thread(self, thread: Thread) -> bool:
        """Insert if absent. Returns True if a new row was created."""

    @abstractmethod
    def update_last_page(self, link: str, page: int) -> None:
        """Advance the pagination cursor. Never moves it backwards."""

    @abstractmethod
    def find_comment(self, comment_id: str) -> Optional[Comment]:
        """Return the stored comment or None."""

    @abstractmethod
    def insert_comment(self, comment: Comment) -> bool:
        """Insert if absent. Returns True if a new row was created."""

    def comment_exists(self, comment_id: str) -> bool:
        return self.find_comment(comment_id) is not None

    def ping(self) -> None:
        """Raise StorageError if the store is unreachable."""

    def close(self) -> None:
        """Release underlying resources."""


def _to_db_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_db_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SqliteStore(ThreadStore):
    """SQLite-backed store.

    One connection is shared across threads and every statement runs under
    an internal lock, so the orchestrator and admin API can call in
    concurrently. Uniqueness is enforced by the schema and inserts use
    ``INSERT OR IGNORE``.

    Example:
        >>> store = SqliteStore("data/forum_monitor.db")
        >>> store.insert_thread(thread)
        True
        >>> store.insert_thread(thread)  # duplicate link is a no-op
        False
    """

    def __init__(self, db_path: str = None):
        try:
            self._conn = open_connection(db_path)
            init_schema(self._conn)
        except sqlite3.Error as e:
            logger.error("sqlite_open_failed", db_path=db_path, error=str(e))
            raise StorageError(f"Cannot open SQLite database {db_path}: {e}") from e
        self._lock = threading.RLock()
        self.db_path = db_path
        logger.info("sqlite_store_opened", db_path=db_path)

    def find_thread(self, link: str) -> Optional[Thread]:
        try:
            with self._lock:
                row = self._conn.execute(
                    """
                    SELECT link, domain, category, title, description, creator,
                           publish_time, first_seen_time, last_page_fetched
                    FROM threads
                    WHERE link = ?
                    """,
                    (link,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"find_thread failed for {link}: {e}") from e

        if row is None:
            return None

        return Thread(
            link=row['link'],
            domain=row['domain'],
            category=row['category'],
            title=row['title'],
            description=row['description'],
            creator=row['creator'],
            publish_time=_from_db_time(row['publish_time']),
            first_seen_time=_from_db_time(row['first_seen_time']),
            last_page_fetched=row['last_page_fetched'],
        )

    def insert_thread(self, thread: Thread) -> bool:
        try:
            with self._lock:
                cursor = self._conn.execute(
                    """
                    INSERT OR IGNORE INTO threads (
                        link, domain, category, title, description, creator,
                        publish_time, first_seen_time, last_page_fetched
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        thread.link,
                        thread.domain,
                        thread.category,
                        thread.title,
                        thread.description,
                        thread.creator,
                        _to_db_time(thread.publish_time),
                        _to_db_time(thread.first_seen_time),
                        thread.last_page_fetched,
                    )
                )
                self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"insert_thread failed for {thread.link}: {e}") from e

        return cursor.rowcount == 1

    def update_last_page(self, link: str, page: int) -> None:
        try:
            with self._lock:
                self._conn.execute(
                    """
                    UPDATE threads
                    SET last_page_fetched = ?
                    WHERE link = ? AND last_page_fetched < ?
                    """,
                    (page, link, page)
                )
                self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"update_last_page failed for {link}: {e}") from e

    def find_comment(self, comment_id: str) -> Optional[Comment]:
        try:
            with self._lock:
                row = self._conn.execute(
                    """
                    SELECT comment_id, thread_link, author, message,
                           created_time, recorded_time, permalink
                    FROM comments
                    WHERE comment_id = ?
                    """,
                    (comment_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"find_comment failed for {comment_id}: {e}") from e

        if row is None:
            return None

        return Comment(
            comment_id=row['comment_id'],
            thread_link=row['thread_link'],
            author=row['author'],
            message=row['message'],
            created_time=_from_db_time(row['created_time']),
            recorded_time=_from_db_time(row['recorded_time']),
            permalink=row['permalink'],
        )

    def comment_exists(self, comment_id: str) -> bool:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT 1 FROM comments WHERE comment_id = ?",
                    (comment_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"comment_exists failed for {comment_id}: {e}") from e
        return row is not None

    def insert_comment(self, comment: Comment) -> bool:
        try:
            with self._lock:
                cursor = self._conn.execute(
                    """
                    INSERT OR IGNORE INTO comments (
                        comment_id, thread_link, author, message,
                        created_time, recorded_time, permalink
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        comment.comment_id,
                        comment.thread_link,
                        comment.author,
                        comment.message,
                        _to_db_time(comment.created_time),
                        _to_db_time(comment.recorded_time),
                        comment.permalink,
                    )
                )
                self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"insert_comment failed for {comment.comment_id}: {e}") from e

        return cursor.rowcount == 1

    def ping(self) -> None:
        try:
            with self._lock:
                self._conn.execute("SELECT 1").fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"SQLite ping failed: {e}") from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        logger.info("sqlite_store_closed", db_path=self.db_path)


class MemoryStore(ThreadStore):
    """In-process store with the same semantics as SqliteStore.

    Stored objects are copied on the way in and out so callers can never
    mutate persisted state by accident.
    """

    def __init__(self, dsn: str = None):
        self._threads: Dict[str, Thread] = {}
        self._comments: Dict[str, Comment] = {}
        self._lock = threading.Lock()

    def find_thread(self, link: str) -> Optional[Thread]:
        with self._lock:
            thread = self._threads.get(link)
            return replace(thread) if thread else None

    def insert_thread(self, thread: Thread) -> bool:
        with self._lock:
            if thread.link in self._threads:
                return False
            self._threads[thread.link] = replace(thread)
            return True

    def update_last_page(self, link: str, page: int) -> None:
        with self._lock:
            thread = self._threads.get(link)
            if thread is not None and page > thread.last_page_fetched:
                thread.last_page_fetched = page

    def find_comment(self, comment_id: str) -> Optional[Comment]:
        with self._lock:
            comment = self._comments.get(comment_id)
            return replace(comment) if comment else None

    def insert_comment(self, comment: Comment) -> bool:
        with self._lock:
            if comment.comment_id in self._comments:
                return False
            self._comments[comment.comment_id] = replace(comment, role="")
            return True

    def comment_count(self) -> int:
        with self._lock:
            return len(self._comments)


STORE_BACKENDS: Dict[str, Callable[[Optional[str]], ThreadStore]] = {
    "sqlite": SqliteStore,
    "memory": MemoryStore,
}


def create_store(kind: str, dsn: str = None) -> ThreadStore:
    """Create a store from a backend name (``DB_TYPE``) and connection string.

    Raises:
        ConfigError: If the backend name is not registered
    """
    factory = STORE_BACKENDS.get((kind or "").strip().lower())
    if factory is None:
        raise ConfigError(
            f"Unsupported database type '{kind}'. "
            f"Must be one of: {', '.join(sorted(STORE_BACKENDS))}"
        )
    return factory(dsn)
