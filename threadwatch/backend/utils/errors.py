"""Error Handling Utilities

This module defines the exception hierarchy used across threadwatch and the
per-cycle report that collects non-fatal failures while a crawl cycle runs.

Failure classes and how the orchestrator treats them:
    FetchError: network/timeout/non-200; item skipped, pagination walk ends
    ParseError: malformed feed, page or comment; single item skipped
    ClassifierError: remote classifier failure; item is not dispatched
    StorageError: store failure; processing of that one item is aborted
    NotificationError: delivery failure; logged, cycle continues
    ConfigError: invalid configuration; rejected before being applied
"""

import json
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class MonitorError(Exception):
    """Base class for all threadwatch errors."""
    pass


class FetchError(MonitorError):
    """Transient fetch failure (network error, timeout, non-success status).

    ``status_code`` is set when the server answered with a non-200 status.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(MonitorError):
    """Malformed feed, thread page or comment."""
    pass


class ClassifierError(MonitorError):
    """Remote classifier call failed or returned an unusable response."""
    pass


class StorageError(MonitorError):
    """Dedup/cursor store operation failed."""
    pass


class NotificationError(MonitorError):
    """Notification channel rejected or failed to deliver a message."""
    pass


class ConfigError(MonitorError):
    """Configuration is invalid or incomplete for the selected backends."""
    pass


# Supported error kinds recorded in a CycleReport
ERROR_KIND_FETCH_FAILED = "fetch_failed"
ERROR_KIND_PARSE_FAILED = "parse_failed"
ERROR_KIND_CLASSIFIER_FAILED = "classifier_failed"
ERROR_KIND_STORAGE_FAILED = "storage_failed"
ERROR_KIND_NOTIFICATION_FAILED = "notification_failed"

VALID_ERROR_KINDS = {
    ERROR_KIND_FETCH_FAILED,
    ERROR_KIND_PARSE_FAILED,
    ERROR_KIND_CLASSIFIER_FAILED,
    ERROR_KIND_STORAGE_FAILED,
    ERROR_KIND_NOTIFICATION_FAILED,
}

COUNTER_NAMES = (
    "feeds_fetched",
    "threads_seen",
    "threads_inserted",
    "threads_notified",
    "pages_fetched",
    "pages_exhausted",
    "comments_seen",
    "comments_inserted",
    "comments_notified",
)


class CycleReport:
    """Thread-safe summary of one crawl cycle.

    Counts what the cycle saw, stored and dispatched, and accumulates typed
    error events with message, timestamp and context. The admin API reads the
    last report while the next cycle may already be writing a new one, so all
    access goes through an internal lock.

    Example:
        >>> report = CycleReport()
        >>> report.increment("threads_inserted")
        >>> report.record_error(
        ...     "fetch_failed",
        ...     "Feed returned status 503",
        ...     {"url": "https://lowendtalk.com/categories/offers/feed.rss"}
        ... )
        >>> report.finish()
        >>> report.to_dict()["counters"]["threads_inserted"]
        1
    """

    def __init__(self):
        """Initialize an empty report stamped with the start time."""
        self._counters: Dict[str, int] = {name: 0 for name in COUNTER_NAMES}
        self._errors: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        self.started_at = datetime.now(timezone.utc)
        self.finished_at: Optional[datetime] = None

    def increment(self, counter: str, amount: int = 1) -> None:
        """Add ``amount`` to a named counter.

        Raises:
            ValueError: If counter is not one of COUNTER_NAMES
        """
        if counter not in self._counters:
            raise ValueError(
                f"Invalid counter '{counter}'. "
                f"Must be one of: {', '.join(COUNTER_NAMES)}"
            )
        with self._lock:
            self._counters[counter] += amount

    def record_error(self, kind: str, message: str, context: Dict[str, Any]) -> None:
        """Add an error event with kind, message, timestamp, and context.

        Args:
            kind: One of VALID_ERROR_KINDS
            message: Human-readable description of the failure
            context: Additional structured data (url, link, comment_id, ...)

        Raises:
            ValueError: If kind is not in VALID_ERROR_KINDS
        """
        if kind not in VALID_ERROR_KINDS:
            raise ValueError(
                f"Invalid error kind '{kind}'. "
                f"Must be one of: {', '.join(sorted(VALID_ERROR_KINDS))}"
            )

        event = {
            "kind": kind,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "context": context,
        }

        with self._lock:
            self._errors.append(event)

    def finish(self) -> None:
        """Stamp the completion time."""
        with self._lock:
            self.finished_at = datetime.now(timezone.utc)

    def count(self, counter: str) -> int:
        with self._lock:
            return self._counters[counter]

    @property
    def errors(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._errors)

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot of the report as plain data."""
        with self._lock:
            return {
                "started_at": self.started_at.isoformat(),
                "finished_at": self.finished_at.isoformat() if self.finished_at else None,
                "counters": dict(self._counters),
                "errors": list(self._errors),
            }

    def to_json(self) -> str:
        """Serialize the report snapshot to a JSON string."""
        return json.dumps(self.to_dict())
