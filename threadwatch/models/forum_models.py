"""Forum data models for threadwatch.

This module defines the data structures shared by the source adapters, the
dedup/cursor store, the filter pipeline and the notifiers.

Data Models:
    Thread: a discussion discovered from a feed or a direct thread URL
    Comment: a single reply within a thread

These models use dataclasses for simplicity and map cleanly onto the
``threads`` and ``comments`` tables in schema.sql.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class Thread:
    """A forum thread (discussion) tracked across crawl cycles.

    The ``link`` is the dedup key: it is unique across the store and a thread
    is never re-inserted once seen.

    Attributes:
        link: Canonical thread URL (unique identity)
        domain: Source site label, e.g. "lowendtalk"
        category: Forum category the thread was found under
        title: Thread title
        description: First post body, HTML-stripped
        creator: Username of the thread author
        publish_time: Publication time as reported by the source (UTC)
        first_seen_time: When this engine first saw the thread (UTC)
        last_page_fetched: Highest comment page fully processed; 0 before
            the first pagination walk
    """
    link: str
    domain: str
    category: str
    title: str
    description: str = ""
    creator: str = ""
    publish_time: datetime = field(default_factory=utc_now)
    first_seen_time: datetime = field(default_factory=utc_now)
    last_page_fetched: int = 0

    @property
    def content(self) -> str:
        """Text handed to the classifier stage for thread notifications."""
        if not self.description:
            return self.title
        return f"{self.title}\n{self.description}"


@dataclass
class Comment:
    """A single comment on a thread. Immutable once stored.

    Attributes:
        comment_id: "<hostname>_<site-local id>" (unique identity)
        thread_link: Link of the owning thread (reference, not ownership)
        author: Username of the comment author
        message: Full comment text; truncation only happens when formatting
        created_time: Creation time as reported by the source (UTC)
        recorded_time: Ingestion time (UTC)
        permalink: Direct URL to the comment
        role: Forum role title of the author as shown on the page. Used only
            by the eligibility gate and never persisted.
    """
    comment_id: str
    thread_link: str
    author: str
    message: str
    created_time: datetime = field(default_factory=utc_now)
    recorded_time: datetime = field(default_factory=utc_now)
    permalink: str = ""
    role: str = ""
