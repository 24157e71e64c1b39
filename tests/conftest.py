"""
Shared pytest fixtures for the threadwatch test suite.

These fixtures provide temporary databases, stores, canned source adapters,
a recording notifier and a frozen clock so crawl cycles can be exercised
end to end without network access. All tests are behavioral - they verify
what the code should do, not how it does it.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Dict, List

import pytest

from threadwatch.backend.utils.errors import FetchError, NotificationError
from threadwatch.config import MonitorConfig
from threadwatch.models.forum_models import Comment, Thread
from threadwatch.monitor import ForumMonitor, ThrottlePolicy
from threadwatch.notifier.base import Notifier
from threadwatch.storage import MemoryStore, SqliteStore

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def temp_db_path():
    """Provide a temporary database file path that is cleaned up after test."""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as f:
        db_path = f.name

    yield db_path

    if os.path.exists(db_path):
        os.unlink(db_path)
    # Also cleanup WAL files if they exist
    for suffix in ['-wal', '-shm']:
        wal_file = db_path + suffix
        if os.path.exists(wal_file):
            os.unlink(wal_file)


@pytest.fixture
def sqlite_store(temp_db_path):
    store = SqliteStore(temp_db_path)
    yield store
    store.close()


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def clock():
    """Frozen 'now' used by the recency gate."""
    return lambda: NOW


def make_thread(n: int = 1, age: timedelta = timedelta(minutes=30), **overrides) -> Thread:
    fields = dict(
        link=f"https://lowendtalk.com/discussion/{1000 + n}/offer-{n}",
        domain="lowendtalk",
        category="offers",
        title=f"Offer {n}: 2GB KVM VPS",
        description=f"Deal number {n}",
        creator=f"host{n}",
        publish_time=NOW - age,
        first_seen_time=NOW,
    )
    fields.update(overrides)
    return Thread(**fields)


def make_comment(thread: Thread, cid: int, age: timedelta = timedelta(minutes=5), **overrides) -> Comment:
    fields = dict(
        comment_id=f"lowendtalk.com_{cid}",
        thread_link=thread.link,
        author=f"user{cid}",
        message=f"Comment {cid} on {thread.title}",
        created_time=NOW - age,
        recorded_time=NOW,
        permalink=f"{thread.link}/comment/{cid}/#Comment_{cid}",
    )
    fields.update(overrides)
    return Comment(**fields)


class FakeFeedReader:
    """Returns canned threads per feed URL; raises FetchError for URLs in ``failing``."""

    def __init__(self, feeds: Dict[str, List[Thread]] = None, failing=()):
        self.feeds = feeds or {}
        self.failing = set(failing)
        self.calls: List[str] = []

    def fetch_feed(self, url: str) -> List[Thread]:
        self.calls.append(url)
        if url in self.failing:
            raise FetchError(f"{url} returned status 503")
        return list(self.feeds.get(url, []))


class FakePageFetcher:
    """Serves canned thread pages and comment pages.

    ``pages`` maps thread link -> {page number: [comments] or an Exception}.
    Pages that are not listed come back empty.
    """

    def __init__(self, threads: Dict[str, Thread] = None, pages: Dict[str, Dict[int, object]] = None):
        self.threads = threads or {}
        self.pages = pages or {}
        self.page_calls: List[tuple] = []
        self.thread_calls: List[str] = []

    def fetch_thread_page(self, url: str) -> Thread:
        self.thread_calls.append(url)
        if url not in self.threads:
            raise FetchError(f"{url} returned status 404")
        return self.threads[url]

    def fetch_comments_page(self, url: str, page: int) -> List[Comment]:
        self.page_calls.append((url, page))
        result = self.pages.get(url, {}).get(page, [])
        if isinstance(result, Exception):
            raise result
        return list(result)


class RecordingNotifier(Notifier):
    """Notifier that keeps every rendered message instead of sending it."""

    channel = "recording"

    def __init__(self, fail: bool = False):
        super().__init__()
        self.messages: List[str] = []
        self.fail = fail

    @classmethod
    def from_config(cls, config) -> "RecordingNotifier":
        return cls()

    def send(self, message: str) -> None:
        if self.fail:
            raise NotificationError("recording channel is down")
        self.messages.append(message)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def base_config():
    """Valid config with no filters and a telegram channel (credentials are fake)."""
    return MonitorConfig(
        urls=["https://lowendtalk.com/categories/offers/feed.rss"],
        comment_filter="all",
        telegrambot="123:abc",
        chat_id="42",
    )


@pytest.fixture
def build_monitor(memory_store, notifier, clock):
    """Factory for a ForumMonitor wired to fakes with throttling disabled."""

    def _build(config, feed_reader=None, page_fetcher=None, store=None, **kwargs):
        return ForumMonitor(
            store or memory_store,
            config,
            feed_reader=feed_reader or FakeFeedReader(),
            page_fetcher=page_fetcher or FakePageFetcher(),
            throttle=ThrottlePolicy.disabled(),
            clock=clock,
            notifier_factory=lambda cfg: notifier,
            **kwargs,
        )

    return _build
