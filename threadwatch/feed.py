"""RSS feed source adapter.

Fetches a forum category feed (e.g. LowEndTalk's ``/categories/offers/feed.rss``)
and converts the newest entries into Thread candidates for the orchestrator.
"""

from calendar import timegm
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser
import requests
from bs4 import BeautifulSoup

from threadwatch.backend.utils.errors import ParseError
from threadwatch.backend.utils.logging_config import get_logger
from threadwatch.http_client import (
    FETCH_TIMEOUT_SECONDS,
    build_session,
    get_page,
    site_category,
    site_domain,
)
from threadwatch.models.forum_models import Thread, utc_now

logger = get_logger(__name__)

# Only the newest entries of each feed are considered per cycle
MAX_FEED_ITEMS = 6


def strip_html(value: str) -> str:
    """Plain text of an HTML fragment with whitespace collapsed."""
    if not value:
        return ""
    soup = BeautifulSoup(value, "html.parser")
    return " ".join(soup.get_text(" ", strip=True).split())


class FeedReader:
    """Reads Vanilla Forums RSS feeds into Thread objects.

    Attributes:
        session: requests session used for every fetch
        timeout: Per-request timeout in seconds
        max_items: Number of feed entries kept, in feed order

    Example:
        >>> reader = FeedReader()
        >>> threads = reader.fetch_feed("https://lowendtalk.com/categories/offers/feed.rss")
        >>> threads[0].domain, threads[0].category
        ('lowendtalk', 'offers')
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        max_items: int = MAX_FEED_ITEMS,
    ):
        self.session = session or build_session()
        self.timeout = timeout
        self.max_items = max_items

    def fetch_feed(self, url: str) -> List[Thread]:
        """Fetch and parse a feed, returning at most ``max_items`` threads.

        Entries that cannot be converted are logged and skipped; their
        siblings are still returned.

        Raises:
            FetchError: Network failure, timeout or non-200 status
            ParseError: Body is not a parseable feed
        """
        raw = get_page(self.session, url, timeout=self.timeout)
        return self.parse_feed(raw, url)

    def parse_feed(self, raw: str, url: str) -> List[Thread]:
        feed = feedparser.parse(raw)

        if feed.bozo and not feed.entries:
            raise ParseError(f"Feed {url} could not be parsed: {feed.bozo_exception}")

        domain = site_domain(url)
        category = site_category(url)

        threads: List[Thread] = []
        for entry in feed.entries[:self.max_items]:
            try:
                threads.append(self._entry_to_thread(entry, domain, category))
            except ParseError as e:
                logger.warning("feed_entry_skipped", url=url, error=str(e))

        logger.debug("feed_parsed", url=url, entries=len(feed.entries), kept=len(threads))
        return threads

    def _entry_to_thread(self, entry: Any, domain: str, category: str) -> Thread:
        link = (entry.get("link") or "").strip()
        if not link:
            raise ParseError("Feed entry has no link")

        description = entry.get("summary") or ""
        if not description and entry.get("content"):
            description = entry.content[0].get("value", "")

        return Thread(
            link=link,
            domain=domain,
            category=category,
            title=(entry.get("title") or "").strip(),
            description=strip_html(description),
            creator=(entry.get("author") or "").strip(),
            publish_time=self._entry_time(entry),
            first_seen_time=utc_now(),
        )

    @staticmethod
    def _entry_time(entry: Any) -> datetime:
        # Missing or unparseable dates fall back to "now" so fresh items still notify
        for date_field in ("published_parsed", "updated_parsed"):
            parsed = entry.get(date_field)
            if parsed:
                try:
                    return datetime.fromtimestamp(timegm(parsed), tz=timezone.utc)
                except (ValueError, OverflowError):
                    continue
        return utc_now()
