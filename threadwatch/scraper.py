"""HTML page source adapter for Vanilla Forums thread pages.

Parses the discussion header of a thread page into a Thread and the
``li.ItemComment`` entries of a comment page into Comments.
"""

from datetime import datetime, timezone
from typing import List, Optional

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
    site_hostname,
)
from threadwatch.models.forum_models import Comment, Thread, utc_now

logger = get_logger(__name__)

HEADER_SELECTOR = "div.Item-Header.DiscussionHeader"


def parse_datetime_attr(value: Optional[str]) -> Optional[datetime]:
    """Parse a ``<time datetime="...">`` value into an aware UTC datetime."""
    if not value:
        return None
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def comments_page_url(thread_url: str, page: int) -> str:
    return f"{thread_url.rstrip('/')}/p{page}"


def comment_permalink(thread_url: str, cid: str) -> str:
    return f"{thread_url.rstrip('/')}/comment/{cid}/#Comment_{cid}"


def _text(node) -> str:
    return node.get_text(" ", strip=True) if node is not None else ""


class PageFetcher:
    """Fetches thread and comment pages over HTTP and parses them.

    Example:
        >>> fetcher = PageFetcher()
        >>> thread = fetcher.fetch_thread_page("https://lowendtalk.com/discussion/1/foo")
        >>> comments = fetcher.fetch_comments_page(thread.link, 2)
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = FETCH_TIMEOUT_SECONDS):
        self.session = session or build_session()
        self.timeout = timeout

    def fetch_thread_page(self, url: str) -> Thread:
        """Fetch a thread page and build a Thread from its header.

        Raises:
            FetchError: Network failure, timeout or non-200 status
            ParseError: The page has no thread title
        """
        html = get_page(self.session, url, timeout=self.timeout)
        return self.parse_thread_page(html, url)

    def parse_thread_page(self, html: str, url: str) -> Thread:
        soup = BeautifulSoup(html, "html.parser")

        title = _text(soup.select_one("#Item_0.PageTitle h1"))
        if not title:
            raise ParseError(f"No thread title found on {url}")

        header = soup.select_one(HEADER_SELECTOR)
        creator = ""
        publish_time = None
        category = ""
        if header is not None:
            creator = _text(header.select_one(".Author .Username"))
            time_node = header.select_one("time[datetime]")
            if time_node is not None:
                publish_time = parse_datetime_attr(time_node.get("datetime"))
            category = _text(header.select_one(".Category a"))

        description = _text(soup.select_one(".Message.userContent"))

        return Thread(
            link=url,
            domain=site_domain(url),
            category=category or site_category(url),
            title=title,
            description=description,
            creator=creator,
            publish_time=publish_time or utc_now(),
            first_seen_time=utc_now(),
        )

    def fetch_comments_page(self, url: str, page: int) -> List[Comment]:
        """Fetch page ``page`` of a thread's comments.

        An empty list means the page has no comments, which the orchestrator
        treats as the end of the thread.

        Raises:
            FetchError: Network failure, timeout or non-200 status
        """
        html = get_page(self.session, comments_page_url(url, page), timeout=self.timeout)
        return self.parse_comments(html, url)

    def parse_comments(self, html: str, thread_url: str) -> List[Comment]:
        soup = BeautifulSoup(html, "html.parser")
        hostname = site_hostname(thread_url)

        comments: List[Comment] = []
        for item in soup.select("li.ItemComment"):
            try:
                comments.append(self._parse_comment(item, thread_url, hostname))
            except ParseError as e:
                logger.warning("comment_parse_skipped", thread_link=thread_url, error=str(e))
        return comments

    def _parse_comment(self, item, thread_url: str, hostname: str) -> Comment:
        item_id = item.get("id") or ""
        _, _, cid = item_id.partition("_")
        if not cid:
            raise ParseError(f"Comment element has no usable id: {item_id!r}")

        time_node = item.select_one("time[datetime]")
        created_time = parse_datetime_attr(time_node.get("datetime")) if time_node else None

        return Comment(
            comment_id=f"{hostname}_{cid}",
            thread_link=thread_url,
            author=_text(item.select_one("a.Username")),
            message=_text(item.select_one("div.Message")),
            created_time=created_time or utc_now(),
            recorded_time=utc_now(),
            permalink=comment_permalink(thread_url, cid),
            role=_text(item.select_one("span.RoleTitle")),
        )
