"""Shared HTTP helpers for the source adapters."""

from typing import Optional
from urllib.parse import urlparse

import requests

from threadwatch.backend.utils.errors import FetchError

FETCH_TIMEOUT_SECONDS = 30

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36 threadwatch/1.0"
)

DEFAULT_CATEGORY = "offers"


def build_session() -> requests.Session:
    """Create a requests session with the crawler's User-Agent."""
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})
    return session


def get_page(session: requests.Session, url: str, timeout: float = FETCH_TIMEOUT_SECONDS) -> str:
    """GET a URL and return the body text.

    Raises:
        FetchError: On connection errors, timeouts or any non-200 status
    """
    try:
        response = session.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise FetchError(f"Request to {url} failed: {e}") from e

    if response.status_code != 200:
        raise FetchError(f"{url} returned status {response.status_code}", status_code=response.status_code)

    return response.text


def site_domain(url: str) -> str:
    """First label of the host, e.g. "lowendtalk" for lowendtalk.com."""
    host = urlparse(url).hostname or ""
    return host.split(".")[0]


def site_hostname(url: str) -> str:
    return urlparse(url).hostname or ""


def site_category(url: str, default: Optional[str] = DEFAULT_CATEGORY) -> str:
    """Path segment following ``/categories/``, or ``default``."""
    parts = urlparse(url).path.split("/")
    for i, part in enumerate(parts):
        if part == "categories" and i + 1 < len(parts) and parts[i + 1]:
            return parts[i + 1]
    return default
