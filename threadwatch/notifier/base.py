"""Notifier contract and channel registry."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

import requests

from threadwatch.backend.utils.errors import ConfigError, NotificationError
from threadwatch.models.forum_models import Comment, Thread
from threadwatch.notifier.formatting import format_comment_message, format_thread_message

NOTIFY_TIMEOUT_SECONDS = 10

NOTIFIER_BACKENDS: Dict[str, Callable[[Any], "Notifier"]] = {}


def register_notifier(name: str):
    """Class decorator adding a channel to the registry under ``name``."""
    def decorator(cls):
        NOTIFIER_BACKENDS[name] = cls.from_config
        cls.channel = name
        return cls
    return decorator


class Notifier(ABC):
    """A notification channel.

    ``send`` delivers a pre-formatted message; ``send_thread`` and
    ``send_comment`` render the standard templates and call ``send``.
    Every failure surfaces as NotificationError.
    """

    channel = ""

    def __init__(self, timeout: float = NOTIFY_TIMEOUT_SECONDS, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    @abstractmethod
    def send(self, message: str) -> None:
        """Deliver ``message``.

        Raises:
            NotificationError: Delivery failed
        """

    @classmethod
    @abstractmethod
    def from_config(cls, config) -> "Notifier":
        """Build the channel from configuration."""

    def send_thread(self, thread: Thread, annotation: str = "") -> None:
        self.send(format_thread_message(thread, annotation))

    def send_comment(self, thread: Thread, comment: Comment, annotation: str = "") -> None:
        self.send(format_comment_message(thread, comment, annotation))

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Perform one HTTP call, mapping failures and non-200 to NotificationError."""
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise NotificationError(f"{self.channel} request failed: {e}") from e

        if response.status_code != 200:
            raise NotificationError(
                f"{self.channel} returned status {response.status_code}: {response.text[:200]}"
            )
        return response


def create_notifier(config) -> Notifier:
    """Build the channel selected by ``config.notice_type``.

    Raises:
        ConfigError: Unknown channel
    """
    factory = NOTIFIER_BACKENDS.get(config.notice_type)
    if factory is None:
        raise ConfigError(
            f"Unsupported notice type '{config.notice_type}'. "
            f"Must be one of: {', '.join(sorted(NOTIFIER_BACKENDS))}"
        )
    return factory(config)
