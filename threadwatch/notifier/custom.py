"""Custom webhook channel: GET on a user-supplied URL template.

The template must contain the ``{message}`` placeholder, which is replaced
by the URL-encoded message text, e.g.
``https://push.example.com/send?token=abc&text={message}``.
"""

from typing import Optional
from urllib.parse import quote

import requests

from threadwatch.backend.utils.errors import NotificationError
from threadwatch.backend.utils.logging_config import get_logger
from threadwatch.notifier.base import NOTIFY_TIMEOUT_SECONDS, Notifier, register_notifier

logger = get_logger(__name__)

MESSAGE_PLACEHOLDER = "{message}"


def render_webhook_url(template: str, message: str) -> str:
    return template.replace(MESSAGE_PLACEHOLDER, quote(message, safe=""))


@register_notifier("custom")
class CustomNotifier(Notifier):
    def __init__(
        self,
        url_template: str,
        timeout: float = NOTIFY_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(timeout=timeout, session=session)
        self.url_template = url_template

    @classmethod
    def from_config(cls, config) -> "CustomNotifier":
        return cls(config.custom_url)

    def send(self, message: str) -> None:
        try:
            self._request("GET", render_webhook_url(self.url_template, message))
        except NotificationError as e:
            logger.warning("custom_webhook_send_failed", error=str(e))
            raise
        logger.info("custom_webhook_message_sent", length=len(message))
