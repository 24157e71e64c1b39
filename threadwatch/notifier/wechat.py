"""WeChat channel via the Xizhi push service."""

from typing import Optional

import requests

from threadwatch.backend.utils.errors import NotificationError
from threadwatch.backend.utils.logging_config import get_logger
from threadwatch.notifier.base import NOTIFY_TIMEOUT_SECONDS, Notifier, register_notifier

logger = get_logger(__name__)

XIZHI_SEND_URL = "https://xizhi.qqoq.net/{key}.send"
WECHAT_TITLE = "Forum update"


@register_notifier("wechat")
class WeChatNotifier(Notifier):
    def __init__(
        self,
        key: str,
        timeout: float = NOTIFY_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(timeout=timeout, session=session)
        self.key = key

    @classmethod
    def from_config(cls, config) -> "WeChatNotifier":
        return cls(config.wechat_key)

    def send(self, message: str) -> None:
        url = XIZHI_SEND_URL.format(key=self.key)
        try:
            self._request("GET", url, params={"title": WECHAT_TITLE, "content": message})
        except NotificationError as e:
            logger.warning("wechat_send_failed", error=str(e))
            raise
        logger.info("wechat_message_sent", length=len(message))
