"""Telegram Bot API channel."""

from typing import Optional

import requests

from threadwatch.backend.utils.errors import NotificationError
from threadwatch.backend.utils.logging_config import get_logger
from threadwatch.notifier.base import NOTIFY_TIMEOUT_SECONDS, Notifier, register_notifier

logger = get_logger(__name__)

TELEGRAM_SEND_URL = "https://api.telegram.org/bot{token}/sendMessage"


@register_notifier("telegram")
class TelegramNotifier(Notifier):
    """Sends messages to one chat through a bot's ``sendMessage`` method."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        timeout: float = NOTIFY_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(timeout=timeout, session=session)
        self.bot_token = bot_token
        self.chat_id = chat_id

    @classmethod
    def from_config(cls, config) -> "TelegramNotifier":
        return cls(config.telegrambot, config.chat_id)

    def send(self, message: str) -> None:
        url = TELEGRAM_SEND_URL.format(token=self.bot_token)
        try:
            self._request("POST", url, data={"chat_id": self.chat_id, "text": message})
        except NotificationError as e:
            logger.warning("telegram_send_failed", chat_id=self.chat_id, error=str(e))
            raise
        logger.info("telegram_message_sent", chat_id=self.chat_id, length=len(message))
