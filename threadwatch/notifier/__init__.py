"""Notification channels.

Importing the package registers the telegram, wechat and custom channels.
"""

from threadwatch.notifier import custom, telegram, wechat  # noqa: F401
from threadwatch.notifier.base import Notifier, create_notifier

__all__ = ["Notifier", "create_notifier"]
