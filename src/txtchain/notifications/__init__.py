"""User notifications (SMS, Telegram)."""

from txtchain.notifications.base import NotificationChannel
from txtchain.notifications.dispatcher import NotificationDispatcher
from txtchain.notifications.factory import create_notification_dispatcher

__all__ = [
    "NotificationChannel",
    "NotificationDispatcher",
    "create_notification_dispatcher",
]
