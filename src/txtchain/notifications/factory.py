"""Factory for the notification dispatcher."""

import logging
from typing import Optional

import httpx

from txtchain.config import Settings, get_settings
from txtchain.notifications.base import NotificationChannel
from txtchain.notifications.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


def create_notification_dispatcher(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> NotificationDispatcher:
    """Create a dispatcher with every configured channel.

    With no channel configured the dispatcher drops all notifications.
    """
    settings = settings or get_settings()
    channels: list[NotificationChannel] = []

    if settings.has_sms:
        from txtchain.notifications.sms import SmsChannel

        channels.append(
            SmsChannel(
                account_sid=settings.twilio_account_sid,
                auth_token=settings.twilio_auth_token,
                from_number=settings.twilio_phone_number,
                timeout=settings.notification_timeout,
                client=client,
            )
        )
    else:
        logger.warning("Twilio not configured - SMS notifications disabled")

    if settings.telegram_bot_token:
        from txtchain.notifications.telegram import TelegramChannel

        channels.append(TelegramChannel(token=settings.telegram_bot_token))

    return NotificationDispatcher(channels, timeout=settings.notification_timeout)
