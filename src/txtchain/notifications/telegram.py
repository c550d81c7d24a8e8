"""Telegram notifications.

Delivers to numeric chat ids through an aiogram Bot.
"""

import logging
import re
from typing import Optional

from aiogram import Bot
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError

from txtchain.errors import NotificationError
from txtchain.notifications.base import NotificationChannel

logger = logging.getLogger(__name__)

CHAT_ID_PATTERN = re.compile(r"^-?\d+$")


class TelegramChannel(NotificationChannel):
    """Sends notifications as Telegram messages."""

    def __init__(self, bot: Optional[Bot] = None, token: Optional[str] = None):
        """Initialize with a bot, or a token to create one."""
        if bot is None and not token:
            raise ValueError("TelegramChannel needs a bot or a bot token")
        self._bot = bot or Bot(token=token)
        self._owns_bot = bot is None

    @property
    def name(self) -> str:
        return "telegram"

    def accepts(self, contact: str) -> bool:
        return bool(CHAT_ID_PATTERN.match(contact))

    async def send(self, contact: str, message: str) -> None:
        try:
            await self._bot.send_message(chat_id=int(contact), text=message)
        except TelegramForbiddenError:
            raise NotificationError(f"User {contact} has blocked the bot")
        except TelegramBadRequest as e:
            raise NotificationError(f"Bad request sending to {contact}: {e}")
        except Exception as e:
            raise NotificationError(f"Failed to send notification to {contact}: {e}")

        logger.info(f"Telegram notification sent to {contact}")

    async def close(self) -> None:
        """Close the bot session (call on shutdown)."""
        if self._owns_bot:
            await self._bot.session.close()
