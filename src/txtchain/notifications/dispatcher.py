"""Best-effort notification dispatch.

Delivery failures are logged and never reach the caller. A contact
with no matching channel is skipped silently.
"""

import asyncio
import logging
from typing import Optional

from txtchain.errors import NotificationError
from txtchain.notifications.base import NotificationChannel
from txtchain.notifications.messages import format_outcome
from txtchain.settlement.models import SettlementOutcome, TransferRequest

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Routes outcome notifications to the first channel that accepts the contact."""

    def __init__(
        self,
        channels: Optional[list[NotificationChannel]] = None,
        timeout: float = 10.0,
    ):
        self.channels = channels or []
        self.timeout = timeout

    def channel_for(self, contact: str) -> Optional[NotificationChannel]:
        for channel in self.channels:
            if channel.accepts(contact):
                return channel
        return None

    async def notify(
        self,
        contact: Optional[str],
        outcome: SettlementOutcome,
        request: Optional[TransferRequest] = None,
    ) -> None:
        """Send an outcome notification. Never raises."""
        if not contact:
            return

        try:
            channel = self.channel_for(contact)
            if channel is None:
                logger.debug("No notification channel for contact, skipping")
                return

            message = format_outcome(outcome, request)
            await asyncio.wait_for(channel.send(contact, message), timeout=self.timeout)
        except NotificationError as e:
            logger.warning(f"Notification not delivered: {e}")
        except asyncio.TimeoutError:
            logger.warning(f"Notification timed out after {self.timeout}s")
        except Exception as e:
            logger.error(f"Notification dispatch error: {e}")

    async def close(self) -> None:
        for channel in self.channels:
            try:
                await channel.close()
            except Exception as e:
                logger.warning(f"Failed to close {channel.name} channel: {e}")
