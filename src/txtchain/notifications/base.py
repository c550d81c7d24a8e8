"""Notification channel interface."""

from abc import ABC, abstractmethod


class NotificationChannel(ABC):
    """A delivery channel for user notifications."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Channel name identifier."""
        pass

    @abstractmethod
    def accepts(self, contact: str) -> bool:
        """Check whether this channel can deliver to a contact address."""
        pass

    @abstractmethod
    async def send(self, contact: str, message: str) -> None:
        """Deliver a message.

        Raises:
            NotificationError: Delivery failed
        """
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass
