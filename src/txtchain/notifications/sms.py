"""SMS notifications through the Twilio REST API."""

import logging
import re
from typing import Optional

import httpx

from txtchain.errors import NotificationError
from txtchain.notifications.base import NotificationChannel

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01"

# E.164: '+' followed by up to 15 digits
PHONE_PATTERN = re.compile(r"^\+[1-9]\d{6,14}$")

# Twilio rejects bodies above 1600 characters
MAX_SMS_LENGTH = 1600


class SmsChannel(NotificationChannel):
    """Sends SMS messages from a Twilio number."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        base_url: str = TWILIO_API_URL,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return "sms"

    def accepts(self, contact: str) -> bool:
        return bool(PHONE_PATTERN.match(contact))

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def send(self, contact: str, message: str) -> None:
        url = f"{self.base_url}/Accounts/{self.account_sid}/Messages.json"
        try:
            response = await self._get_client().post(
                url,
                data={"To": contact, "From": self.from_number, "Body": message[:MAX_SMS_LENGTH]},
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise NotificationError(f"Twilio request failed: {type(e).__name__}: {e}")

        if not response.is_success:
            try:
                detail = response.json().get("message", response.text)
            except ValueError:
                detail = response.text
            raise NotificationError(f"Twilio error {response.status_code}: {detail}")

        logger.info(f"SMS sent to {mask_phone(contact)}")


def mask_phone(phone: str) -> str:
    """Mask a phone number for logs."""
    if len(phone) <= 4:
        return "****"
    return f"{phone[:3]}****{phone[-2:]}"
