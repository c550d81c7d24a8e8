"""Client for the off-chain fast settlement channel.

The channel batches transfers and finalizes them on-chain later. Its
acceptance is a queueing acknowledgment, not a final result; the
channel reports finalization through the /api/yellow/settle callback.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from txtchain.errors import RouteUnavailableError
from txtchain.settlement.models import TransferRequest

logger = logging.getLogger(__name__)


@dataclass
class FastChannelResult:
    """Channel response to a submitted transfer."""

    accepted: bool
    channel_ref: Optional[str] = None
    message: str = ""


class FastSettlementClient:
    """HTTP client for the batch settlement service."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def submit(self, request: TransferRequest) -> FastChannelResult:
        """Queue a transfer with the channel.

        Returns:
            FastChannelResult; accepted=False when the channel declines

        Raises:
            RouteUnavailableError: Channel unreachable, timed out, or
                answered with a non-2xx or non-JSON response
        """
        if not self.is_configured:
            raise RouteUnavailableError("Fast channel not configured")

        payload = {
            "recipientAddress": request.to_address,
            "senderAddress": request.from_address,
            "amount": request.amount,
            "token": request.token,
            "userPhone": request.notify_contact or "",
        }

        try:
            response = await self._get_client().post(
                f"{self.base_url}/api/yellow/send",
                json=payload,
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise RouteUnavailableError(f"Fast channel unreachable: {type(e).__name__}: {e}")

        if not response.is_success:
            raise RouteUnavailableError(f"Fast channel returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            raise RouteUnavailableError("Fast channel returned a non-JSON response")
        if not isinstance(data, dict):
            raise RouteUnavailableError("Fast channel returned an unexpected response")

        if not data.get("success"):
            message = data.get("error") or "Fast channel declined the transfer"
            logger.warning(f"Fast channel declined {request.describe()}: {message}")
            return FastChannelResult(accepted=False, message=message)

        channel_ref = data.get("transactionId")
        logger.info(f"Queued via fast channel: {channel_ref}")
        return FastChannelResult(
            accepted=True,
            channel_ref=str(channel_ref) if channel_ref is not None else None,
            message=data.get("message", "Queued via fast channel"),
        )
