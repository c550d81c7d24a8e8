"""Tests for the fast settlement channel client."""

import json

import httpx
import pytest

from txtchain.errors import RouteUnavailableError
from txtchain.settlement.fast_channel import FastSettlementClient
from txtchain.settlement.models import TransferKind, TransferRequest

from tests.conftest import ALICE, BOB, fast_channel_client


def send_request() -> TransferRequest:
    return TransferRequest(
        kind=TransferKind.SEND,
        from_address=ALICE,
        to_address=BOB,
        token="TXTC",
        amount="5",
        notify_contact="+15551234567",
    )


class TestFastSettlementClient:
    """Tests for channel submission."""

    @pytest.mark.asyncio
    async def test_accepted(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "transactionId": "tx-9"})

        result = await fast_channel_client(handler).submit(send_request())

        assert result.accepted
        assert result.channel_ref == "tx-9"
        assert seen["url"] == "http://channel.test/api/yellow/send"
        assert seen["payload"] == {
            "recipientAddress": BOB,
            "senderAddress": ALICE,
            "amount": "5",
            "token": "TXTC",
            "userPhone": "+15551234567",
        }

    @pytest.mark.asyncio
    async def test_declined(self):
        client = fast_channel_client(
            lambda request: httpx.Response(200, json={"success": False, "error": "limit reached"})
        )

        result = await client.submit(send_request())

        assert not result.accepted
        assert result.message == "limit reached"

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, json={"error": "internal"}),
            httpx.Response(200, text="<html>gateway</html>"),
            httpx.Response(200, json=["unexpected"]),
        ],
    )
    @pytest.mark.asyncio
    async def test_unusable_response(self, response):
        client = fast_channel_client(lambda request: response)

        with pytest.raises(RouteUnavailableError):
            await client.submit(send_request())

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(RouteUnavailableError):
            await fast_channel_client(handler).submit(send_request())

    @pytest.mark.asyncio
    async def test_not_configured(self):
        client = FastSettlementClient("")

        assert not client.is_configured
        with pytest.raises(RouteUnavailableError):
            await client.submit(send_request())
