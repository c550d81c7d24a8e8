"""Tests for quote providers."""

from decimal import Decimal

import httpx
import pytest

from txtchain.errors import QuoteError
from txtchain.routing.base import QuoteConstraints, TokenPair
from txtchain.routing.dry_run import SimulatedQuoteProvider
from txtchain.routing.lifi import LiFiQuoteProvider

from tests.conftest import ALICE, BOB

USDC_POLYGON = TokenPair(137, 42161, "USDC", "USDC")
ETH_TO_USDC = TokenPair(1, 1, "ETH", "USDC")


class TestSimulatedQuotes:
    """Tests for the simulated quote provider and the shared quote cache."""

    @pytest.mark.asyncio
    async def test_minimum_respects_slippage(self):
        """The minimum output is never below (1 - slippage) x estimate."""
        provider = SimulatedQuoteProvider()
        constraints = QuoteConstraints(slippage=Decimal("0.01"))

        quote = await provider.get_quote(USDC_POLYGON, 100_000_000, ALICE, BOB, constraints)

        assert quote.to_amount_min >= Decimal("0.99") * quote.to_amount
        assert quote.to_amount_min <= quote.to_amount
        assert quote.respects_slippage(Decimal("0.01"))

    @pytest.mark.asyncio
    async def test_quote_fields(self):
        """Quotes carry chains, receiver, duration and a transaction payload."""
        provider = SimulatedQuoteProvider()

        quote = await provider.get_quote(USDC_POLYGON, 100_000_000, ALICE, BOB)

        assert quote.pair.is_cross_chain
        assert quote.receiver == BOB
        assert quote.execution_duration == 180
        assert quote.transaction_request["to"]
        assert quote.estimated_output == "99.7"

    @pytest.mark.asyncio
    async def test_identical_requests_are_cached(self):
        """Repeated requests inside the validity window return the same quote."""
        provider = SimulatedQuoteProvider()

        first = await provider.get_quote(ETH_TO_USDC, 10**18, ALICE, ALICE)
        second = await provider.get_quote(ETH_TO_USDC, 10**18, ALICE, ALICE)

        assert first.quote_id == second.quote_id
        assert provider.requests == 1

    @pytest.mark.asyncio
    async def test_refresh_bypasses_cache(self):
        provider = SimulatedQuoteProvider()

        first = await provider.get_quote(ETH_TO_USDC, 10**18, ALICE, ALICE)
        second = await provider.get_quote(ETH_TO_USDC, 10**18, ALICE, ALICE, refresh=True)

        assert first.quote_id != second.quote_id
        assert provider.requests == 2

    @pytest.mark.asyncio
    async def test_released_quote_is_not_served_again(self):
        """An executed quote is discarded from the cache."""
        provider = SimulatedQuoteProvider()

        first = await provider.get_quote(ETH_TO_USDC, 10**18, ALICE, ALICE)
        provider.release(first)
        second = await provider.get_quote(ETH_TO_USDC, 10**18, ALICE, ALICE)

        assert first.quote_id != second.quote_id

    @pytest.mark.asyncio
    async def test_unsupported_pair(self):
        """A token unknown on a chain yields a QuoteError with a reason."""
        provider = SimulatedQuoteProvider()

        with pytest.raises(QuoteError) as exc_info:
            await provider.get_quote(TokenPair(11155111, 137, "USDC", "USDC"), 1_000_000, ALICE, ALICE)

        assert exc_info.value.reasons == ["unsupported token pair"]


def lifi_provider(handler) -> LiFiQuoteProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LiFiQuoteProvider(base_url="https://lifi.test/v1", client=client)


def lifi_quote_body(to_amount: int, to_amount_min: int) -> dict:
    return {
        "tool": "stargate",
        "action": {
            "fromToken": {"address": "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359"},
            "toToken": {"address": "0xaf88d065e77c8cC2239327C5EDb3A432268e5831"},
            "fromAmount": "100000000",
        },
        "estimate": {
            "toAmount": str(to_amount),
            "toAmountMin": str(to_amount_min),
            "approvalAddress": "0x1231DEB6f5749EF6cE6943a275A1D3E7486F4EaE",
            "executionDuration": 95.5,
        },
        "transactionRequest": {
            "to": "0x1231DEB6f5749EF6cE6943a275A1D3E7486F4EaE",
            "data": "0xdeadbeef",
            "value": "0x0",
            "gasLimit": "0x493e0",
        },
    }


class TestLiFiQuotes:
    """Tests for the LI.FI quote provider."""

    @pytest.mark.asyncio
    async def test_parses_quote(self):
        """A successful response becomes a Quote with the request's parameters."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=lifi_quote_body(99_500_000, 99_100_000))

        provider = lifi_provider(handler)
        quote = await provider.get_quote(USDC_POLYGON, 100_000_000, ALICE, BOB)

        assert seen["params"]["fromChain"] == "137"
        assert seen["params"]["toChain"] == "42161"
        assert seen["params"]["fromAmount"] == "100000000"
        assert seen["params"]["fromAddress"] == ALICE
        assert seen["params"]["toAddress"] == BOB
        assert quote.to_amount == 99_500_000
        assert quote.to_amount_min == 99_100_000
        assert quote.execution_duration == 95
        assert quote.tool == "stargate"
        assert quote.transaction_request["data"] == "0xdeadbeef"
        assert not quote.is_simulated

    @pytest.mark.asyncio
    async def test_rejects_quote_outside_slippage(self):
        """A quote whose minimum breaks the slippage bound is refused."""
        provider = lifi_provider(
            lambda request: httpx.Response(200, json=lifi_quote_body(100_000_000, 90_000_000))
        )

        with pytest.raises(QuoteError):
            await provider.get_quote(USDC_POLYGON, 100_000_000, ALICE, BOB)

    @pytest.mark.asyncio
    async def test_error_reasons(self):
        """Aggregator errors are surfaced with per-tool reasons."""
        body = {
            "message": "No available quotes",
            "errors": [
                {"tool": "stargate", "message": "amount too low"},
                {"tool": "hop", "message": "no liquidity"},
            ],
        }
        provider = lifi_provider(lambda request: httpx.Response(404, json=body))

        with pytest.raises(QuoteError) as exc_info:
            await provider.get_quote(USDC_POLYGON, 100_000_000, ALICE, BOB)

        assert exc_info.value.reasons == ["stargate: amount too low", "hop: no liquidity"]

    @pytest.mark.asyncio
    async def test_error_message_without_reasons(self):
        provider = lifi_provider(
            lambda request: httpx.Response(400, json={"message": "Invalid fromAmount"})
        )

        with pytest.raises(QuoteError) as exc_info:
            await provider.get_quote(USDC_POLYGON, 100_000_000, ALICE, BOB)

        assert exc_info.value.reasons == ["Invalid fromAmount"]

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(QuoteError):
            await lifi_provider(handler).get_quote(USDC_POLYGON, 100_000_000, ALICE, BOB)

    @pytest.mark.asyncio
    async def test_malformed_quote(self):
        provider = lifi_provider(lambda request: httpx.Response(200, json={"tool": "x"}))

        with pytest.raises(QuoteError):
            await provider.get_quote(USDC_POLYGON, 100_000_000, ALICE, BOB)

    @pytest.mark.asyncio
    async def test_status(self):
        """Status lookups pass the chains through."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"status": "DONE"})

        status = await lifi_provider(handler).get_status("0xabc", from_chain=137, to_chain=42161)

        assert status == {"status": "DONE"}
        assert seen["path"] == "/v1/status"
        assert seen["params"] == {"txHash": "0xabc", "fromChain": "137", "toChain": "42161"}
