"""LI.FI aggregator integration.

Same-chain swaps and cross-chain bridges through a single quote endpoint.
API docs: https://docs.li.fi/li.fi-api/li.fi-api
"""

import logging
from decimal import Decimal
from typing import Optional

import httpx

from txtchain.chains import resolve_token_address
from txtchain.errors import QuoteError
from txtchain.routing.base import Quote, QuoteConstraints, QuoteProvider, TokenPair

logger = logging.getLogger(__name__)

LIFI_API_URL = "https://li.quest/v1"


class LiFiQuoteProvider(QuoteProvider):
    """LI.FI quote provider.

    The quote's transactionRequest is executed as-is by the chain
    executor; the approval address is the spender that needs allowance
    for non-native source tokens.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = LIFI_API_URL,
        integrator: str = "TextToChain",
        ttl_seconds: int = 30,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(ttl_seconds=ttl_seconds)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.integrator = integrator
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return "LI.FI"

    def _get_headers(self) -> dict:
        """Get API headers with the optional API key."""
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-lifi-api-key"] = self.api_key
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _fetch_quote(
        self,
        pair: TokenPair,
        amount: int,
        sender: str,
        receiver: str,
        constraints: QuoteConstraints,
    ) -> Quote:
        from_address = resolve_token_address(pair.from_token, pair.from_chain)
        to_address = resolve_token_address(pair.to_token, pair.to_chain)
        if not from_address:
            raise QuoteError(f"Token {pair.from_token} not supported on chain {pair.from_chain}")
        if not to_address:
            raise QuoteError(f"Token {pair.to_token} not supported on chain {pair.to_chain}")

        params = {
            "fromChain": pair.from_chain,
            "toChain": pair.to_chain,
            "fromToken": from_address,
            "toToken": to_address,
            "fromAmount": str(amount),
            "fromAddress": sender,
            "toAddress": receiver,
            "integrator": self.integrator,
            "slippage": str(constraints.slippage),
            "order": constraints.order,
        }

        try:
            response = await self._get_client().get(
                f"{self.base_url}/quote",
                headers=self._get_headers(),
                params=params,
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise QuoteError(f"Failed to get LI.FI quote: {type(e).__name__}: {e}")

        data = _json_or_empty(response)

        if response.status_code != 200:
            reasons = [
                f"{err.get('tool', 'lifi')}: {err.get('message', '')}"
                for err in data.get("errors", []) or []
                if isinstance(err, dict)
            ]
            if reasons:
                raise QuoteError(f"LI.FI error: {', '.join(reasons)}", reasons=reasons)
            message = data.get("message") or response.text or f"HTTP {response.status_code}"
            raise QuoteError(f"LI.FI error: {message}", reasons=[message])

        try:
            estimate = data["estimate"]
            action = data.get("action", {})
            return Quote(
                pair=pair,
                from_token_address=action.get("fromToken", {}).get("address", from_address),
                to_token_address=action.get("toToken", {}).get("address", to_address),
                from_amount=int(action.get("fromAmount", amount)),
                to_amount=int(estimate["toAmount"]),
                to_amount_min=int(estimate["toAmountMin"]),
                approval_address=estimate.get("approvalAddress", ""),
                execution_duration=int(Decimal(str(estimate.get("executionDuration", 0)))),
                transaction_request=data.get("transactionRequest") or {},
                sender=sender,
                receiver=receiver,
                tool=data.get("tool", ""),
                slippage=constraints.slippage,
                ttl_seconds=self.ttl_seconds,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise QuoteError(f"Malformed LI.FI quote: {e}")

    async def get_status(
        self, tx_hash: str, from_chain: Optional[int] = None, to_chain: Optional[int] = None
    ) -> dict:
        """Get transfer status from LI.FI."""
        params = {"txHash": tx_hash}
        if from_chain:
            params["fromChain"] = from_chain
        if to_chain:
            params["toChain"] = to_chain

        try:
            response = await self._get_client().get(
                f"{self.base_url}/status",
                headers=self._get_headers(),
                params=params,
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise QuoteError(f"Failed to get status: {e}")

        if response.status_code != 200:
            raise QuoteError(f"Failed to get status: HTTP {response.status_code}")
        return _json_or_empty(response)


def _json_or_empty(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
