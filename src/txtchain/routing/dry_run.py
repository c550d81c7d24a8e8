"""Simulated quote provider for dry-run mode and tests."""

import secrets
from decimal import ROUND_CEILING, Decimal
from typing import Optional

from txtchain.chains import get_token_decimals, is_native_token, resolve_token_address
from txtchain.errors import QuoteError
from txtchain.routing.base import Quote, QuoteConstraints, QuoteProvider, TokenPair

# Simulated market prices in USD. For demonstration only.
SIMULATED_PRICES: dict[str, Decimal] = {
    "ETH": Decimal("3200.00"),
    "MATIC": Decimal("0.55"),
    "USDC": Decimal("1.00"),
    "USDT": Decimal("1.00"),
    "TXTC": Decimal("0.32"),
}

SIMULATED_APPROVAL_ADDRESS = "0x1231DEB6f5749EF6cE6943a275A1D3E7486F4EaE"


class SimulatedQuoteProvider(QuoteProvider):
    """Quote provider backed by a static price table.

    Output is priced at `SIMULATED_PRICES` minus `fee_percent`; the
    minimum output applies the caller's slippage exactly.
    """

    def __init__(
        self,
        prices: Optional[dict[str, Decimal]] = None,
        fee_percent: Decimal = Decimal("0.3"),
        bridge_duration: int = 180,
        swap_duration: int = 30,
        ttl_seconds: int = 30,
    ):
        super().__init__(ttl_seconds=ttl_seconds)
        self.prices = prices or dict(SIMULATED_PRICES)
        self.fee_percent = fee_percent
        self.bridge_duration = bridge_duration
        self.swap_duration = swap_duration
        self.requests = 0

    @property
    def name(self) -> str:
        return "simulated"

    async def _fetch_quote(
        self,
        pair: TokenPair,
        amount: int,
        sender: str,
        receiver: str,
        constraints: QuoteConstraints,
    ) -> Quote:
        self.requests += 1

        from_address = resolve_token_address(pair.from_token, pair.from_chain)
        to_address = resolve_token_address(pair.to_token, pair.to_chain)
        if not from_address or not to_address:
            raise QuoteError(f"No route for {pair.describe()}", reasons=["unsupported token pair"])

        from_price = self.prices.get(pair.from_token.upper())
        to_price = self.prices.get(pair.to_token.upper())
        if not from_price or not to_price:
            raise QuoteError(f"No price for {pair.describe()}", reasons=["no liquidity"])

        from_decimals = get_token_decimals(pair.from_token)
        to_decimals = get_token_decimals(pair.to_token)

        from_human = Decimal(amount).scaleb(-from_decimals)
        out_human = from_human * from_price / to_price
        out_human *= Decimal(1) - self.fee_percent / Decimal(100)
        to_amount = int(out_human.scaleb(to_decimals))
        floor = Decimal(to_amount) * (Decimal(1) - constraints.slippage)
        to_amount_min = int(floor.to_integral_value(rounding=ROUND_CEILING))

        return Quote(
            pair=pair,
            from_token_address=from_address,
            to_token_address=to_address,
            from_amount=amount,
            to_amount=to_amount,
            to_amount_min=to_amount_min,
            approval_address=SIMULATED_APPROVAL_ADDRESS,
            execution_duration=self.bridge_duration if pair.is_cross_chain else self.swap_duration,
            transaction_request={
                "to": SIMULATED_APPROVAL_ADDRESS,
                "data": "0x" + secrets.token_hex(68),
                "value": hex(amount) if is_native_token(from_address) else "0x0",
                "chainId": pair.from_chain,
            },
            sender=sender,
            receiver=receiver,
            tool="simulated",
            slippage=constraints.slippage,
            is_simulated=True,
            ttl_seconds=self.ttl_seconds,
        )
