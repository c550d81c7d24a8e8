"""Abstract quote interface for bridge and cross-chain swap aggregators."""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from txtchain.chains import chain_name, format_units, get_token_decimals
from txtchain.errors import QuoteError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    """Source and destination token on their chains."""

    from_chain: int
    to_chain: int
    from_token: str  # symbol, e.g. "USDC"
    to_token: str

    @property
    def is_cross_chain(self) -> bool:
        return self.from_chain != self.to_chain

    def describe(self) -> str:
        return (
            f"{self.from_token} ({chain_name(self.from_chain)}) -> "
            f"{self.to_token} ({chain_name(self.to_chain)})"
        )


@dataclass(frozen=True)
class QuoteConstraints:
    """Caller-supplied limits for a quote."""

    slippage: Decimal = Decimal("0.005")  # 0.005 = 0.5%
    order: str = "CHEAPEST"  # CHEAPEST or FASTEST


@dataclass(frozen=True)
class Quote:
    """Immutable aggregator quote. Amounts are integer base units."""

    pair: TokenPair
    from_token_address: str
    to_token_address: str
    from_amount: int
    to_amount: int
    to_amount_min: int
    approval_address: str
    execution_duration: int  # seconds
    transaction_request: dict[str, Any] = field(default_factory=dict)
    sender: str = ""
    receiver: str = ""
    tool: str = ""
    slippage: Decimal = Decimal("0.005")
    is_simulated: bool = False
    quote_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=time.time)
    ttl_seconds: int = 30

    @property
    def age_seconds(self) -> float:
        return time.time() - self.created_at

    @property
    def is_expired(self) -> bool:
        """Check if quote is past its validity window."""
        return self.age_seconds > self.ttl_seconds

    @property
    def estimated_output(self) -> str:
        return format_units(self.to_amount, get_token_decimals(self.pair.to_token))

    @property
    def minimum_output(self) -> str:
        return format_units(self.to_amount_min, get_token_decimals(self.pair.to_token))

    def respects_slippage(self, slippage: Decimal) -> bool:
        """Minimum output is never below (1 - slippage) x estimated output."""
        floor = (Decimal(1) - slippage) * Decimal(self.to_amount)
        return Decimal(self.to_amount_min) >= floor


def quote_cache_key(
    pair: TokenPair,
    amount: int,
    sender: str,
    receiver: str,
    constraints: QuoteConstraints,
) -> tuple:
    return (
        pair,
        amount,
        sender.lower(),
        receiver.lower(),
        constraints.slippage,
        constraints.order,
    )


class QuoteProvider(ABC):
    """Base class for quote providers.

    Identical requests inside the validity window are served from a
    cache so that repeated quote fetches stay stable. A quote that has
    been executed is released and never served again.
    """

    def __init__(self, ttl_seconds: int = 30):
        self.ttl_seconds = ttl_seconds
        self._cache: dict[tuple, Quote] = {}

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        pass

    @abstractmethod
    async def _fetch_quote(
        self,
        pair: TokenPair,
        amount: int,
        sender: str,
        receiver: str,
        constraints: QuoteConstraints,
    ) -> Quote:
        """Fetch a fresh quote. Raise QuoteError when no route exists."""
        pass

    async def get_status(
        self, tx_hash: str, from_chain: Optional[int] = None, to_chain: Optional[int] = None
    ) -> dict:
        """Status of an executed transfer as reported by the aggregator."""
        return {"status": "UNKNOWN", "txHash": tx_hash}

    async def close(self) -> None:
        """Release network resources."""
        pass

    async def get_quote(
        self,
        pair: TokenPair,
        amount: int,
        sender: str,
        receiver: str,
        constraints: Optional[QuoteConstraints] = None,
        refresh: bool = False,
    ) -> Quote:
        """Get a quote for moving `amount` base units of pair.from_token.

        Args:
            pair: Source/destination tokens and chains
            amount: Amount in source-token base units
            sender: Address paying on the source chain
            receiver: Address receiving on the destination chain
            constraints: Slippage bound and route preference
            refresh: Bypass the cache

        Returns:
            Quote honoring the slippage bound

        Raises:
            QuoteError: No route, or the route violates the slippage bound
        """
        constraints = constraints or QuoteConstraints()
        key = quote_cache_key(pair, amount, sender, receiver, constraints)

        cached = self._cache.get(key)
        if cached is not None and not refresh and not cached.is_expired:
            logger.debug(f"Serving cached {self.name} quote {cached.quote_id} for {pair.describe()}")
            return cached

        logger.info(f"Requesting {self.name} quote: {amount} base units {pair.describe()}")
        quote = await self._fetch_quote(pair, amount, sender, receiver, constraints)

        if not quote.respects_slippage(constraints.slippage):
            raise QuoteError(
                f"{self.name} quote minimum {quote.to_amount_min} is below the "
                f"{constraints.slippage * 100}% slippage bound of {quote.to_amount}"
            )

        self._cache[key] = quote
        self._evict_expired()
        logger.info(
            f"{self.name} quote {quote.quote_id}: ~{quote.estimated_output} {pair.to_token} "
            f"(min {quote.minimum_output}, {quote.execution_duration}s)"
        )
        return quote

    def release(self, quote: Quote) -> None:
        """Discard a consumed quote from the cache."""
        for key, cached in list(self._cache.items()):
            if cached.quote_id == quote.quote_id:
                del self._cache[key]

    def _evict_expired(self) -> None:
        for key, cached in list(self._cache.items()):
            if cached.is_expired:
                del self._cache[key]
