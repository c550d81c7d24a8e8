"""Quote providers for bridges and cross-chain swaps."""

from txtchain.routing.base import Quote, QuoteConstraints, QuoteProvider, TokenPair
from txtchain.routing.factory import create_quote_provider

__all__ = [
    "Quote",
    "QuoteConstraints",
    "QuoteProvider",
    "TokenPair",
    "create_quote_provider",
]
