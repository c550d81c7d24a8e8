"""Request models for the HTTP API.

Bodies use camelCase field names. Numeric amounts are accepted as JSON
strings or numbers and handled as decimal strings.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


class RedeemRequest(ApiModel):
    """Redeem a voucher into TXTC plus ETH for gas."""

    voucher_code: str
    user_address: str
    user_phone: Optional[str] = None


class SwapRequest(ApiModel):
    """Swap TXTC for ETH through the entry point."""

    user_address: str
    token_amount: str
    min_eth_out: str = "0"
    user_phone: Optional[str] = None


class SendRequest(ApiModel):
    """Direct transfer signed with the sender's key."""

    user_private_key: str = Field(repr=False)
    to_address: str
    amount: str
    token: str = "TXTC"
    user_phone: Optional[str] = None


class FastSendRequest(ApiModel):
    """Send through the fast channel, with on-chain fallback."""

    from_address: str
    to_address: str
    amount: str
    token: str
    user_phone: Optional[str] = None


class ChannelSettlementRequest(ApiModel):
    """Fast channel finalization callback."""

    recipient_address: str
    amount: str
    tx_id: Optional[str] = None


class BridgeRequest(ApiModel):
    """Bridge or cross-chain swap through the aggregator."""

    from_chain: str
    to_chain: str
    from_token: str
    to_token: str
    amount: str
    user_address: str
    user_phone: Optional[str] = None


class QuoteRequest(ApiModel):
    """Aggregator quote, without execution."""

    from_chain: str
    to_chain: str
    from_token: str
    to_token: str
    amount: str
    user_address: str


class SwapQuoteRequest(ApiModel):
    """TXTC/ETH swap estimate at the current pool price."""

    amount: str
    is_token_to_eth: bool = True
