"""Chain and token registry.

Maps chain names to EVM chain IDs, token symbols to per-chain contract
addresses, and converts human amounts to integer base units. Amounts are
handled as Decimal end to end; floats never enter a conversion.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext
from typing import Optional, Union

from eth_utils import is_address

from txtchain.errors import ValidationError

NATIVE_TOKEN_ADDRESS = "0x0000000000000000000000000000000000000000"
MAX_UINT256 = 2**256 - 1

HOME_TOKEN = "TXTC"


@dataclass(frozen=True)
class ChainConfig:
    """Static configuration for an EVM chain."""

    name: str
    chain_id: int
    native_symbol: str
    explorer_url: str


CHAINS: dict[int, ChainConfig] = {
    1: ChainConfig("ethereum", 1, "ETH", "https://etherscan.io"),
    10: ChainConfig("optimism", 10, "ETH", "https://optimistic.etherscan.io"),
    56: ChainConfig("bsc", 56, "BNB", "https://bscscan.com"),
    137: ChainConfig("polygon", 137, "MATIC", "https://polygonscan.com"),
    8453: ChainConfig("base", 8453, "ETH", "https://basescan.org"),
    42161: ChainConfig("arbitrum", 42161, "ETH", "https://arbiscan.io"),
    43114: ChainConfig("avalanche", 43114, "AVAX", "https://snowtrace.io"),
    11155111: ChainConfig("sepolia", 11155111, "ETH", "https://sepolia.etherscan.io"),
}

# Chain name (and common aliases) -> chain ID
CHAIN_IDS: dict[str, int] = {
    "ethereum": 1,
    "eth": 1,
    "polygon": 137,
    "matic": 137,
    "arbitrum": 42161,
    "arb": 42161,
    "optimism": 10,
    "op": 10,
    "base": 8453,
    "avalanche": 43114,
    "avax": 43114,
    "bsc": 56,
    "bnb": 56,
    "sepolia": 11155111,
}

# Token symbol -> contract address per chain ID
TOKEN_ADDRESSES: dict[str, dict[int, str]] = {
    "USDC": {
        1: "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
        137: "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359",
        42161: "0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
        10: "0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85",
        8453: "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        43114: "0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E",
        56: "0x8AC76a51cc950d9822D68b83fE1Ad97B32Cd580d",
    },
    "USDT": {
        1: "0xdAC17F958D2ee523a2206206994597C13D831ec7",
        137: "0xc2132D05D31c914a87C6611C10748AEb04B58e8F",
        42161: "0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9",
        10: "0x94b008aA00579c1307B0EF2c499aD98a8ce58e58",
        8453: "0xfde4C96c8593536E31F229EA8f37b2ADa2699bb2",
        56: "0x55d398326f99059fF775485246999027B3197955",
    },
    "ETH": {
        1: NATIVE_TOKEN_ADDRESS,
        42161: NATIVE_TOKEN_ADDRESS,
        10: NATIVE_TOKEN_ADDRESS,
        8453: NATIVE_TOKEN_ADDRESS,
        11155111: NATIVE_TOKEN_ADDRESS,
    },
    "MATIC": {
        137: NATIVE_TOKEN_ADDRESS,
    },
    "TXTC": {
        11155111: "0x0F0E4A3F59C3B8794A9044a0dC0155fB3C3fA223",
    },
}

TOKEN_DECIMALS: dict[str, int] = {
    "USDC": 6,
    "USDT": 6,
    "ETH": 18,
    "MATIC": 18,
    "AVAX": 18,
    "BNB": 18,
    "TXTC": 18,
}


def resolve_chain_id(chain: Union[str, int, None]) -> Optional[int]:
    """Resolve a chain name, alias or numeric ID to a known chain ID."""
    if chain is None:
        return None
    if isinstance(chain, int):
        return chain if chain in CHAINS else None
    value = chain.strip().lower()
    if value.isdigit():
        chain_id = int(value)
        return chain_id if chain_id in CHAINS else None
    return CHAIN_IDS.get(value)


def chain_name(chain_id: int) -> str:
    """Canonical name of a chain ID."""
    config = CHAINS.get(chain_id)
    return config.name if config else str(chain_id)


def resolve_token_address(token: str, chain_id: int) -> Optional[str]:
    """Resolve a token symbol to its contract address on a chain."""
    token_map = TOKEN_ADDRESSES.get(token.upper())
    if not token_map:
        return None
    return token_map.get(chain_id)


def get_token_decimals(token: str) -> int:
    """Declared decimal precision of a token (18 when unknown)."""
    return TOKEN_DECIMALS.get(token.upper(), 18)


def is_native_token(address: str) -> bool:
    """Check whether a token address denotes the chain's native asset."""
    return address.lower() == NATIVE_TOKEN_ADDRESS


def is_valid_address(address: Optional[str]) -> bool:
    """Validate an EVM address (hex, 20 bytes, checksum if mixed case)."""
    if not address or not isinstance(address, str):
        return False
    return is_address(address.strip())


def parse_amount(amount: Union[str, Decimal, int, None]) -> Decimal:
    """Parse a human-unit amount, rejecting non-numeric and non-positive values."""
    if amount is None or isinstance(amount, float):
        raise ValidationError(f"Invalid amount: {amount!r}")
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise ValidationError(f"Amount must be positive: {amount!r}")
    return value


def to_base_units(amount: Union[str, Decimal, int], decimals: int) -> int:
    """Convert a human-unit amount to the token's integer base unit.

    Raises ValidationError when the amount carries more fractional digits
    than the token supports.
    """
    value = parse_amount(amount)
    with localcontext() as ctx:
        ctx.prec = len(value.as_tuple().digits) + decimals
        scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValidationError(
            f"Amount {amount} has more than {decimals} decimal places"
        )
    return int(scaled)


def from_base_units(value: int, decimals: int) -> Decimal:
    """Convert integer base units back to a human-unit Decimal."""
    value = Decimal(int(value))
    with localcontext() as ctx:
        ctx.prec = max(len(value.as_tuple().digits), 1) + decimals
        return value.scaleb(-decimals)


def format_units(value: int, decimals: int) -> str:
    """Format base units as a plain decimal string (no exponent)."""
    return format_amount(from_base_units(value, decimals))


def format_amount(amount: Decimal) -> str:
    """Format a Decimal without exponent or trailing zeros."""
    if amount == 0:
        return "0"
    with localcontext() as ctx:
        ctx.prec = max(len(amount.as_tuple().digits), ctx.prec)
        return format(amount.normalize(), "f")
