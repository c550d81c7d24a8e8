"""Tests for the chain and token registry."""

from decimal import Decimal

import pytest

from txtchain.chains import (
    NATIVE_TOKEN_ADDRESS,
    format_units,
    from_base_units,
    get_token_decimals,
    is_native_token,
    is_valid_address,
    resolve_chain_id,
    resolve_token_address,
    to_base_units,
)
from txtchain.errors import ValidationError


class TestChainResolution:
    """Tests for chain name and ID resolution."""

    def test_names_and_aliases(self):
        """Names and aliases resolve case-insensitively."""
        assert resolve_chain_id("ethereum") == 1
        assert resolve_chain_id("ARB") == 42161
        assert resolve_chain_id(" Polygon ") == 137
        assert resolve_chain_id("sepolia") == 11155111

    def test_numeric_ids(self):
        """Known numeric IDs resolve, unknown ones do not."""
        assert resolve_chain_id(8453) == 8453
        assert resolve_chain_id("10") == 10
        assert resolve_chain_id(999999) is None

    def test_unknown_chain(self):
        """Unknown names resolve to None."""
        assert resolve_chain_id("solana") is None
        assert resolve_chain_id(None) is None


class TestTokens:
    """Tests for token lookup."""

    def test_token_addresses(self):
        """Token symbols resolve per chain."""
        assert resolve_token_address("usdc", 137) == "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359"
        assert resolve_token_address("ETH", 1) == NATIVE_TOKEN_ADDRESS
        assert resolve_token_address("USDC", 11155111) is None
        assert resolve_token_address("DOGE", 1) is None

    def test_decimals(self):
        """Declared decimals per token, 18 by default."""
        assert get_token_decimals("USDC") == 6
        assert get_token_decimals("TXTC") == 18
        assert get_token_decimals("UNKNOWN") == 18

    def test_native_token(self):
        assert is_native_token(NATIVE_TOKEN_ADDRESS)
        assert not is_native_token("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48")

    def test_address_validation(self):
        """Hex addresses are valid, malformed ones are not."""
        assert is_valid_address("0x" + "a1" * 20)
        assert is_valid_address("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48")
        assert not is_valid_address("0x123")
        assert not is_valid_address("not-an-address")
        assert not is_valid_address("")
        assert not is_valid_address(None)


class TestAmountConversion:
    """Tests for exact decimal to base-unit conversion."""

    def test_to_base_units(self):
        """Whole and fractional amounts convert exactly."""
        assert to_base_units("10", 18) == 10 * 10**18
        assert to_base_units("1.5", 6) == 1_500_000
        assert to_base_units("0.1", 18) == 10**17
        assert to_base_units(Decimal("0.000001"), 6) == 1

    def test_excess_precision_rejected(self):
        """More fractional digits than the token supports is an error."""
        with pytest.raises(ValidationError):
            to_base_units("0.0000001", 6)

    def test_invalid_amounts_rejected(self):
        """Zero, negative, non-numeric and float amounts are rejected."""
        for amount in ("0", "-1", "abc", "", "NaN", "Infinity"):
            with pytest.raises(ValidationError):
                to_base_units(amount, 18)
        with pytest.raises(ValidationError):
            to_base_units(0.1, 18)

    def test_format_units(self):
        """Base units format without exponent or trailing zeros."""
        assert format_units(90 * 10**18, 18) == "90"
        assert format_units(10**15, 18) == "0.001"
        assert format_units(1_500_000, 6) == "1.5"
        assert format_units(0, 18) == "0"

    def test_from_base_units_is_exact(self):
        assert from_base_units(123456789, 6) == Decimal("123.456789")

    def test_long_amounts_convert_exactly(self):
        """Amounts beyond 28 significant digits are not rounded."""
        amount = "1234567890123.123456789012345678"

        base_units = to_base_units(amount, 18)

        assert base_units == 1234567890123123456789012345678
        assert format_units(base_units, 18) == amount
