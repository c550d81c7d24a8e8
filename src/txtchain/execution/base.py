"""Base interfaces for on-chain execution.

Execution flow for one operation:
1. Build calldata for the action
2. Sign with the service wallet (or the caller's key for user-signed sends)
3. Broadcast
4. Wait for the receipt: success, revert, or timeout (outcome unknown)

Operations of one logical transfer go through execute_sequence(), which
never submits a step before the previous one is confirmed.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from txtchain.chains import MAX_UINT256, format_units, get_token_decimals, is_native_token

logger = logging.getLogger(__name__)


class ChainAction(str, Enum):
    """Kinds of chain operations."""

    MINT = "mint"
    BURN = "burn"
    TRANSFER = "transfer"
    NATIVE_TRANSFER = "native_transfer"
    APPROVE = "approve"
    REDEEM = "redeem"
    SWAP = "swap"
    CONTRACT_CALL = "contract_call"


# Contract functions per action: (signature, argument types)
FUNCTION_ABIS: dict[ChainAction, tuple[str, list[str]]] = {
    ChainAction.MINT: ("mint(address,uint256)", ["address", "uint256"]),
    ChainAction.BURN: ("burnFromAny(address,uint256)", ["address", "uint256"]),
    ChainAction.TRANSFER: ("transfer(address,uint256)", ["address", "uint256"]),
    ChainAction.APPROVE: ("approve(address,uint256)", ["address", "uint256"]),
    ChainAction.REDEEM: ("redeemVoucher(string,address,bool)", ["string", "address", "bool"]),
    ChainAction.SWAP: (
        "swapTokenForEth(address,uint256,uint256)",
        ["address", "uint256", "uint256"],
    ),
}

# Events decoded into TxReceipt.outputs: signature -> non-indexed field names
EVENT_ABIS: dict[str, list[str]] = {
    "VoucherRedeemed(address,uint256,uint256,uint256,uint256)": [
        "face_value",
        "token_amount",
        "gas_reserve",
        "eth_amount",
    ],
    "TokensSwapped(address,uint256,uint256)": ["token_in", "eth_out"],
}


@dataclass
class ChainOperation:
    """A single on-chain operation."""

    action: ChainAction
    chain_id: int
    to: str  # contract address, or recipient for native transfers
    args: tuple = ()
    value: int = 0
    data: Optional[str] = None  # raw calldata for CONTRACT_CALL
    gas_limit: Optional[int] = None
    gas_price: Optional[int] = None
    signer_key: Optional[str] = field(default=None, repr=False)
    description: str = ""

    def label(self) -> str:
        return self.description or f"{self.action.value} on {self.to}"


@dataclass
class TxReceipt:
    """Confirmed transaction."""

    tx_hash: str
    success: bool = True
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    outputs: dict[str, int] = field(default_factory=dict)
    operation: Optional[ChainOperation] = None


# ======================
# Operation builders
# ======================


def mint_op(chain_id: int, token: str, to: str, amount: int) -> ChainOperation:
    return ChainOperation(
        ChainAction.MINT, chain_id, token, (to, amount), description=f"mint {amount} to {to}"
    )


def burn_op(chain_id: int, token: str, holder: str, amount: int) -> ChainOperation:
    return ChainOperation(
        ChainAction.BURN, chain_id, token, (holder, amount), description=f"burn {amount} from {holder}"
    )


def transfer_op(
    chain_id: int, token: str, to: str, amount: int, signer_key: Optional[str] = None
) -> ChainOperation:
    return ChainOperation(
        ChainAction.TRANSFER,
        chain_id,
        token,
        (to, amount),
        signer_key=signer_key,
        description=f"transfer {amount} to {to}",
    )


def native_transfer_op(chain_id: int, to: str, amount: int) -> ChainOperation:
    return ChainOperation(
        ChainAction.NATIVE_TRANSFER,
        chain_id,
        to,
        value=amount,
        gas_limit=21000,
        description=f"send {amount} wei to {to}",
    )


def approve_op(chain_id: int, token: str, spender: str, amount: int = MAX_UINT256) -> ChainOperation:
    return ChainOperation(
        ChainAction.APPROVE, chain_id, token, (spender, amount), description=f"approve {spender}"
    )


def redeem_op(chain_id: int, entry_point: str, voucher_code: str, user: str) -> ChainOperation:
    # autoSwap: the contract swaps the gas reserve to ETH for the user
    return ChainOperation(
        ChainAction.REDEEM,
        chain_id,
        entry_point,
        (voucher_code, user, True),
        description=f"redeem voucher for {user}",
    )


def swap_op(
    chain_id: int, entry_point: str, user: str, token_amount: int, min_eth_out: int
) -> ChainOperation:
    return ChainOperation(
        ChainAction.SWAP,
        chain_id,
        entry_point,
        (user, token_amount, min_eth_out),
        description=f"swap {token_amount} TXTC for >= {min_eth_out} wei",
    )


def contract_call_op(chain_id: int, transaction_request: dict[str, Any]) -> ChainOperation:
    """Operation executing an aggregator-provided transaction payload."""
    return ChainOperation(
        ChainAction.CONTRACT_CALL,
        chain_id,
        transaction_request["to"],
        value=_parse_int(transaction_request.get("value", 0)),
        data=transaction_request.get("data") or "0x",
        gas_limit=_parse_int(transaction_request.get("gasLimit")) or None,
        gas_price=_parse_int(transaction_request.get("gasPrice")) or None,
        description=f"aggregator call to {transaction_request['to']}",
    )


def _parse_int(raw: Any) -> int:
    """Parse an int given as int, decimal string or hex string."""
    if raw is None or raw == "":
        return 0
    if isinstance(raw, int):
        return raw
    raw = str(raw)
    return int(raw, 16) if raw.startswith("0x") else int(raw)


class ChainExecutor(ABC):
    """Abstract base class for chain executors.

    The signing credential is process-wide and read-only after
    construction.
    """

    def __init__(self, home_chain_id: int, token_contract: str):
        self.home_chain_id = home_chain_id
        self.token_contract = token_contract

    @property
    @abstractmethod
    def sender_address(self) -> str:
        """Address of the service wallet."""
        pass

    @abstractmethod
    async def execute(self, operation: ChainOperation) -> TxReceipt:
        """Submit one operation and wait for confirmation.

        Raises:
            ChainError: Rejected or reverted
            ChainTimeoutError: Not confirmed in time; outcome unknown
        """
        pass

    @abstractmethod
    async def get_token_balance(self, chain_id: int, token: str, owner: str) -> int:
        """ERC-20 balance in base units."""
        pass

    @abstractmethod
    async def get_native_balance(self, chain_id: int, owner: str) -> int:
        """Native balance in wei."""
        pass

    @abstractmethod
    async def get_allowance(self, chain_id: int, token: str, owner: str, spender: str) -> int:
        """ERC-20 allowance in base units."""
        pass

    @abstractmethod
    async def get_pool_price(self, chain_id: int, pool: str) -> Decimal:
        """ETH per TXTC at the pool's current price."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass

    async def execute_sequence(self, operations: list[ChainOperation]) -> list[TxReceipt]:
        """Execute operations strictly in order.

        Each step is confirmed before the next is submitted. The first
        failure stops the sequence and propagates.
        """
        receipts = []
        for index, operation in enumerate(operations, start=1):
            logger.info(f"Step {index}/{len(operations)}: {operation.label()}")
            receipts.append(await self.execute(operation))
        return receipts

    async def ensure_allowance(
        self, chain_id: int, token: str, spender: str, amount: int
    ) -> Optional[TxReceipt]:
        """Approve `spender` for the service wallet's `token` if needed.

        Native tokens need no approval.

        Returns:
            Approval receipt, or None when nothing was submitted
        """
        if is_native_token(token):
            return None

        allowance = await self.get_allowance(chain_id, token, self.sender_address, spender)
        if allowance >= amount:
            logger.info(f"Allowance sufficient for {token}: {allowance}")
            return None

        logger.info(f"Setting allowance for {token} -> {spender}")
        receipt = await self.execute(approve_op(chain_id, token, spender))
        logger.info(f"Allowance set: {receipt.tx_hash}")
        return receipt

    async def get_balances(self, address: str) -> dict[str, str]:
        """TXTC and ETH balances on the home chain, in human units."""
        token_balance = await self.get_token_balance(
            self.home_chain_id, self.token_contract, address
        )
        eth_balance = await self.get_native_balance(self.home_chain_id, address)
        return {
            "txtc": format_units(token_balance, get_token_decimals("TXTC")),
            "eth": format_units(eth_balance, 18),
        }
