"""Simulated chain executor for dry-run mode and tests.

Keeps balances, allowances and the voucher table in memory and applies
each operation the way the deployed contracts would, including reverts.
Failures and timeouts can be injected per action.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Optional

from eth_account import Account
from eth_utils import keccak

from txtchain.chains import to_base_units
from txtchain.errors import ChainError, ChainTimeoutError
from txtchain.execution.base import ChainAction, ChainExecutor, ChainOperation, TxReceipt

logger = logging.getLogger(__name__)

SIMULATED_WALLET = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
SEPOLIA_CHAIN_ID = 11155111
DEFAULT_TOKEN_CONTRACT = "0x0F0E4A3F59C3B8794A9044a0dC0155fB3C3fA223"


class SimulatedChainExecutor(ChainExecutor):
    """In-memory chain executor.

    Attributes:
        submitted: Every operation that reached the simulated chain, in order
        fail_actions: Actions that revert when submitted
        timeout_actions: Actions whose confirmation never arrives
    """

    def __init__(
        self,
        home_chain_id: int = SEPOLIA_CHAIN_ID,
        token_contract: str = DEFAULT_TOKEN_CONTRACT,
        sender_address: str = SIMULATED_WALLET,
        vouchers: Optional[dict[str, Decimal]] = None,
        gas_reserve_percent: Decimal = Decimal("10"),
        eth_per_txtc: Decimal = Decimal("0.0001"),
        swap_fee_percent: Decimal = Decimal("0.3"),
        wallet_eth: Decimal = Decimal("10"),
        latency: float = 0.0,
    ):
        super().__init__(home_chain_id, token_contract)
        self._sender_address = sender_address
        self.vouchers = {code.upper(): value for code, value in (vouchers or {}).items()}
        self.gas_reserve_percent = gas_reserve_percent
        self.eth_per_txtc = eth_per_txtc
        self.swap_fee_percent = swap_fee_percent
        self.latency = latency

        self.fail_actions: set[ChainAction] = set()
        self.timeout_actions: set[ChainAction] = set()
        self.submitted: list[ChainOperation] = []
        self.redeemed: set[str] = set()

        self.token_balances: dict[tuple[str, str], int] = {}
        self.native_balances: dict[str, int] = {sender_address.lower(): to_base_units(wallet_eth, 18)}
        self.allowances: dict[tuple[str, str, str], int] = {}
        self._tx_count = 0

    @property
    def sender_address(self) -> str:
        return self._sender_address

    @property
    def submitted_actions(self) -> list[ChainAction]:
        return [operation.action for operation in self.submitted]

    def credit(self, token: str, owner: str, amount: int) -> None:
        """Add token base units to an account."""
        key = (token.lower(), owner.lower())
        self.token_balances[key] = self.token_balances.get(key, 0) + amount

    def _debit(self, token: str, owner: str, amount: int, reason: str) -> None:
        key = (token.lower(), owner.lower())
        balance = self.token_balances.get(key, 0)
        if balance < amount:
            raise ChainError(f"execution reverted: {reason}")
        self.token_balances[key] = balance - amount

    def _credit_native(self, owner: str, amount: int) -> None:
        key = owner.lower()
        self.native_balances[key] = self.native_balances.get(key, 0) + amount

    def _next_hash(self, operation: ChainOperation) -> str:
        self._tx_count += 1
        return "0x" + keccak(text=f"{self._tx_count}:{operation.label()}").hex()

    async def get_token_balance(self, chain_id: int, token: str, owner: str) -> int:
        return self.token_balances.get((token.lower(), owner.lower()), 0)

    async def get_native_balance(self, chain_id: int, owner: str) -> int:
        return self.native_balances.get(owner.lower(), 0)

    async def get_allowance(self, chain_id: int, token: str, owner: str, spender: str) -> int:
        return self.allowances.get((token.lower(), owner.lower(), spender.lower()), 0)

    async def get_pool_price(self, chain_id: int, pool: str) -> Decimal:
        return self.eth_per_txtc

    async def execute(self, operation: ChainOperation) -> TxReceipt:
        self.submitted.append(operation)
        tx_hash = self._next_hash(operation)
        logger.info(f"[SIMULATED] Submitted {operation.label()}: {tx_hash}")

        if self.latency:
            await asyncio.sleep(self.latency)

        if operation.action in self.timeout_actions:
            raise ChainTimeoutError(f"No confirmation for {tx_hash}", tx_hash=tx_hash)
        if operation.action in self.fail_actions:
            raise ChainError(f"{operation.label()} reverted", tx_hash=tx_hash)

        try:
            outputs = self._apply(operation)
        except ChainError as e:
            raise ChainError(str(e), tx_hash=tx_hash)

        return TxReceipt(
            tx_hash=tx_hash,
            success=True,
            block_number=self._tx_count,
            gas_used=21000,
            outputs=outputs,
            operation=operation,
        )

    def _apply(self, operation: ChainOperation) -> dict[str, int]:
        """Apply an operation's state change. Raises ChainError on revert."""
        action = operation.action
        token = operation.to

        if action == ChainAction.MINT:
            to, amount = operation.args
            self.credit(token, to, amount)
        elif action == ChainAction.BURN:
            holder, amount = operation.args
            self._debit(token, holder, amount, "burn amount exceeds balance")
        elif action == ChainAction.TRANSFER:
            to, amount = operation.args
            sender = (
                Account.from_key(operation.signer_key).address
                if operation.signer_key
                else self.sender_address
            )
            self._debit(token, sender, amount, "transfer amount exceeds balance")
            self.credit(token, to, amount)
        elif action == ChainAction.NATIVE_TRANSFER:
            wallet = self.sender_address.lower()
            if self.native_balances.get(wallet, 0) < operation.value:
                raise ChainError("insufficient funds for transfer")
            self.native_balances[wallet] -= operation.value
            self._credit_native(operation.to, operation.value)
        elif action == ChainAction.APPROVE:
            spender, amount = operation.args
            key = (token.lower(), self.sender_address.lower(), spender.lower())
            self.allowances[key] = amount
        elif action == ChainAction.REDEEM:
            return self._redeem(*operation.args)
        elif action == ChainAction.SWAP:
            return self._swap(*operation.args)
        return {}

    def _redeem(self, code: str, user: str, auto_swap: bool) -> dict[str, int]:
        code = code.upper()
        face = self.vouchers.get(code)
        if face is None or code in self.redeemed:
            raise ChainError("execution reverted: invalid or already redeemed voucher")
        self.redeemed.add(code)

        face_value = to_base_units(face, 18)
        gas_reserve = face_value * int(self.gas_reserve_percent * 100) // 10000 if auto_swap else 0
        token_amount = face_value - gas_reserve
        eth_amount = int(Decimal(gas_reserve) * self.eth_per_txtc)

        self.credit(self.token_contract, user, token_amount)
        self._credit_native(user, eth_amount)
        return {
            "face_value": face_value,
            "token_amount": token_amount,
            "gas_reserve": gas_reserve,
            "eth_amount": eth_amount,
        }

    def _swap(self, user: str, token_in: int, min_eth_out: int) -> dict[str, int]:
        eth_out = int(
            Decimal(token_in) * self.eth_per_txtc * (1 - self.swap_fee_percent / Decimal(100))
        )
        if eth_out < min_eth_out:
            raise ChainError("execution reverted: insufficient output amount")
        self._debit(self.token_contract, user, token_in, "swap amount exceeds balance")
        self._credit_native(user, eth_out)
        return {"token_in": token_in, "eth_out": eth_out}
