"""EVM chain executor.

Talks JSON-RPC over httpx and signs locally with eth_account. Nonce
lookup, signing and broadcast for one sending address run under that
address's lock; receipt polling runs outside it.
"""

import asyncio
import logging
import time
from decimal import Decimal, localcontext
from typing import Any, Optional

import httpx
from eth_abi import decode, encode
from eth_account import Account
from eth_utils import decode_hex, function_signature_to_4byte_selector, keccak
from web3 import Web3

from txtchain.errors import ChainError, ChainTimeoutError
from txtchain.execution.base import (
    EVENT_ABIS,
    FUNCTION_ABIS,
    ChainAction,
    ChainExecutor,
    ChainOperation,
    TxReceipt,
)
from txtchain.utils.locks import LockTimeoutError, address_lock

logger = logging.getLogger(__name__)

# Gas estimate headroom in percent
GAS_BUFFER_PERCENT = 20

EVENT_TOPICS: dict[str, tuple[str, list[str]]] = {
    "0x" + keccak(text=signature).hex(): (signature, fields)
    for signature, fields in EVENT_ABIS.items()
}


def encode_call(signature: str, arg_types: list[str], args: tuple) -> str:
    """ABI-encode a contract call as 0x-prefixed calldata."""
    values = [
        Web3.to_checksum_address(value) if arg_type == "address" else value
        for arg_type, value in zip(arg_types, args)
    ]
    selector = function_signature_to_4byte_selector(signature)
    return "0x" + (selector + encode(arg_types, values)).hex()


def build_calldata(operation: ChainOperation) -> str:
    """Calldata for an operation."""
    if operation.action == ChainAction.NATIVE_TRANSFER:
        return "0x"
    if operation.action == ChainAction.CONTRACT_CALL:
        return operation.data or "0x"
    signature, arg_types = FUNCTION_ABIS[operation.action]
    return encode_call(signature, arg_types, operation.args)


def decode_events(logs: list[dict]) -> dict[str, int]:
    """Decode known events from receipt logs into a flat field dict."""
    outputs: dict[str, int] = {}
    for entry in logs or []:
        topics = entry.get("topics") or []
        if not topics:
            continue
        event = EVENT_TOPICS.get(topics[0].lower())
        if event is None:
            continue
        signature, fields = event
        try:
            values = decode(["uint256"] * len(fields), decode_hex(entry.get("data", "0x")))
        except Exception as e:
            logger.warning(f"Could not decode {signature}: {e}")
            continue
        outputs.update(zip(fields, values))
    return outputs


class EVMChainExecutor(ChainExecutor):
    """Chain executor for EVM networks."""

    def __init__(
        self,
        private_key: str,
        rpc_urls: dict[int, str],
        home_chain_id: int,
        token_contract: str,
        rpc_timeout: float = 30.0,
        confirmation_timeout: float = 120.0,
        poll_interval: float = 2.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(home_chain_id, token_contract)
        self._account = Account.from_key(private_key)
        self.rpc_urls = rpc_urls
        self.rpc_timeout = rpc_timeout
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval
        self._client = client
        self._owns_client = client is None
        self._request_id = 0

    @property
    def sender_address(self) -> str:
        return self._account.address

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.rpc_timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _rpc_url(self, chain_id: int) -> str:
        url = self.rpc_urls.get(chain_id)
        if not url:
            raise ChainError(f"No RPC endpoint configured for chain {chain_id}")
        return url

    async def _rpc(self, chain_id: int, method: str, params: list) -> Any:
        """Make a JSON-RPC call.

        Raises:
            ChainError: Transport failure or RPC error response
        """
        self._request_id += 1
        try:
            response = await self._get_client().post(
                self._rpc_url(chain_id),
                json={
                    "jsonrpc": "2.0",
                    "method": method,
                    "params": params,
                    "id": self._request_id,
                },
                timeout=self.rpc_timeout,
            )
        except httpx.HTTPError as e:
            raise ChainError(f"RPC {method} failed: {type(e).__name__}: {e}") from e

        if response.status_code != 200:
            raise ChainError(f"RPC {method} failed: HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            raise ChainError(f"RPC {method} returned invalid JSON")

        if "error" in data:
            error = data["error"] or {}
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise ChainError(f"RPC {method} error: {message}")
        return data.get("result")

    async def _eth_call(self, chain_id: int, to: str, data: str) -> int:
        result = await self._rpc(chain_id, "eth_call", [{"to": to, "data": data}, "latest"])
        if not result or result == "0x":
            return 0
        return int(result, 16)

    async def get_token_balance(self, chain_id: int, token: str, owner: str) -> int:
        data = encode_call("balanceOf(address)", ["address"], (owner,))
        return await self._eth_call(chain_id, token, data)

    async def get_native_balance(self, chain_id: int, owner: str) -> int:
        result = await self._rpc(chain_id, "eth_getBalance", [owner, "latest"])
        return int(result or "0x0", 16)

    async def get_allowance(self, chain_id: int, token: str, owner: str, spender: str) -> int:
        data = encode_call("allowance(address,address)", ["address", "address"], (owner, spender))
        return await self._eth_call(chain_id, token, data)

    async def _call_raw(self, chain_id: int, to: str, signature: str) -> bytes:
        result = await self._rpc(
            chain_id, "eth_call", [{"to": to, "data": encode_call(signature, [], ())}, "latest"]
        )
        if not result or result == "0x":
            raise ChainError(f"{signature} on {to} returned no data")
        return decode_hex(result)

    async def get_pool_price(self, chain_id: int, pool: str) -> Decimal:
        """Spot price from the pool's sqrtPriceX96.

        TXTC and WETH both use 18 decimals, so no decimal adjustment is
        applied.
        """
        (sqrt_price_x96,) = decode(["uint160"], (await self._call_raw(chain_id, pool, "slot0()"))[:32])
        (token0,) = decode(["address"], await self._call_raw(chain_id, pool, "token0()"))
        if sqrt_price_x96 == 0:
            raise ChainError(f"Pool {pool} is not initialized")

        with localcontext() as ctx:
            ctx.prec = 40
            # token1 per token0
            price = Decimal(sqrt_price_x96 * sqrt_price_x96) / Decimal(2**192)
            if token0.lower() != self.token_contract.lower():
                price = 1 / price
        return price

    async def _get_nonce(self, chain_id: int, address: str) -> int:
        result = await self._rpc(chain_id, "eth_getTransactionCount", [address, "pending"])
        return int(result or "0x0", 16)

    async def _get_gas_price(self, chain_id: int) -> int:
        result = await self._rpc(chain_id, "eth_gasPrice", [])
        return int(result or "0x0", 16)

    async def _estimate_gas(self, chain_id: int, tx: dict) -> int:
        call = {
            "from": tx["from"],
            "to": tx["to"],
            "value": hex(tx["value"]),
            "data": tx["data"],
        }
        try:
            result = await self._rpc(chain_id, "eth_estimateGas", [call])
        except ChainError as e:
            # Estimation fails when the call would revert
            raise ChainError(f"Transaction would revert: {e}")
        return int(result, 16) * (100 + GAS_BUFFER_PERCENT) // 100

    async def _broadcast(self, chain_id: int, signed_tx) -> str:
        """Send a signed transaction.

        A timed-out broadcast may still have reached the node, so it is
        reported as indeterminate with the locally computed hash.
        """
        try:
            return await self._rpc(
                chain_id, "eth_sendRawTransaction", [Web3.to_hex(signed_tx.raw_transaction)]
            )
        except ChainError as e:
            if isinstance(e.__cause__, httpx.TimeoutException):
                tx_hash = Web3.to_hex(signed_tx.hash)
                raise ChainTimeoutError(
                    f"Broadcast of {tx_hash} timed out; outcome unknown", tx_hash=tx_hash
                ) from e
            raise

    async def _submit(self, operation: ChainOperation) -> str:
        """Sign and broadcast under the sender's lock. Returns the tx hash."""
        account = (
            Account.from_key(operation.signer_key) if operation.signer_key else self._account
        )
        chain_id = operation.chain_id
        tx = {
            "from": account.address,
            "to": Web3.to_checksum_address(operation.to),
            "value": operation.value,
            "data": build_calldata(operation),
            "chainId": chain_id,
        }

        try:
            async with address_lock(account.address, operation=operation.action.value):
                tx["nonce"] = await self._get_nonce(chain_id, account.address)
                tx["gasPrice"] = operation.gas_price or await self._get_gas_price(chain_id)
                tx["gas"] = operation.gas_limit or await self._estimate_gas(chain_id, tx)
                del tx["from"]

                signed_tx = account.sign_transaction(tx)
                tx_hash = await self._broadcast(chain_id, signed_tx)
        except LockTimeoutError as e:
            raise ChainError(f"Sender busy: {e}")

        if not tx_hash:
            raise ChainError(f"Broadcast of {operation.label()} returned no hash")
        logger.info(f"Broadcast {operation.label()}: {tx_hash}")
        return tx_hash

    async def _wait_for_receipt(self, chain_id: int, tx_hash: str) -> dict:
        """Poll for the receipt until the confirmation timeout."""
        deadline = time.monotonic() + self.confirmation_timeout
        while True:
            try:
                receipt = await self._rpc(chain_id, "eth_getTransactionReceipt", [tx_hash])
            except ChainError as e:
                logger.warning(f"Receipt lookup for {tx_hash} failed: {e}")
                receipt = None

            if receipt:
                return receipt
            if time.monotonic() >= deadline:
                raise ChainTimeoutError(
                    f"No confirmation for {tx_hash} within {self.confirmation_timeout}s",
                    tx_hash=tx_hash,
                )
            await asyncio.sleep(self.poll_interval)

    async def execute(self, operation: ChainOperation) -> TxReceipt:
        tx_hash = await self._submit(operation)
        receipt = await self._wait_for_receipt(operation.chain_id, tx_hash)

        status = int(receipt.get("status", "0x0"), 16)
        if status != 1:
            raise ChainError(f"{operation.label()} reverted", tx_hash=tx_hash)

        outputs = decode_events(receipt.get("logs", []))
        logger.info(f"Confirmed {operation.label()}: {tx_hash}")
        return TxReceipt(
            tx_hash=tx_hash,
            success=True,
            block_number=int(receipt.get("blockNumber") or "0x0", 16),
            gas_used=int(receipt.get("gasUsed") or "0x0", 16),
            outputs=outputs,
            operation=operation,
        )
