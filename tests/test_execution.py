"""Tests for chain executors."""

import json
from decimal import Decimal

import httpx
import pytest
from eth_abi import encode
from eth_account import Account
from eth_utils import function_signature_to_4byte_selector, keccak

from txtchain.errors import ChainError, ChainTimeoutError
from txtchain.execution.base import (
    ChainAction,
    burn_op,
    contract_call_op,
    mint_op,
    native_transfer_op,
    redeem_op,
    swap_op,
    transfer_op,
)
from txtchain.execution.dry_run import SIMULATED_WALLET
from txtchain.execution.evm import EVMChainExecutor, build_calldata, decode_events

from tests.conftest import ALICE, BOB, ENTRY_POINT, ONE, TOKEN

SEPOLIA = 11155111
USER_KEY = "0x" + "4c" * 32
TX_HASH = "0x" + "ab" * 32
POOL = "0xfdbf742dfc37b7ed1da429d3d7add78d99026c23"
WETH = "0xfFf9976782d46CC05630D1f6eBAb18b2324d6B14"

REDEEMED_TOPIC = "0x" + keccak(
    text="VoucherRedeemed(address,uint256,uint256,uint256,uint256)"
).hex()


class TestSimulatedExecutor:
    """Tests for the in-memory executor."""

    @pytest.mark.asyncio
    async def test_redeem_conserves_face_value(self, executor):
        """token amount + gas reserve == face value; the reserve becomes ETH."""
        receipt = await executor.execute(redeem_op(SEPOLIA, ENTRY_POINT, "ABC123", ALICE))

        outputs = receipt.outputs
        assert outputs["face_value"] == 100 * ONE
        assert outputs["token_amount"] + outputs["gas_reserve"] == outputs["face_value"]
        assert outputs["token_amount"] == 90 * ONE
        assert outputs["eth_amount"] > 0
        assert await executor.get_token_balance(SEPOLIA, TOKEN, ALICE) == 90 * ONE
        assert await executor.get_native_balance(SEPOLIA, ALICE) == outputs["eth_amount"]

    @pytest.mark.asyncio
    async def test_voucher_redeems_once(self, executor):
        await executor.execute(redeem_op(SEPOLIA, ENTRY_POINT, "abc123", ALICE))

        with pytest.raises(ChainError) as exc_info:
            await executor.execute(redeem_op(SEPOLIA, ENTRY_POINT, "ABC123", BOB))

        assert exc_info.value.tx_hash is not None
        assert await executor.get_token_balance(SEPOLIA, TOKEN, BOB) == 0

    @pytest.mark.asyncio
    async def test_unknown_voucher_reverts(self, executor):
        with pytest.raises(ChainError):
            await executor.execute(redeem_op(SEPOLIA, ENTRY_POINT, "NOPE", ALICE))

    @pytest.mark.asyncio
    async def test_burn_requires_balance(self, executor):
        with pytest.raises(ChainError):
            await executor.execute(burn_op(SEPOLIA, TOKEN, ALICE, ONE))

        executor.credit(TOKEN, ALICE, 2 * ONE)
        await executor.execute(burn_op(SEPOLIA, TOKEN, ALICE, ONE))
        assert await executor.get_token_balance(SEPOLIA, TOKEN, ALICE) == ONE

    @pytest.mark.asyncio
    async def test_swap_honors_min_out(self, executor):
        """A swap yielding less than the minimum reverts and moves nothing."""
        executor.credit(TOKEN, ALICE, 10 * ONE)

        with pytest.raises(ChainError):
            await executor.execute(swap_op(SEPOLIA, ENTRY_POINT, ALICE, 10 * ONE, ONE))
        assert await executor.get_token_balance(SEPOLIA, TOKEN, ALICE) == 10 * ONE

        receipt = await executor.execute(swap_op(SEPOLIA, ENTRY_POINT, ALICE, 10 * ONE, 0))
        assert receipt.outputs["eth_out"] > 0
        assert await executor.get_token_balance(SEPOLIA, TOKEN, ALICE) == 0

    @pytest.mark.asyncio
    async def test_user_signed_transfer_debits_signer(self, executor):
        signer = Account.from_key(USER_KEY).address
        executor.credit(TOKEN, signer, 5 * ONE)

        await executor.execute(transfer_op(SEPOLIA, TOKEN, BOB, 2 * ONE, USER_KEY))

        assert await executor.get_token_balance(SEPOLIA, TOKEN, signer) == 3 * ONE
        assert await executor.get_token_balance(SEPOLIA, TOKEN, BOB) == 2 * ONE

    @pytest.mark.asyncio
    async def test_native_transfer(self, executor):
        await executor.execute(native_transfer_op(SEPOLIA, BOB, ONE))

        assert await executor.get_native_balance(SEPOLIA, BOB) == ONE
        assert await executor.get_native_balance(SEPOLIA, SIMULATED_WALLET) == 9 * ONE

    @pytest.mark.asyncio
    async def test_timeout_is_indeterminate(self, executor):
        executor.timeout_actions.add(ChainAction.MINT)

        with pytest.raises(ChainTimeoutError) as exc_info:
            await executor.execute(mint_op(SEPOLIA, TOKEN, ALICE, ONE))

        assert exc_info.value.indeterminate
        assert exc_info.value.tx_hash is not None

    @pytest.mark.asyncio
    async def test_get_balances(self, executor):
        executor.credit(TOKEN, ALICE, 15 * ONE // 10)

        balances = await executor.get_balances(ALICE)

        assert balances == {"txtc": "1.5", "eth": "0"}


class TestExecuteSequence:
    """Tests for ordered multi-step execution."""

    @pytest.mark.asyncio
    async def test_steps_run_in_order(self, executor):
        executor.credit(TOKEN, ALICE, ONE)

        receipts = await executor.execute_sequence(
            [burn_op(SEPOLIA, TOKEN, ALICE, ONE), mint_op(SEPOLIA, TOKEN, BOB, ONE)]
        )

        assert [r.operation.action for r in receipts] == [ChainAction.BURN, ChainAction.MINT]
        assert executor.submitted_actions == [ChainAction.BURN, ChainAction.MINT]

    @pytest.mark.asyncio
    async def test_failure_stops_sequence(self, executor):
        """A failed step means later steps are never submitted."""
        executor.credit(TOKEN, ALICE, ONE)
        executor.fail_actions.add(ChainAction.BURN)

        with pytest.raises(ChainError):
            await executor.execute_sequence(
                [burn_op(SEPOLIA, TOKEN, ALICE, ONE), mint_op(SEPOLIA, TOKEN, BOB, ONE)]
            )

        assert executor.submitted_actions == [ChainAction.BURN]
        assert await executor.get_token_balance(SEPOLIA, TOKEN, BOB) == 0


class TestEnsureAllowance:
    """Tests for spender approval."""

    @pytest.mark.asyncio
    async def test_approves_once(self, executor):
        usdc = "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359"
        spender = "0x1231DEB6f5749EF6cE6943a275A1D3E7486F4EaE"

        first = await executor.ensure_allowance(137, usdc, spender, 1_000_000)
        second = await executor.ensure_allowance(137, usdc, spender, 1_000_000)

        assert first is not None
        assert second is None
        assert executor.submitted_actions == [ChainAction.APPROVE]

    @pytest.mark.asyncio
    async def test_native_token_needs_no_approval(self, executor):
        receipt = await executor.ensure_allowance(
            1, "0x0000000000000000000000000000000000000000", BOB, ONE
        )

        assert receipt is None
        assert executor.submitted == []


class TestCalldata:
    """Tests for ABI encoding and event decoding."""

    def test_mint_calldata(self):
        data = build_calldata(mint_op(SEPOLIA, TOKEN, ALICE, ONE))

        assert data.startswith("0x40c10f19")
        assert len(data) == 2 + 8 + 64 * 2
        assert data.endswith(hex(ONE)[2:].rjust(64, "0"))

    def test_transfer_calldata(self):
        data = build_calldata(transfer_op(SEPOLIA, TOKEN, BOB, 5))

        assert data.startswith("0xa9059cbb")
        assert ("b0" * 20) in data

    def test_native_and_raw_calldata(self):
        assert build_calldata(native_transfer_op(SEPOLIA, BOB, ONE)) == "0x"

        operation = contract_call_op(137, {"to": BOB, "data": "0xdeadbeef", "value": "0x10"})
        assert build_calldata(operation) == "0xdeadbeef"
        assert operation.value == 16

    def test_decode_redeem_event(self):
        logs = [
            {"topics": ["0x" + "11" * 32], "data": "0x"},
            {
                "topics": [REDEEMED_TOPIC, "0x" + "00" * 12 + "a1" * 20],
                "data": "0x" + encode(["uint256"] * 4, [100, 90, 10, 5]).hex(),
            },
        ]

        assert decode_events(logs) == {
            "face_value": 100,
            "token_amount": 90,
            "gas_reserve": 10,
            "eth_amount": 5,
        }


class FakeNode:
    """JSON-RPC node answering from a fixed table."""

    def __init__(self, receipt=None, estimate_error=None, broadcast_timeout=False):
        self.receipt = receipt
        self.estimate_error = estimate_error
        self.broadcast_timeout = broadcast_timeout
        self.methods = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method = body["method"]
        self.methods.append(method)

        if method == "eth_sendRawTransaction" and self.broadcast_timeout:
            raise httpx.ReadTimeout("timed out", request=request)

        if method == "eth_estimateGas" and self.estimate_error:
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": body["id"], "error": {"message": self.estimate_error}},
            )

        results = {
            "eth_getTransactionCount": "0x5",
            "eth_gasPrice": "0x3b9aca00",
            "eth_estimateGas": "0x5208",
            "eth_sendRawTransaction": TX_HASH,
            "eth_getTransactionReceipt": self.receipt,
        }
        return httpx.Response(
            200, json={"jsonrpc": "2.0", "id": body["id"], "result": results.get(method)}
        )


def evm_executor(node: FakeNode) -> EVMChainExecutor:
    client = httpx.AsyncClient(transport=httpx.MockTransport(node))
    return EVMChainExecutor(
        private_key=USER_KEY,
        rpc_urls={SEPOLIA: "http://node.test"},
        home_chain_id=SEPOLIA,
        token_contract=TOKEN,
        confirmation_timeout=0.05,
        poll_interval=0.01,
        client=client,
    )


class TestEVMExecutor:
    """Tests for the JSON-RPC executor against a fake node."""

    @pytest.mark.asyncio
    async def test_execute_decodes_events(self):
        receipt = {
            "status": "0x1",
            "blockNumber": "0x10",
            "gasUsed": "0x5208",
            "logs": [
                {
                    "topics": [REDEEMED_TOPIC],
                    "data": "0x" + encode(["uint256"] * 4, [100 * ONE, 90 * ONE, 10 * ONE, 10**15]).hex(),
                }
            ],
        }
        node = FakeNode(receipt=receipt)

        result = await evm_executor(node).execute(redeem_op(SEPOLIA, ENTRY_POINT, "ABC123", ALICE))

        assert result.tx_hash == TX_HASH
        assert result.block_number == 16
        assert result.outputs["token_amount"] == 90 * ONE
        assert result.outputs["eth_amount"] == 10**15
        assert node.methods[:4] == [
            "eth_getTransactionCount",
            "eth_gasPrice",
            "eth_estimateGas",
            "eth_sendRawTransaction",
        ]

    @pytest.mark.asyncio
    async def test_reverted_receipt(self):
        node = FakeNode(receipt={"status": "0x0", "blockNumber": "0x1", "gasUsed": "0x1", "logs": []})

        with pytest.raises(ChainError) as exc_info:
            await evm_executor(node).execute(mint_op(SEPOLIA, TOKEN, ALICE, ONE))

        assert exc_info.value.tx_hash == TX_HASH
        assert not exc_info.value.indeterminate

    @pytest.mark.asyncio
    async def test_missing_receipt_times_out(self):
        """No receipt within the timeout raises an indeterminate error carrying the hash."""
        node = FakeNode(receipt=None)

        with pytest.raises(ChainTimeoutError) as exc_info:
            await evm_executor(node).execute(mint_op(SEPOLIA, TOKEN, ALICE, ONE))

        assert exc_info.value.tx_hash == TX_HASH
        assert exc_info.value.indeterminate

    @pytest.mark.asyncio
    async def test_broadcast_timeout_is_indeterminate(self):
        """A broadcast that times out may have reached the node."""
        node = FakeNode(broadcast_timeout=True)

        with pytest.raises(ChainTimeoutError) as exc_info:
            await evm_executor(node).execute(mint_op(SEPOLIA, TOKEN, ALICE, ONE))

        assert exc_info.value.indeterminate
        assert exc_info.value.tx_hash.startswith("0x")
        assert len(exc_info.value.tx_hash) == 66
        assert "eth_getTransactionReceipt" not in node.methods

    @pytest.mark.asyncio
    async def test_failed_estimate_is_not_broadcast(self):
        node = FakeNode(estimate_error="execution reverted")

        with pytest.raises(ChainError) as exc_info:
            await evm_executor(node).execute(burn_op(SEPOLIA, TOKEN, ALICE, ONE))

        assert "would revert" in str(exc_info.value)
        assert "eth_sendRawTransaction" not in node.methods

    @pytest.mark.asyncio
    async def test_native_transfer_uses_fixed_gas(self):
        node = FakeNode(receipt={"status": "0x1", "blockNumber": "0x2", "gasUsed": "0x5208", "logs": []})

        await evm_executor(node).execute(native_transfer_op(SEPOLIA, BOB, ONE))

        assert "eth_estimateGas" not in node.methods

    @pytest.mark.asyncio
    async def test_unknown_chain(self):
        with pytest.raises(ChainError):
            await evm_executor(FakeNode()).get_native_balance(137, ALICE)

    @pytest.mark.asyncio
    async def test_balances(self):
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            result = hex(3 * ONE) if body["method"] == "eth_call" else hex(ONE // 2)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        executor = EVMChainExecutor(USER_KEY, {SEPOLIA: "http://node.test"}, SEPOLIA, TOKEN, client=client)

        assert await executor.get_balances(ALICE) == {"txtc": "3", "eth": "0.5"}


def pool_node(sqrt_price_x96: int, token0: str):
    """Node answering slot0() and token0() for a Uniswap V3 pool."""
    slot0 = "0x" + function_signature_to_4byte_selector("slot0()").hex()

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        call = body["params"][0]
        if call["data"] == slot0:
            result = encode(
                ["uint160", "int24", "uint16", "uint16", "uint16", "uint8", "bool"],
                [sqrt_price_x96, 0, 0, 1, 1, 0, True],
            )
        else:
            result = encode(["address"], [token0.lower()])
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": "0x" + result.hex()})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EVMChainExecutor(USER_KEY, {SEPOLIA: "http://node.test"}, SEPOLIA, TOKEN, client=client)


class TestPoolPrice:
    """Tests for reading the TXTC/ETH pool price."""

    @pytest.mark.asyncio
    async def test_token_is_token0(self):
        executor = pool_node(2**96 // 100, TOKEN)

        price = await executor.get_pool_price(SEPOLIA, POOL)

        assert abs(price - Decimal("0.0001")) < Decimal("1e-20")

    @pytest.mark.asyncio
    async def test_token_is_token1(self):
        """With WETH as token0 the pool price is inverted."""
        executor = pool_node(2**96 * 100, WETH)

        assert await executor.get_pool_price(SEPOLIA, POOL) == Decimal("0.0001")

    @pytest.mark.asyncio
    async def test_uninitialized_pool(self):
        with pytest.raises(ChainError):
            await pool_node(0, TOKEN).get_pool_price(SEPOLIA, POOL)

    @pytest.mark.asyncio
    async def test_simulated_price(self, executor):
        assert await executor.get_pool_price(SEPOLIA, POOL) == executor.eth_per_txtc
