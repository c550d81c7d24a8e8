"""Transfer Router - selects and drives the execution path of a transfer.

Flow:
1. Bridge, or any send across chains -> aggregator quote + allowance + quote payload
2. Redeem -> single fee-split redemption on the entry point
3. Swap -> single swap call with the caller's minimum output
4. Same-chain send of TXTC/ETH on the home chain:
   - fast channel first
   - if unreachable or declined: on-chain burn then mint (TXTC)
     or native transfer (ETH), each step confirmed before the next
5. User-signed send -> single ERC-20 transfer with the caller's key
"""

import logging
from decimal import Decimal
from typing import Any, Callable, Optional

from txtchain.chains import (
    HOME_TOKEN,
    format_units,
    get_token_decimals,
    resolve_chain_id,
    resolve_token_address,
    to_base_units,
)
from txtchain.errors import (
    ChainError,
    QuoteError,
    RouteExhaustedError,
    RouteUnavailableError,
    ValidationError,
)
from txtchain.execution.base import (
    ChainExecutor,
    ChainOperation,
    TxReceipt,
    burn_op,
    contract_call_op,
    mint_op,
    native_transfer_op,
    redeem_op,
    swap_op,
    transfer_op,
)
from txtchain.routing.base import Quote, QuoteConstraints, QuoteProvider, TokenPair
from txtchain.settlement.fast_channel import FastSettlementClient
from txtchain.settlement.models import (
    SettlementOutcome,
    SettlementPath,
    TransferKind,
    TransferRequest,
)

logger = logging.getLogger(__name__)

# Tokens the fast channel settles
FAST_CHANNEL_TOKENS = ("TXTC", "ETH")

# TXTC/WETH pool fee tier
POOL_FEE_PERCENT = Decimal("0.3")

PathCallback = Callable[[SettlementPath], Any]


class TransferRouter:
    """Classifies a transfer and settles it on the matching path."""

    def __init__(
        self,
        executor: ChainExecutor,
        quote_provider: QuoteProvider,
        fast_channel: Optional[FastSettlementClient],
        entry_point_contract: str,
        default_slippage: Decimal = Decimal("0.005"),
        pool_contract: Optional[str] = None,
    ):
        self.executor = executor
        self.quote_provider = quote_provider
        self.fast_channel = fast_channel
        self.entry_point_contract = entry_point_contract
        self.pool_contract = pool_contract
        self.default_slippage = default_slippage

    @property
    def home_chain_id(self) -> int:
        return self.executor.home_chain_id

    @property
    def token_contract(self) -> str:
        return self.executor.token_contract

    def token_address(self, token: str, chain_id: int) -> Optional[str]:
        """Resolve a token symbol, using the configured TXTC contract on the home chain."""
        if token.upper() == HOME_TOKEN and chain_id == self.home_chain_id:
            return self.token_contract
        return resolve_token_address(token, chain_id)

    def is_fast_channel_eligible(self, request: TransferRequest) -> bool:
        """Same-chain service send of TXTC or ETH on the home chain."""
        return (
            request.kind == TransferKind.SEND
            and not request.signer_key
            and not request.is_cross_chain
            and resolve_chain_id(request.from_chain) == self.home_chain_id
            and request.token.upper() in FAST_CHANNEL_TOKENS
        )

    async def _notify_path(self, on_path: Optional[PathCallback], path: SettlementPath) -> None:
        if on_path:
            await on_path(path)

    async def route(
        self, request: TransferRequest, on_path: Optional[PathCallback] = None
    ) -> SettlementOutcome:
        """Settle a validated transfer.

        Args:
            request: Validated, normalized transfer request
            on_path: Async callback invoked when a path is selected or
                replaced by its fallback

        Returns:
            Successful SettlementOutcome

        Raises:
            QuoteError: No viable aggregator route
            ChainError: A chain step was rejected (ChainTimeoutError when
                its outcome is unknown)
            RouteExhaustedError: Fast channel and on-chain fallback both failed
        """
        if request.kind == TransferKind.BRIDGE or request.is_cross_chain:
            return await self._route_bridge(request, on_path)
        if request.kind == TransferKind.REDEEM:
            return await self._route_redeem(request, on_path)
        if request.kind == TransferKind.SWAP:
            return await self._route_swap(request, on_path)
        if request.signer_key:
            return await self._route_user_send(request, on_path)
        if self.is_fast_channel_eligible(request):
            return await self._route_fast_channel(request, on_path)
        raise ValidationError(f"No settlement path for {request.describe()}")

    # ======================
    # Fast channel with on-chain fallback
    # ======================

    async def _route_fast_channel(
        self, request: TransferRequest, on_path: Optional[PathCallback]
    ) -> SettlementOutcome:
        path = SettlementPath.fast_channel()
        await self._notify_path(on_path, path)

        try:
            if self.fast_channel is None:
                raise RouteUnavailableError("Fast channel not configured")
            result = await self.fast_channel.submit(request)
            if result.accepted:
                return SettlementOutcome(
                    success=True,
                    output_amount=request.amount,
                    output_token=request.token.upper(),
                    path=path,
                    channel_ref=result.channel_ref,
                    pending_finalization=True,
                    details={"message": result.message},
                )
            reason = result.message or "declined"
        except RouteUnavailableError as e:
            reason = str(e)

        logger.warning(f"Fast channel unavailable ({reason}), falling back to on-chain")
        fallback = path.fallback()
        await self._notify_path(on_path, fallback)

        try:
            return await self._settle_on_chain(request, fallback)
        except ChainError as e:
            raise RouteExhaustedError(
                f"All settlement paths failed: fast channel ({reason}); on-chain ({e})",
                cause=e,
            )

    def _on_chain_operations(self, request: TransferRequest) -> list[ChainOperation]:
        """Equivalent on-chain steps for a fast-channel send."""
        chain_id = self.home_chain_id
        token = request.token.upper()
        amount = to_base_units(request.amount, get_token_decimals(token))

        if token == HOME_TOKEN:
            return [
                burn_op(chain_id, self.token_contract, request.from_address, amount),
                mint_op(chain_id, self.token_contract, request.to_address, amount),
            ]
        return [native_transfer_op(chain_id, request.to_address, amount)]

    async def settle_channel_transfer(self, recipient: str, amount: str) -> TxReceipt:
        """Mint the TXTC a fast-channel batch settled for a recipient."""
        value = to_base_units(amount, get_token_decimals(HOME_TOKEN))
        return await self.executor.execute(
            mint_op(self.home_chain_id, self.token_contract, recipient, value)
        )

    async def _settle_on_chain(
        self, request: TransferRequest, path: SettlementPath
    ) -> SettlementOutcome:
        receipts = await self.executor.execute_sequence(self._on_chain_operations(request))
        logger.info(f"On-chain transfer complete: {request.describe()}")
        return SettlementOutcome(
            success=True,
            tx_hashes=[receipt.tx_hash for receipt in receipts],
            output_amount=request.amount,
            output_token=request.token.upper(),
            path=path,
        )

    # ======================
    # Single-path kinds
    # ======================

    async def _route_user_send(
        self, request: TransferRequest, on_path: Optional[PathCallback]
    ) -> SettlementOutcome:
        path = SettlementPath.on_chain()
        await self._notify_path(on_path, path)

        chain_id = resolve_chain_id(request.from_chain)
        token_address = self.token_address(request.token, chain_id)
        amount = to_base_units(request.amount, get_token_decimals(request.token))

        receipt = await self.executor.execute(
            transfer_op(chain_id, token_address, request.to_address, amount, request.signer_key)
        )
        return SettlementOutcome(
            success=True,
            tx_hashes=[receipt.tx_hash],
            output_amount=request.amount,
            output_token=request.token.upper(),
            path=path,
        )

    async def _route_redeem(
        self, request: TransferRequest, on_path: Optional[PathCallback]
    ) -> SettlementOutcome:
        path = SettlementPath.on_chain()
        await self._notify_path(on_path, path)

        receipt = await self.executor.execute(
            redeem_op(
                self.home_chain_id,
                self.entry_point_contract,
                request.voucher_code,
                request.to_address,
            )
        )

        outputs = receipt.outputs
        if "token_amount" not in outputs:
            # Confirmed, so the voucher is spent; amounts are unknown
            logger.warning(f"Redemption {receipt.tx_hash} confirmed without a VoucherRedeemed event")
            return SettlementOutcome(
                success=True,
                tx_hashes=[receipt.tx_hash],
                output_token=HOME_TOKEN,
                path=path,
                details={"token_amount": None, "eth_amount": None},
            )

        token_amount = format_units(outputs["token_amount"], get_token_decimals(HOME_TOKEN))
        return SettlementOutcome(
            success=True,
            tx_hashes=[receipt.tx_hash],
            output_amount=token_amount,
            output_token=HOME_TOKEN,
            path=path,
            details={
                "token_amount": token_amount,
                "eth_amount": format_units(outputs.get("eth_amount", 0), 18),
                "face_value": format_units(outputs.get("face_value", 0), 18),
                "gas_reserve": format_units(outputs.get("gas_reserve", 0), 18),
            },
        )

    async def _route_swap(
        self, request: TransferRequest, on_path: Optional[PathCallback]
    ) -> SettlementOutcome:
        path = SettlementPath.on_chain()
        await self._notify_path(on_path, path)

        token_in = to_base_units(request.amount, get_token_decimals(HOME_TOKEN))
        min_out = min_out_base_units(request.min_out, 18)

        receipt = await self.executor.execute(
            swap_op(self.home_chain_id, self.entry_point_contract, request.from_address, token_in, min_out)
        )

        eth_out = receipt.outputs.get("eth_out")
        return SettlementOutcome(
            success=True,
            tx_hashes=[receipt.tx_hash],
            output_amount=format_units(eth_out, 18) if eth_out is not None else None,
            output_token="ETH",
            path=path,
            details={"min_out": format_units(min_out, 18)},
        )

    # ======================
    # Pool price
    # ======================

    async def get_pool_price(self) -> Decimal:
        """Current ETH per TXTC on the home-chain pool.

        Raises:
            ChainError: No pool configured, or the pool could not be read
        """
        if not self.pool_contract:
            raise ChainError("No TXTC/ETH pool configured")
        return await self.executor.get_pool_price(self.home_chain_id, self.pool_contract)

    async def estimate_swap_output(self, amount: str, token_to_eth: bool = True) -> str:
        """Estimated output of a TXTC/ETH swap at the current pool price, after the pool fee.

        Raises:
            ValidationError: Invalid amount
            ChainError: Pool price unavailable
        """
        amount_in = to_base_units(amount, 18)
        price = await self.get_pool_price()
        if price <= 0:
            raise ChainError("Pool price unavailable")

        rate = price if token_to_eth else 1 / price
        amount_out = int(Decimal(amount_in) * rate * (1 - POOL_FEE_PERCENT / Decimal(100)))
        return format_units(amount_out, 18)

    # ======================
    # Bridge
    # ======================

    async def get_quote(
        self,
        request: TransferRequest,
        sender: Optional[str] = None,
        refresh: bool = False,
    ) -> Quote:
        """Aggregator quote for a bridge or cross-chain request."""
        from_chain = resolve_chain_id(request.from_chain)
        to_chain = resolve_chain_id(request.to_chain)
        to_token = (request.to_token or request.token).upper()
        pair = TokenPair(from_chain, to_chain, request.token.upper(), to_token)
        amount = to_base_units(request.amount, get_token_decimals(request.token))

        return await self.quote_provider.get_quote(
            pair,
            amount,
            sender or self.executor.sender_address,
            request.to_address,
            QuoteConstraints(slippage=self.default_slippage),
            refresh=refresh,
        )

    async def _route_bridge(
        self, request: TransferRequest, on_path: Optional[PathCallback]
    ) -> SettlementOutcome:
        quote = await self.get_quote(request)
        await self._notify_path(on_path, SettlementPath.bridge(quote))

        tx_hashes = []
        approval = await self._ensure_allowance(quote)
        if approval:
            tx_hashes.append(approval)

        # The allowance step may have outlived the quote
        if quote.is_expired:
            logger.info(f"Quote {quote.quote_id} expired after {quote.age_seconds:.0f}s, refreshing")
            fresh = await self.get_quote(request, refresh=True)
            if fresh.to_amount_min < quote.to_amount_min:
                self.quote_provider.release(fresh)
                raise QuoteError(
                    f"Refreshed quote minimum {fresh.minimum_output} {quote.pair.to_token} "
                    f"is below the accepted {quote.minimum_output}",
                    reasons=["price moved against the accepted quote"],
                )
            if fresh.approval_address.lower() != quote.approval_address.lower():
                approval = await self._ensure_allowance(fresh)
                if approval:
                    tx_hashes.append(approval)
            quote = fresh

        if not quote.transaction_request.get("to"):
            self.quote_provider.release(quote)
            raise QuoteError(f"{self.quote_provider.name} quote carries no transaction")

        # A quote is executed at most once
        self.quote_provider.release(quote)
        receipt = await self.executor.execute(
            contract_call_op(quote.pair.from_chain, quote.transaction_request)
        )
        tx_hashes.append(receipt.tx_hash)

        logger.info(f"Bridge submitted: {quote.pair.describe()} via {quote.tool or 'aggregator'}")
        return SettlementOutcome(
            success=True,
            tx_hashes=tx_hashes,
            output_amount=quote.estimated_output,
            output_token=quote.pair.to_token,
            path=SettlementPath.bridge(quote),
            details={
                "minimum_output": quote.minimum_output,
                "execution_duration": quote.execution_duration,
                "tool": quote.tool,
                "cross_chain": quote.pair.is_cross_chain,
            },
        )

    async def _ensure_allowance(self, quote: Quote) -> Optional[str]:
        if not quote.approval_address:
            return None
        receipt = await self.executor.ensure_allowance(
            quote.pair.from_chain,
            quote.from_token_address,
            quote.approval_address,
            quote.from_amount,
        )
        return receipt.tx_hash if receipt else None


def min_out_base_units(min_out: Optional[str], decimals: int) -> int:
    """Caller-supplied minimum output in base units (0 when absent)."""
    if min_out is None or Decimal(str(min_out).strip() or "0") == 0:
        return 0
    return to_base_units(min_out, decimals)
