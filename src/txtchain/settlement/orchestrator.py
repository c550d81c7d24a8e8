"""Settlement orchestrator.

Accepts transfer requests, acknowledges them synchronously and settles
them in background tasks on the running event loop. Every accepted
transfer ends Completed or Failed and triggers exactly one notification.

Status flow:
    accepted -> routing -> settling [-> fallback_settling] -> completed | failed
"""

import asyncio
import logging
import uuid
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Optional

from eth_account import Account

from txtchain.chains import (
    HOME_TOKEN,
    chain_name,
    format_amount,
    get_token_decimals,
    is_native_token,
    is_valid_address,
    parse_amount,
    resolve_chain_id,
    to_base_units,
)
from txtchain.errors import ChainError, DuplicateTransferError, SettlementError, ValidationError
from txtchain.notifications.dispatcher import NotificationDispatcher
from txtchain.settlement.models import (
    AcceptanceReceipt,
    PathKind,
    SettlementOutcome,
    SettlementPath,
    TransferKind,
    TransferRecord,
    TransferRequest,
    TransferStatus,
)
from txtchain.settlement.router import TransferRouter

logger = logging.getLogger(__name__)


class SettlementOrchestrator:
    """Top-level coordinator for transfers."""

    def __init__(
        self,
        router: TransferRouter,
        notifier: NotificationDispatcher,
        history_limit: int = 1000,
    ):
        self.router = router
        self.notifier = notifier
        self.history_limit = history_limit

        self._records: dict[str, TransferRecord] = {}
        self._in_flight: dict[str, str] = {}  # dedup key -> transfer id
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def home_chain_id(self) -> int:
        return self.router.home_chain_id

    @property
    def in_flight_count(self) -> int:
        return len(self._tasks)

    # ======================
    # Intake
    # ======================

    def submit(self, request: TransferRequest) -> AcceptanceReceipt:
        """Validate a request and schedule its settlement.

        Returns before any chain interaction. Must be called from a
        running event loop.

        Raises:
            ValidationError: Malformed or unsupported request
            DuplicateTransferError: An identical transfer is in flight
        """
        request = self.validate(request)
        key = dedup_key(request)

        # Check and insert with no await in between
        existing = self._in_flight.get(key)
        if existing is not None:
            logger.warning(f"Rejected duplicate transfer {key} (in flight: {existing})")
            raise DuplicateTransferError(key, existing)

        record = TransferRecord(id=uuid.uuid4().hex, request=request, dedup_key=key)
        self._records[record.id] = record
        self._in_flight[key] = record.id

        task = asyncio.create_task(self._settle(record), name=f"transfer-{record.id}")
        self._tasks[record.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(record.id, None))

        logger.info(f"Accepted transfer {record.id}: {request.describe()}")
        return AcceptanceReceipt(
            transfer_id=record.id,
            kind=request.kind,
            status=record.status,
            message=acceptance_message(request),
        )

    def validate(self, request: TransferRequest) -> TransferRequest:
        """Check required fields and return a normalized copy.

        Chains are resolved to canonical names (defaulting to the home
        chain) and token symbols are upper-cased.
        """
        home = chain_name(self.home_chain_id)

        from_chain_id = _resolve_chain(request.from_chain or home)
        to_chain_id = _resolve_chain(request.to_chain or request.from_chain or home)
        token = (request.token or "").strip().upper()
        to_token = request.to_token.strip().upper() if request.to_token else None

        normalized = replace(
            request,
            token=token,
            to_token=to_token,
            from_chain=chain_name(from_chain_id),
            to_chain=chain_name(to_chain_id),
            from_address=(request.from_address or "").strip(),
            to_address=(request.to_address or "").strip(),
            voucher_code=request.voucher_code.strip() if request.voucher_code else None,
            notify_contact=request.notify_contact.strip() if request.notify_contact else None,
        )

        if normalized.kind == TransferKind.REDEEM:
            self._validate_redeem(normalized, from_chain_id)
        elif normalized.kind == TransferKind.SWAP:
            self._validate_swap(normalized, from_chain_id)
        elif normalized.kind == TransferKind.SEND and not normalized.is_cross_chain:
            normalized = self._validate_send(normalized, from_chain_id)
        else:
            self._validate_bridge(normalized, from_chain_id, to_chain_id)
        return normalized

    def _require_home_chain(self, request: TransferRequest, chain_id: int) -> None:
        if chain_id != self.home_chain_id or request.is_cross_chain:
            raise ValidationError(
                f"{request.kind.value} is only available on {chain_name(self.home_chain_id)}"
            )

    def _validate_redeem(self, request: TransferRequest, chain_id: int) -> None:
        if not request.voucher_code:
            raise ValidationError("Missing voucherCode")
        _require_address(request.to_address, "userAddress")
        self._require_home_chain(request, chain_id)

    def _validate_swap(self, request: TransferRequest, chain_id: int) -> None:
        _require_address(request.from_address, "userAddress")
        self._require_home_chain(request, chain_id)
        if request.token != HOME_TOKEN:
            raise ValidationError(f"Only {HOME_TOKEN} can be swapped, got {request.token}")
        to_base_units(_require(request.amount, "tokenAmount"), get_token_decimals(HOME_TOKEN))
        if request.min_out is not None:
            try:
                min_out = Decimal(str(request.min_out).strip() or "0")
            except InvalidOperation:
                raise ValidationError(f"Invalid minEthOut: {request.min_out!r}")
            if not min_out.is_finite() or min_out < 0:
                raise ValidationError(f"Invalid minEthOut: {request.min_out!r}")
            if min_out > 0:
                to_base_units(min_out, 18)

    def _validate_send(self, request: TransferRequest, chain_id: int) -> TransferRequest:
        if request.signer_key:
            try:
                signer = Account.from_key(request.signer_key).address
            except Exception:
                raise ValidationError("Invalid userPrivateKey")
            request = replace(request, from_address=signer)
        else:
            _require_address(request.from_address, "fromAddress")
        _require_address(request.to_address, "toAddress")
        if not request.token:
            raise ValidationError("Missing token")

        token_address = self.router.token_address(request.token, chain_id)
        if not token_address:
            raise ValidationError(f"Token {request.token} not supported on {request.from_chain}")
        to_base_units(_require(request.amount, "amount"), get_token_decimals(request.token))

        if request.signer_key:
            if is_native_token(token_address):
                raise ValidationError(f"User-signed sends support ERC-20 tokens only, got {request.token}")
        elif not self.router.is_fast_channel_eligible(request):
            raise ValidationError(f"Unsupported token: {request.token}")
        return request

    def _validate_bridge(self, request: TransferRequest, from_chain_id: int, to_chain_id: int) -> None:
        _require_address(request.to_address, "userAddress")
        if not request.token:
            raise ValidationError("Missing fromToken")
        if request.signer_key:
            raise ValidationError("Cross-chain transfers are signed by the service wallet")
        to_token = request.to_token or request.token
        if not self.router.token_address(request.token, from_chain_id):
            raise ValidationError(f"Token {request.token} not supported on {request.from_chain}")
        if not self.router.token_address(to_token, to_chain_id):
            raise ValidationError(f"Token {to_token} not supported on {request.to_chain}")
        to_base_units(_require(request.amount, "amount"), get_token_decimals(request.token))

    # ======================
    # Background settlement
    # ======================

    async def _on_path(self, record: TransferRecord, path: SettlementPath) -> None:
        record.path = path
        record.advance(
            TransferStatus.FALLBACK_SETTLING if path.is_fallback else TransferStatus.SETTLING
        )
        logger.info(f"Transfer {record.id}: {record.status.value} via {path.kind.value}")

    async def _settle(self, record: TransferRecord) -> SettlementOutcome:
        """Background task body: route, record the terminal state, notify."""
        try:
            record.advance(TransferStatus.ROUTING)
            try:
                outcome = await self.router.route(
                    record.request, on_path=lambda path: self._on_path(record, path)
                )
            except SettlementError as e:
                logger.error(f"Transfer {record.id} failed: {e}")
                outcome = _failure_outcome(e, record.path)
            except Exception as e:
                logger.exception(f"Transfer {record.id} crashed: {e}")
                outcome = SettlementOutcome.failure(f"Internal error: {e}", path=record.path)

            self._finish(record, outcome)
        finally:
            self._in_flight.pop(record.dedup_key, None)

        try:
            await self.notifier.notify(record.request.notify_contact, outcome, record.request)
        except Exception as e:
            logger.error(f"Notification for {record.id} failed: {e}")
        return outcome

    def _finish(self, record: TransferRecord, outcome: SettlementOutcome) -> None:
        record.outcome = outcome
        record.advance(TransferStatus.COMPLETED if outcome.success else TransferStatus.FAILED)

        if outcome.success:
            logger.info(f"Transfer {record.id} completed: {outcome.tx_hash or outcome.channel_ref}")
        elif outcome.indeterminate:
            logger.warning(f"Transfer {record.id} failed with unknown on-chain outcome: {outcome.error}")
        self._trim_history()

    def _trim_history(self) -> None:
        """Evict the oldest terminal records beyond the history limit."""
        terminal = [record_id for record_id, r in self._records.items() if r.status.is_terminal]
        for record_id in terminal[: max(0, len(terminal) - self.history_limit)]:
            del self._records[record_id]

    # ======================
    # Lookups
    # ======================

    def get(self, transfer_id: str) -> Optional[TransferRecord]:
        return self._records.get(transfer_id)

    async def wait_for(
        self, transfer_id: str, timeout: Optional[float] = None
    ) -> SettlementOutcome:
        """Wait for a transfer's terminal outcome.

        The background task is shielded, so a caller timing out does not
        cancel the settlement.

        Raises:
            KeyError: Unknown transfer
            asyncio.TimeoutError: Still settling after `timeout`
        """
        task = self._tasks.get(transfer_id)
        if task is not None:
            return await asyncio.wait_for(asyncio.shield(task), timeout=timeout)

        record = self._records.get(transfer_id)
        if record is None or record.outcome is None:
            raise KeyError(transfer_id)
        return record.outcome

    def record_channel_finalization(
        self, channel_ref: Optional[str], tx_hash: str
    ) -> Optional[TransferRecord]:
        """Attach the channel's on-chain settlement to its fast-channel transfer."""
        if not channel_ref:
            return None
        for record in self._records.values():
            outcome = record.outcome
            if (
                outcome is not None
                and outcome.channel_ref == channel_ref
                and record.path is not None
                and record.path.kind == PathKind.FAST_CHANNEL
            ):
                record.finalized_tx_hash = tx_hash
                outcome.pending_finalization = False
                logger.info(f"Transfer {record.id} finalized by channel: {tx_hash}")
                return record
        logger.warning(f"No fast-channel transfer for channel reference {channel_ref}")
        return None

    async def finalize_channel_transfer(
        self, channel_ref: Optional[str], recipient: str, amount: str
    ) -> tuple[str, Optional[TransferRecord]]:
        """Settle a fast-channel batch entry on-chain and mark its transfer finalized.

        Returns:
            Tuple of (mint tx hash, matching transfer record or None)
        """
        recipient = (recipient or "").strip()
        _require_address(recipient, "recipientAddress")
        to_base_units(_require(amount, "amount"), get_token_decimals(HOME_TOKEN))

        logger.info(f"Channel settlement: {amount} {HOME_TOKEN} -> {recipient} [{channel_ref}]")
        receipt = await self.router.settle_channel_transfer(recipient, amount)
        return receipt.tx_hash, self.record_channel_finalization(channel_ref, receipt.tx_hash)

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Wait briefly for in-flight transfers, then cancel the rest."""
        tasks = list(self._tasks.values())
        if not tasks:
            return

        logger.info(f"Waiting for {len(tasks)} in-flight transfers")
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Cancelled {len(pending)} unfinished transfers")
            await asyncio.gather(*pending, return_exceptions=True)


def dedup_key(request: TransferRequest) -> str:
    """Key under which at most one transfer may be in flight."""
    if request.kind == TransferKind.REDEEM:
        return f"redeem:{request.voucher_code.upper()}"
    return ":".join(
        [
            request.kind.value,
            request.from_address.lower(),
            request.token,
            format_amount(parse_amount(request.amount)),
            request.to_address.lower(),
        ]
    )


def acceptance_message(request: TransferRequest) -> str:
    """Acknowledgment text. Never claims completion."""
    if request.kind == TransferKind.REDEEM:
        return "Redemption initiated"
    if request.kind == TransferKind.SWAP:
        return "Swap initiated"
    if request.kind == TransferKind.BRIDGE or request.is_cross_chain:
        return "Bridge initiated"
    return "Transfer queued"


def _failure_outcome(error: SettlementError, path: Optional[SettlementPath]) -> SettlementOutcome:
    tx_hash = getattr(error, "tx_hash", None)
    cause = getattr(error, "cause", None)
    if tx_hash is None and isinstance(cause, ChainError):
        tx_hash = cause.tx_hash
    return SettlementOutcome.failure(
        str(error),
        indeterminate=bool(getattr(error, "indeterminate", False)),
        path=path,
        tx_hashes=[tx_hash] if tx_hash else [],
        details={"reasons": list(getattr(error, "reasons", []))},
    )


def _resolve_chain(chain: str) -> int:
    chain_id = resolve_chain_id(chain)
    if chain_id is None:
        raise ValidationError(f"Unknown chain: {chain}")
    return chain_id


def _require(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"Missing {field_name}")
    return value


def _require_address(address: Optional[str], field_name: str) -> None:
    if not address:
        raise ValidationError(f"Missing {field_name}")
    if not is_valid_address(address):
        raise ValidationError(f"Invalid {field_name}: {address}")
