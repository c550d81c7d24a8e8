"""Transfer settlement data model."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from txtchain.errors import StatusRegressionError
from txtchain.routing.base import Quote


class TransferKind(str, Enum):
    """Kind of value transfer."""

    REDEEM = "redeem"
    SWAP = "swap"
    SEND = "send"
    BRIDGE = "bridge"


class TransferStatus(str, Enum):
    """Transfer lifecycle, in stage order."""

    ACCEPTED = "accepted"
    ROUTING = "routing"
    SETTLING = "settling"
    FALLBACK_SETTLING = "fallback_settling"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def stage(self) -> int:
        return _STAGES[self]

    @property
    def is_terminal(self) -> bool:
        return self in (TransferStatus.COMPLETED, TransferStatus.FAILED)


_STAGES = {
    TransferStatus.ACCEPTED: 0,
    TransferStatus.ROUTING: 1,
    TransferStatus.SETTLING: 2,
    TransferStatus.FALLBACK_SETTLING: 3,
    TransferStatus.COMPLETED: 4,
    TransferStatus.FAILED: 4,
}


class PathKind(str, Enum):
    """Execution route of a transfer."""

    FAST_CHANNEL = "fast_channel"
    ON_CHAIN_DIRECT = "on_chain_direct"
    BRIDGE = "bridge"


@dataclass(frozen=True)
class SettlementPath:
    """The route chosen for a transfer.

    A failed fast channel is replaced by a new on-chain record through
    fallback(); the fast-channel record itself is never retried.
    """

    kind: PathKind
    quote: Optional[Quote] = None
    fallback_from: Optional[PathKind] = None

    @classmethod
    def fast_channel(cls) -> "SettlementPath":
        return cls(PathKind.FAST_CHANNEL)

    @classmethod
    def on_chain(cls) -> "SettlementPath":
        return cls(PathKind.ON_CHAIN_DIRECT)

    @classmethod
    def bridge(cls, quote: Quote) -> "SettlementPath":
        return cls(PathKind.BRIDGE, quote=quote)

    @property
    def is_fallback(self) -> bool:
        return self.fallback_from is not None

    def fallback(self) -> "SettlementPath":
        """Explicit transition from the fast channel to direct on-chain settlement."""
        if self.kind != PathKind.FAST_CHANNEL:
            raise ValueError(f"No fallback from {self.kind.value}")
        return SettlementPath(PathKind.ON_CHAIN_DIRECT, fallback_from=self.kind)


@dataclass
class TransferRequest:
    """A value transfer as submitted by a caller.

    Chain fields hold chain names or IDs as received; the orchestrator
    resolves and validates them at intake.
    """

    kind: TransferKind
    from_address: str
    to_address: str
    token: str
    amount: Optional[str] = None
    from_chain: Optional[str] = None
    to_chain: Optional[str] = None
    notify_contact: Optional[str] = None

    # Kind-specific
    voucher_code: Optional[str] = None
    to_token: Optional[str] = None
    min_out: Optional[str] = None
    signer_key: Optional[str] = field(default=None, repr=False)

    @property
    def is_cross_chain(self) -> bool:
        return self.from_chain != self.to_chain

    def describe(self) -> str:
        """Short human description for logs and acknowledgments."""
        if self.kind == TransferKind.REDEEM:
            return f"redeem voucher {self.voucher_code} for {self.to_address}"
        if self.kind == TransferKind.BRIDGE or self.is_cross_chain:
            return (
                f"{self.amount} {self.token} ({self.from_chain}) -> "
                f"{self.to_token or self.token} ({self.to_chain})"
            )
        if self.kind == TransferKind.SWAP:
            return f"{self.amount} {self.token} -> {self.to_token or 'ETH'} for {self.from_address}"
        return f"{self.amount} {self.token} from {self.from_address} to {self.to_address}"


@dataclass
class SettlementOutcome:
    """Terminal result of a transfer."""

    success: bool
    tx_hashes: list[str] = field(default_factory=list)
    output_amount: Optional[str] = None
    output_token: Optional[str] = None
    error: Optional[str] = None
    indeterminate: bool = False
    path: Optional[SettlementPath] = None
    channel_ref: Optional[str] = None
    pending_finalization: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def tx_hash(self) -> Optional[str]:
        """Reference of the final transaction, if any."""
        return self.tx_hashes[-1] if self.tx_hashes else None

    @classmethod
    def failure(cls, error: str, indeterminate: bool = False, **kwargs) -> "SettlementOutcome":
        return cls(success=False, error=error, indeterminate=indeterminate, **kwargs)

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "success": self.success,
            "txHash": self.tx_hash,
            "txHashes": list(self.tx_hashes),
            "outputAmount": self.output_amount,
            "outputToken": self.output_token,
            "error": self.error,
            "indeterminate": self.indeterminate,
            "path": self.path.kind.value if self.path else None,
            "fallback": self.path.is_fallback if self.path else False,
            "channelRef": self.channel_ref,
            "pendingFinalization": self.pending_finalization,
        }


@dataclass
class AcceptanceReceipt:
    """Synchronous acknowledgment returned by submit()."""

    transfer_id: str
    kind: TransferKind
    status: TransferStatus
    message: str


@dataclass
class TransferRecord:
    """Orchestrator-owned state of one transfer."""

    id: str
    request: TransferRequest
    dedup_key: Optional[str] = None
    status: TransferStatus = TransferStatus.ACCEPTED
    path: Optional[SettlementPath] = None
    outcome: Optional[SettlementOutcome] = None
    finalized_tx_hash: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def advance(self, status: TransferStatus) -> None:
        """Move to a later stage. Status never regresses."""
        if self.status.is_terminal:
            raise StatusRegressionError(
                f"Transfer {self.id} is already {self.status.value}"
            )
        if status.stage < self.status.stage:
            raise StatusRegressionError(
                f"Transfer {self.id}: {self.status.value} -> {status.value}"
            )
        self.status = status
        self.updated_at = time.time()

    def to_dict(self) -> dict:
        """Convert to dictionary for the status endpoint."""
        return {
            "transferId": self.id,
            "kind": self.request.kind.value,
            "status": self.status.value,
            "path": self.path.kind.value if self.path else None,
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "finalizedTxHash": self.finalized_tx_hash,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
