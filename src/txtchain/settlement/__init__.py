"""Transfer settlement: data model, routing and orchestration."""

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

__all__ = [
    "AcceptanceReceipt",
    "PathKind",
    "SettlementOutcome",
    "SettlementPath",
    "TransferKind",
    "TransferRecord",
    "TransferRequest",
    "TransferStatus",
]
