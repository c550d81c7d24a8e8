"""Error taxonomy for transfer settlement.

Errors raised before a transfer is acknowledged reach the caller.
Errors raised after acknowledgment end up in a failed SettlementOutcome,
the server log and the user notification.
"""

from typing import Optional


class SettlementError(Exception):
    """Base class for all settlement errors."""

    pass


class ValidationError(SettlementError):
    """Malformed or missing input, rejected before any external call."""

    pass


class DuplicateTransferError(ValidationError):
    """An identical transfer is already in flight."""

    def __init__(self, key: str, transfer_id: str):
        self.key = key
        self.transfer_id = transfer_id
        super().__init__(f"Transfer already in progress ({transfer_id})")


class RouteUnavailableError(SettlementError):
    """A specific path cannot be used right now. Triggers fallback."""

    pass


class QuoteError(SettlementError):
    """The aggregator has no viable route, or the quote is unusable."""

    def __init__(self, message: str, reasons: Optional[list[str]] = None):
        self.reasons = reasons or []
        super().__init__(message)


class ChainError(SettlementError):
    """A chain operation was rejected or reverted."""

    indeterminate = False

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message)


class ChainTimeoutError(ChainError):
    """No confirmation within the timeout. The on-chain outcome is unknown."""

    indeterminate = True


class RouteExhaustedError(SettlementError):
    """Every applicable path failed."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.cause = cause
        super().__init__(message)

    @property
    def indeterminate(self) -> bool:
        return bool(getattr(self.cause, "indeterminate", False))


class NotificationError(SettlementError):
    """Notification delivery failed. Never propagated past the dispatcher."""

    pass


class StatusRegressionError(SettlementError):
    """A transfer status was moved backwards."""

    pass
