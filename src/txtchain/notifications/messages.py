"""User-facing notification texts.

A fast-channel acceptance is reported as queued, never as complete,
and a timed-out transaction is reported with an unknown status.
"""

from typing import Optional

from txtchain.settlement.models import PathKind, SettlementOutcome, TransferKind, TransferRequest


def short_address(address: str) -> str:
    return f"{address[:10]}..." if len(address) > 12 else address


def short_hash(tx_hash: str) -> str:
    return f"{tx_hash[:10]}...{tx_hash[-8:]}" if len(tx_hash) > 20 else tx_hash


def format_outcome(outcome: SettlementOutcome, request: Optional[TransferRequest] = None) -> str:
    """Render a terminal outcome as a plain-text message."""
    if not outcome.success:
        return _format_failure(outcome, request)

    kind = request.kind if request else None
    path = outcome.path.kind if outcome.path else None

    if path == PathKind.FAST_CHANNEL:
        return (
            f"Transfer queued!\n\n{outcome.output_amount} {outcome.output_token} -> "
            f"{short_address(request.to_address) if request else 'recipient'}\n\n"
            f"Processing via the fast channel."
        )

    if kind == TransferKind.REDEEM:
        details = outcome.details
        amounts = (
            f"{details['token_amount']} TXTC + {details.get('eth_amount')} ETH for gas\n\n"
            if details.get("token_amount") is not None
            else ""
        )
        return (
            f"Voucher redeemed!\n\n{amounts}"
            f"TX: {short_hash(outcome.tx_hash)}\nReply BALANCE to check."
        )

    if kind == TransferKind.SWAP:
        if outcome.output_amount is None:
            return "Swap complete!\n\nReply BALANCE to check."
        return (
            f"Swap complete!\n\n{request.amount} TXTC -> {outcome.output_amount} ETH\n\n"
            f"Reply BALANCE to check."
        )

    if path == PathKind.BRIDGE:
        label = "Bridge submitted" if outcome.details.get("cross_chain") else "Swap submitted"
        source = f"{request.amount} {request.token} ({request.from_chain})" if request else "Transfer"
        return (
            f"{label}!\n\n{source} -> ~{outcome.output_amount} {outcome.output_token}"
            f"{f' ({request.to_chain})' if request else ''}\n\nTX: {short_hash(outcome.tx_hash)}"
        )

    recipient = short_address(request.to_address) if request else "recipient"
    return (
        f"Sent {outcome.output_amount} {outcome.output_token} to {recipient}\n\n"
        f"TX: {short_hash(outcome.tx_hash)}\nReply BALANCE to check."
    )


def _format_failure(outcome: SettlementOutcome, request: Optional[TransferRequest]) -> str:
    action = {
        TransferKind.REDEEM: "Redemption",
        TransferKind.SWAP: "Swap",
        TransferKind.SEND: "Transfer",
        TransferKind.BRIDGE: "Bridge",
    }.get(request.kind if request else None, "Transfer")

    if outcome.indeterminate:
        reference = f"\nTX: {short_hash(outcome.tx_hash)}" if outcome.tx_hash else ""
        return (
            f"{action} status unknown: the network did not confirm in time.{reference}\n\n"
            f"Reply BALANCE before retrying."
        )
    return f"{action} failed: {outcome.error}\n\nPlease try again later."
