"""Transfer endpoints.

Redeem, send and send-yellow wait for the settlement outcome before
responding. Swap and bridge respond once the transfer is accepted; their
outcome reaches the user through the notification channel.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from txtchain.api.deps import Services, get_services
from txtchain.api.schemas import (
    BridgeRequest,
    ChannelSettlementRequest,
    FastSendRequest,
    RedeemRequest,
    SendRequest,
    SwapRequest,
)
from txtchain.chains import HOME_TOKEN
from txtchain.settlement.models import (
    PathKind,
    SettlementOutcome,
    TransferKind,
    TransferRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Transfers"])


def failure_response(transfer_id: str, outcome: SettlementOutcome) -> JSONResponse:
    """500 response for a transfer that settled as failed."""
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": outcome.error,
            "indeterminate": outcome.indeterminate,
            "txHash": outcome.tx_hash,
            "transferId": transfer_id,
        },
    )


@router.post("/redeem")
async def redeem(body: RedeemRequest, services: Services = Depends(get_services)):
    """Redeem a voucher: TXTC minus the gas reserve, plus ETH for gas."""
    orchestrator = services.orchestrator
    receipt = orchestrator.submit(
        TransferRequest(
            kind=TransferKind.REDEEM,
            from_address=body.user_address,
            to_address=body.user_address,
            token=HOME_TOKEN,
            voucher_code=body.voucher_code,
            notify_contact=body.user_phone,
        )
    )

    outcome = await orchestrator.wait_for(receipt.transfer_id)
    if not outcome.success:
        return failure_response(receipt.transfer_id, outcome)

    return {
        "success": True,
        "tokenAmount": outcome.details.get("token_amount"),
        "ethAmount": outcome.details.get("eth_amount"),
        "txHash": outcome.tx_hash,
        "transferId": receipt.transfer_id,
    }


@router.post("/swap")
async def swap(body: SwapRequest, services: Services = Depends(get_services)) -> dict:
    """Swap TXTC for ETH. Responds immediately."""
    receipt = services.orchestrator.submit(
        TransferRequest(
            kind=TransferKind.SWAP,
            from_address=body.user_address,
            to_address=body.user_address,
            token=HOME_TOKEN,
            to_token="ETH",
            amount=body.token_amount,
            min_out=body.min_eth_out,
            notify_contact=body.user_phone,
        )
    )
    return {"success": True, "message": receipt.message, "transferId": receipt.transfer_id}


@router.post("/send")
async def send(body: SendRequest, services: Services = Depends(get_services)):
    """Transfer tokens signed with the sender's own key."""
    orchestrator = services.orchestrator
    receipt = orchestrator.submit(
        TransferRequest(
            kind=TransferKind.SEND,
            from_address="",
            to_address=body.to_address,
            token=body.token,
            amount=body.amount,
            signer_key=body.user_private_key,
            notify_contact=body.user_phone,
        )
    )

    outcome = await orchestrator.wait_for(receipt.transfer_id)
    if not outcome.success:
        return failure_response(receipt.transfer_id, outcome)
    return {"success": True, "txHash": outcome.tx_hash, "transferId": receipt.transfer_id}


@router.post("/send-yellow")
async def send_fast(body: FastSendRequest, services: Services = Depends(get_services)):
    """Send via the fast channel, falling back to an on-chain transfer."""
    orchestrator = services.orchestrator
    receipt = orchestrator.submit(
        TransferRequest(
            kind=TransferKind.SEND,
            from_address=body.from_address,
            to_address=body.to_address,
            token=body.token,
            amount=body.amount,
            notify_contact=body.user_phone,
        )
    )

    outcome = await orchestrator.wait_for(receipt.transfer_id)
    if not outcome.success:
        return failure_response(receipt.transfer_id, outcome)

    if outcome.path and outcome.path.kind == PathKind.FAST_CHANNEL:
        return {
            "success": True,
            "transactionId": outcome.channel_ref,
            "message": "Queued via fast channel",
            "estimatedProcessing": "Within 3 minutes",
            "transferId": receipt.transfer_id,
        }
    return {
        "success": True,
        "message": "Transfer complete (on-chain fallback)",
        "txHash": outcome.tx_hash,
        "transferId": receipt.transfer_id,
    }


@router.post("/yellow/settle")
async def settle_fast_channel(
    body: ChannelSettlementRequest, services: Services = Depends(get_services)
) -> dict:
    """Fast channel callback: mint the settled TXTC to the recipient."""
    tx_hash, record = await services.orchestrator.finalize_channel_transfer(
        body.tx_id, body.recipient_address, body.amount
    )
    return {
        "success": True,
        "txHash": tx_hash,
        "recipient": body.recipient_address,
        "amount": body.amount,
        "transferId": record.id if record else None,
    }


@router.post("/bridge")
async def bridge(body: BridgeRequest, services: Services = Depends(get_services)) -> dict:
    """Bridge or cross-chain swap via the aggregator. Responds immediately."""
    receipt = services.orchestrator.submit(
        TransferRequest(
            kind=TransferKind.BRIDGE,
            from_address=body.user_address,
            to_address=body.user_address,
            token=body.from_token,
            to_token=body.to_token,
            amount=body.amount,
            from_chain=body.from_chain,
            to_chain=body.to_chain,
            notify_contact=body.user_phone,
        )
    )
    return {
        "success": True,
        "message": receipt.message,
        "route": (
            f"{body.amount} {body.from_token} ({body.from_chain}) -> "
            f"{body.to_token} ({body.to_chain})"
        ),
        "transferId": receipt.transfer_id,
    }


@router.get("/transfers/{transfer_id}")
async def get_transfer(transfer_id: str, services: Services = Depends(get_services)) -> dict:
    """Status of an accepted transfer."""
    record = services.orchestrator.get(transfer_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Transfer not found: {transfer_id}")
    return {"success": True, **record.to_dict()}
