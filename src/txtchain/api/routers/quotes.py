"""Aggregator quote and status endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from txtchain.api.deps import Services, get_services
from txtchain.api.schemas import QuoteRequest
from txtchain.chains import CHAIN_IDS, resolve_chain_id
from txtchain.settlement.models import TransferKind, TransferRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/lifi", tags=["Quotes"])


@router.post("/quote")
async def get_quote(body: QuoteRequest, services: Services = Depends(get_services)) -> dict:
    """Quote a bridge or cross-chain swap without executing it."""
    request = services.orchestrator.validate(
        TransferRequest(
            kind=TransferKind.BRIDGE,
            from_address=body.user_address,
            to_address=body.user_address,
            token=body.from_token,
            to_token=body.to_token,
            amount=body.amount,
            from_chain=body.from_chain,
            to_chain=body.to_chain,
        )
    )

    logger.info(f"Quote: {request.describe()}")
    quote = await services.router.get_quote(request, sender=body.user_address)

    return {
        "success": True,
        "fromChain": body.from_chain,
        "toChain": body.to_chain,
        "fromToken": body.from_token,
        "toToken": body.to_token,
        "inputAmount": body.amount,
        "estimatedOutput": quote.estimated_output,
        "minimumOutput": quote.minimum_output,
        "executionTime": f"{quote.execution_duration}s",
        "isCrossChain": quote.pair.is_cross_chain,
    }


@router.get("/status/{tx_hash}")
async def get_status(
    tx_hash: str,
    from_chain: Optional[str] = Query(None, alias="fromChain"),
    to_chain: Optional[str] = Query(None, alias="toChain"),
    services: Services = Depends(get_services),
) -> dict:
    """Aggregator status of an executed transfer."""
    status = await services.quote_provider.get_status(
        tx_hash,
        resolve_chain_id(from_chain) if from_chain else None,
        resolve_chain_id(to_chain) if to_chain else None,
    )
    return {"success": True, **status}


@router.get("/chains")
async def get_chains() -> dict:
    """Supported chains, one entry per chain ID."""
    chains = []
    seen = set()
    for name, chain_id in CHAIN_IDS.items():
        if chain_id in seen:
            continue
        seen.add(chain_id)
        chains.append({"name": name, "id": chain_id})
    return {"success": True, "chains": chains}
