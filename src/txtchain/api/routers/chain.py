"""Balance, pool price and contract info endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from txtchain.api.deps import Services, get_services
from txtchain.api.schemas import SwapQuoteRequest
from txtchain.chains import chain_name, format_amount, is_valid_address

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Chain"])


@router.get("/balance/{address}")
async def get_balance(address: str, services: Services = Depends(get_services)) -> dict:
    """TXTC and ETH balances of an address on the home chain."""
    if not is_valid_address(address):
        raise HTTPException(status_code=400, detail=f"Invalid address: {address}")

    logger.info(f"Getting balance for {address}")
    balances = await services.executor.get_balances(address)
    return {"success": True, "address": address, "balances": balances}


@router.get("/contracts")
async def get_contracts(services: Services = Depends(get_services)) -> dict:
    """Home-chain contract addresses."""
    settings = services.settings
    chain_id = services.executor.home_chain_id
    return {
        "success": True,
        "network": chain_name(chain_id),
        "chainId": chain_id,
        "contracts": {
            "tokenXYZ": settings.token_contract,
            "voucherManager": settings.voucher_manager_contract,
            "entryPoint": settings.entry_point_contract,
            "uniswapPool": settings.uniswap_pool_contract,
        },
        "etherscan": settings.explorer_url,
    }


@router.get("/price")
async def get_price(services: Services = Depends(get_services)) -> dict:
    """Current TXTC price in ETH on the home-chain pool."""
    price = format_amount(await services.router.get_pool_price())
    return {"success": True, "price": price, "description": f"1 TXTC = {price} ETH"}


@router.post("/quote")
async def get_swap_quote(body: SwapQuoteRequest, services: Services = Depends(get_services)) -> dict:
    """Estimate a TXTC/ETH swap without executing it."""
    output = await services.router.estimate_swap_output(body.amount, body.is_token_to_eth)
    return {
        "success": True,
        "inputAmount": body.amount,
        "outputAmount": output,
        "direction": "TXTC → ETH" if body.is_token_to_eth else "ETH → TXTC",
    }
