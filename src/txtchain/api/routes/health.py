"""Health check endpoints."""

from fastapi import APIRouter, Depends

from txtchain.api.deps import Services, get_services
from txtchain.chains import chain_name

router = APIRouter()


@router.get("/health")
async def health_check(services: Services = Depends(get_services)):
    """Basic health check endpoint."""
    chain_id = services.executor.home_chain_id
    return {"status": "ok", "network": chain_name(chain_id), "chainId": chain_id}


@router.get("/health/detailed")
async def detailed_health(services: Services = Depends(get_services)):
    """Detailed health check with configuration info."""
    return {
        "status": "ok",
        "service": "txtchain",
        "version": "0.1.0",
        "inFlightTransfers": services.orchestrator.in_flight_count,
        "config": services.settings.get_safe_dict(),
    }
