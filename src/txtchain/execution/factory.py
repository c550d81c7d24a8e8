"""Factory for creating the chain executor.

Creates the EVM executor when a service wallet is configured and
dry-run is off, otherwise the simulated executor.
"""

import logging
from typing import Optional

import httpx

from txtchain.chains import CHAINS, resolve_chain_id
from txtchain.config import Settings, get_settings
from txtchain.execution.base import ChainExecutor

logger = logging.getLogger(__name__)


def create_chain_executor(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> ChainExecutor:
    """Create the chain executor for the configured mode.

    Args:
        settings: Application settings (cached settings if omitted)
        client: Shared HTTP client for JSON-RPC calls

    Returns:
        EVMChainExecutor in live mode, SimulatedChainExecutor otherwise

    Raises:
        ValueError: Live mode without a service wallet key, or unknown home chain
    """
    settings = settings or get_settings()

    home_chain_id = resolve_chain_id(settings.home_chain)
    if home_chain_id is None:
        raise ValueError(f"Unknown home chain: {settings.home_chain}")

    if not settings.dry_run:
        if not settings.has_wallet:
            raise ValueError("PRIVATE_KEY is required when DRY_RUN is disabled")

        from txtchain.execution.evm import EVMChainExecutor

        executor = EVMChainExecutor(
            private_key=settings.private_key,
            rpc_urls={chain_id: settings.get_rpc_url(chain_id) for chain_id in CHAINS},
            home_chain_id=home_chain_id,
            token_contract=settings.token_contract,
            rpc_timeout=settings.rpc_timeout,
            confirmation_timeout=settings.chain_confirmation_timeout,
            poll_interval=settings.chain_poll_interval,
            client=client,
        )
        logger.info(f"Using EVM executor, service wallet {executor.sender_address}")
        return executor

    from txtchain.execution.dry_run import SimulatedChainExecutor

    logger.warning("Dry-run mode: using simulated chain executor")
    return SimulatedChainExecutor(
        home_chain_id=home_chain_id,
        token_contract=settings.token_contract,
        vouchers=settings.voucher_face_values,
        gas_reserve_percent=settings.gas_reserve_percent,
        eth_per_txtc=settings.simulated_eth_per_txtc,
    )
