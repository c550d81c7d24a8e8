"""Factory for creating the quote provider.

Creates the LI.FI provider for live mode, otherwise falls back to the
simulated provider.
"""

import logging
from typing import Optional

import httpx

from txtchain.config import Settings, get_settings
from txtchain.routing.base import QuoteProvider

logger = logging.getLogger(__name__)


def create_quote_provider(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> QuoteProvider:
    """Create the quote provider for the configured mode.

    Args:
        settings: Application settings (cached settings if omitted)
        client: Shared HTTP client for the aggregator

    Returns:
        LiFiQuoteProvider unless dry-run is enabled
    """
    settings = settings or get_settings()

    if not settings.dry_run:
        from txtchain.routing.lifi import LiFiQuoteProvider

        logger.info(f"Using LI.FI quote provider at {settings.lifi_api_url}")
        return LiFiQuoteProvider(
            api_key=settings.lifi_api_key or None,
            base_url=settings.lifi_api_url,
            integrator=settings.lifi_integrator,
            ttl_seconds=settings.quote_ttl_seconds,
            timeout=settings.quote_timeout,
            client=client,
        )

    from txtchain.routing.dry_run import SimulatedQuoteProvider

    logger.warning("Dry-run mode: using simulated quote provider")
    return SimulatedQuoteProvider(ttl_seconds=settings.quote_ttl_seconds)
