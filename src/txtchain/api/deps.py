"""Service container and FastAPI dependencies.

All collaborators are constructed once per application and handed to
route handlers through the container on app.state.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request

from txtchain.config import Settings, get_settings
from txtchain.execution import ChainExecutor, create_chain_executor
from txtchain.notifications import NotificationDispatcher, create_notification_dispatcher
from txtchain.routing import QuoteProvider, create_quote_provider
from txtchain.settlement.fast_channel import FastSettlementClient
from txtchain.settlement.orchestrator import SettlementOrchestrator
from txtchain.settlement.router import TransferRouter

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Process-wide collaborators."""

    settings: Settings
    executor: ChainExecutor
    quote_provider: QuoteProvider
    fast_channel: FastSettlementClient
    notifier: NotificationDispatcher
    router: TransferRouter
    orchestrator: SettlementOrchestrator
    http_client: Optional[httpx.AsyncClient] = None

    async def close(self, timeout: float = 5.0) -> None:
        """Drain in-flight transfers and release network resources."""
        await self.orchestrator.shutdown(timeout=timeout)
        await self.notifier.close()
        await self.fast_channel.close()
        await self.quote_provider.close()
        await self.executor.close()
        if self.http_client is not None:
            await self.http_client.aclose()


def build_services(
    settings: Optional[Settings] = None,
    executor: Optional[ChainExecutor] = None,
    quote_provider: Optional[QuoteProvider] = None,
    fast_channel: Optional[FastSettlementClient] = None,
    notifier: Optional[NotificationDispatcher] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Services:
    """Wire the service graph. Any collaborator can be supplied directly."""
    settings = settings or get_settings()

    executor = executor or create_chain_executor(settings, client=http_client)
    quote_provider = quote_provider or create_quote_provider(settings, client=http_client)
    fast_channel = fast_channel or FastSettlementClient(
        settings.fast_channel_url,
        timeout=settings.fast_channel_timeout,
        client=http_client,
    )
    notifier = notifier or create_notification_dispatcher(settings, client=http_client)

    router = TransferRouter(
        executor=executor,
        quote_provider=quote_provider,
        fast_channel=fast_channel,
        entry_point_contract=settings.entry_point_contract,
        default_slippage=settings.default_slippage,
        pool_contract=settings.uniswap_pool_contract,
    )
    orchestrator = SettlementOrchestrator(
        router=router,
        notifier=notifier,
        history_limit=settings.transfer_history_limit,
    )

    return Services(
        settings=settings,
        executor=executor,
        quote_provider=quote_provider,
        fast_channel=fast_channel,
        notifier=notifier,
        router=router,
        orchestrator=orchestrator,
        http_client=http_client,
    )


def get_services(request: Request) -> Services:
    """Get the service container of the running app."""
    return request.app.state.services


def get_orchestrator(request: Request) -> SettlementOrchestrator:
    return get_services(request).orchestrator
