"""Pytest configuration and fixtures."""

import os
from decimal import Decimal
from typing import Callable, Optional
from unittest.mock import AsyncMock

import httpx
import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DRY_RUN"] = "true"
os.environ["DEBUG"] = "true"
os.environ["PRIVATE_KEY"] = ""
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["TWILIO_ACCOUNT_SID"] = ""
os.environ["TWILIO_AUTH_TOKEN"] = ""
os.environ["TWILIO_PHONE_NUMBER"] = ""

from txtchain.config import Settings
from txtchain.execution.dry_run import SimulatedChainExecutor
from txtchain.notifications.dispatcher import NotificationDispatcher
from txtchain.routing.dry_run import SimulatedQuoteProvider
from txtchain.settlement.fast_channel import FastSettlementClient
from txtchain.settlement.orchestrator import SettlementOrchestrator
from txtchain.settlement.router import TransferRouter
from txtchain.utils.locks import clear_address_locks

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
ENTRY_POINT = "0x0084FA06Fa317D4311d865f35d62dCBcb0517355"
TOKEN = "0x0F0E4A3F59C3B8794A9044a0dC0155fB3C3fA223"
ONE = 10**18


def fast_channel_client(handler: Callable[[httpx.Request], httpx.Response]) -> FastSettlementClient:
    """Fast channel client backed by a mock transport."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FastSettlementClient("http://channel.test", timeout=1.0, client=client)


def channel_down(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


def channel_accepts(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "transactionId": "yellow-tx-1"})


@pytest.fixture(autouse=True)
def reset_locks():
    """Clear address locks before each test."""
    clear_address_locks()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, dry_run=True, simulated_vouchers="ABC123:100,DEMO50:50")


@pytest.fixture
def executor() -> SimulatedChainExecutor:
    return SimulatedChainExecutor(
        token_contract=TOKEN,
        vouchers={"ABC123": Decimal("100"), "DEMO50": Decimal("50")},
        gas_reserve_percent=Decimal("10"),
    )


@pytest.fixture
def quote_provider() -> SimulatedQuoteProvider:
    return SimulatedQuoteProvider()


@pytest.fixture
def notifier() -> AsyncMock:
    return AsyncMock(spec=NotificationDispatcher)


def make_router(
    executor: SimulatedChainExecutor,
    quote_provider,
    fast_channel: Optional[FastSettlementClient] = None,
) -> TransferRouter:
    return TransferRouter(
        executor=executor,
        quote_provider=quote_provider,
        fast_channel=fast_channel,
        entry_point_contract=ENTRY_POINT,
    )


@pytest.fixture
def router(executor, quote_provider) -> TransferRouter:
    """Router whose fast channel is unreachable."""
    return make_router(executor, quote_provider, fast_channel_client(channel_down))


@pytest.fixture
async def orchestrator(router, notifier):
    orchestrator = SettlementOrchestrator(router=router, notifier=notifier)
    yield orchestrator
    await orchestrator.shutdown(timeout=1.0)
