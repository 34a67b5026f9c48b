"""Shared fixtures for integration tests.

These tests talk to the real StockTwits API through the production transport
chain. They are skipped unless run with ``-m integration``.
"""

from collections.abc import AsyncIterator

import pytest

from socialpulse.agent.__main__ import build_transport
from socialpulse.config import Settings
from socialpulse.ingestion.stocktwits import StockTwitsClient


@pytest.fixture
def live_settings() -> Settings:
    return Settings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
async def stocktwits_client(live_settings: Settings) -> AsyncIterator[StockTwitsClient]:
    """Client wired the same way the agent wires it."""
    client = StockTwitsClient(
        transport=build_transport(live_settings),
        base_url=live_settings.stocktwits_base_url,
    )
    yield client
    await client.close()
