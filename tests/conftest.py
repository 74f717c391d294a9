"""Shared fixtures for aggregator tests."""

import httpx
import pytest

from steamagg.config import AggregatorConfig
from tests.helpers import FakeResolver, FakeScraper, FakeSteam


@pytest.fixture
def config(tmp_path) -> AggregatorConfig:
    return AggregatorConfig(
        data_dir=str(tmp_path / "steam"),
        steam_api_key="test-key",
        api_min_interval_ms=0,
        client_rate_limit_seconds=0,
    )


@pytest.fixture
def steam() -> FakeSteam:
    return FakeSteam()


@pytest.fixture
def scraper() -> FakeScraper:
    return FakeScraper()


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def http_client(steam) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(steam))
