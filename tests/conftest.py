"""Pytest configuration and shared fixtures for PriceScout tests."""

import asyncio
import logging
import random
import tempfile
from collections.abc import Callable, Generator, Sequence
from pathlib import Path

import pytest
import yaml
from aioresponses import aioresponses

from src.scraper.base.config import EngineSettings, RetailerConfig
from src.scraper.base.models import (
    ALL_TIERS,
    Product,
    ProductSource,
    RetailerOutcome,
    SearchQuery,
    StrategyName,
)
from src.scraper.identity import IdentityFactory, ProxyRotator

TEST_USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) PriceScoutTest/1.0"


def make_product(
    retailer_name: str = "ShopOne",
    name: str = "Test Phone",
    price: str = "1299",
    index: int = 0,
    source: ProductSource = ProductSource.DIRECT_API,
) -> Product:
    """Build a valid product; ``index`` keeps ids and URLs unique."""
    slug = retailer_name.lower().replace(" ", "-")
    return Product(
        id=f"{slug}-{index}",
        name=f"{name} {index}",
        price=price,
        retailer_name=retailer_name,
        detail_url=f"https://{slug}.test/p/{index}",
        source=source,
    )


def make_products(retailer_name: str, count: int) -> tuple[Product, ...]:
    return tuple(make_product(retailer_name, index=i) for i in range(count))


def make_retailer_config(key: str, **overrides) -> RetailerConfig:
    data = {
        "key": key,
        "name": key.title(),
        "base_url": f"https://www.{key}.test",
        "search_url_template": f"https://www.{key}.test/search?q={{query}}",
        "direct_api_url": f"https://api.{key}.test/search",
        "dom_selectors": {
            "container": ".product",
            "name": ".title",
            "price": ".price",
            "image": "img",
            "link": "a",
            "rating": ".rating",
        },
    }
    data.update(overrides)
    return RetailerConfig(**data)


class FakeRunner:
    """Cascade stand-in returning scripted outcomes per retailer.

    ``script`` maps a retailer key to either a ``RetailerOutcome`` or a
    callable ``(tiers) -> RetailerOutcome``. Calls are recorded in order.
    """

    def __init__(
        self,
        script: dict[str, RetailerOutcome | Callable[[tuple], RetailerOutcome]],
        delays: dict[str, float] | None = None,
    ):
        self.script = script
        self.delays = delays or {}
        self.calls: list[tuple[str, tuple[StrategyName, ...]]] = []
        self.cancelled: list[str] = []
        self.closed = False

    async def run(
        self,
        retailer_key: str,
        query: SearchQuery,
        tiers: Sequence[StrategyName] = ALL_TIERS,
    ) -> RetailerOutcome:
        self.calls.append((retailer_key, tuple(tiers)))
        try:
            await asyncio.sleep(self.delays.get(retailer_key, 0))
        except asyncio.CancelledError:
            self.cancelled.append(retailer_key)
            raise
        entry = self.script.get(retailer_key)
        if entry is None:
            return RetailerOutcome.failed(retailer_key, "not scripted")
        if callable(entry):
            return entry(tuple(tiers))
        return entry

    async def close(self) -> None:
        self.closed = True


def succeeded(retailer_key: str, count: int, retailer_name: str | None = None) -> RetailerOutcome:
    return RetailerOutcome(
        retailer_key=retailer_key,
        products=make_products(retailer_name or retailer_key.title(), count),
        succeeded=True,
        strategy=StrategyName.DIRECT_API,
    )


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def mock_aioresponses() -> Generator[aioresponses, None, None]:
    """Mock HTTP responses for testing."""
    with aioresponses() as m:
        yield m


@pytest.fixture
def identity_factory() -> IdentityFactory:
    """Deterministic identities without touching the user-agent database."""
    return IdentityFactory(user_agent_source=lambda: TEST_USER_AGENT, rng=random.Random(7))


@pytest.fixture
def rotator(identity_factory: IdentityFactory) -> ProxyRotator:
    """Rotator with no proxies: every attempt goes out directly."""
    return ProxyRotator([], identity_factory)


@pytest.fixture
def search_query() -> SearchQuery:
    return SearchQuery.from_raw("  iPhone   15 ")


@pytest.fixture
def sample_config_data() -> dict:
    """Minimal but complete scrapers.yaml content."""
    return {
        "engine": {
            "max_concurrent_retailers": 2,
            "early_exit_threshold": 10,
            "human_delay_range_sec": [0, 0],
            "proxies": ["http://proxy-a.test:8080", "socks5://proxy-b.test:1080"],
        },
        "cache": {"ttl_sec": 120, "max_entries": 10},
        "retry": {"retries": 1, "delay_sec": 0},
        "retailers": {
            "shopone": {
                "name": "ShopOne",
                "base_url": "https://www.shopone.test",
                "search_url_template": "https://www.shopone.test/search?q={query}",
                "direct_api_url": "https://api.shopone.test/search",
            },
            "shoptwo": {
                "name": "ShopTwo",
                "base_url": "https://www.shoptwo.test",
                "search_url_template": "https://www.shoptwo.test/s/{query}",
                "enabled": False,
            },
        },
    }


@pytest.fixture
def config_file(temp_dir: Path, sample_config_data: dict) -> Path:
    """Write the sample configuration to a YAML file."""
    path = temp_dir / "scrapers.yaml"
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(sample_config_data, f)
    return path


@pytest.fixture
def engine_settings() -> EngineSettings:
    """Settings with three generic retailers and no delays."""
    return EngineSettings(
        human_delay_range_sec=(0, 0),
        retry={"retries": 0, "delay_sec": 0},
        retailers={
            key: make_retailer_config(key) for key in ("alpha", "beta", "gamma")
        },
    )


@pytest.fixture(autouse=True)
def setup_logging():
    """Set up logging for tests."""
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set up mock environment variables for testing."""
    env_vars = {
        "OPENROUTER_API_KEY": "test_openrouter_key",
        "SCRAPER_MAX_CONCURRENCY": "5",
        "SCRAPER_EARLY_EXIT_THRESHOLD": "20",
    }

    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)

    return env_vars
