"""Multi-tier product listing fetch engine.

For every configured retailer the engine walks a strategy cascade
(direct API, GraphQL, harvested endpoint, browser network sniff with a DOM
fallback) and aggregates whatever the retailers returned within the latency
budget.

Architecture:
    - base/: models, configuration, parsing helpers, adapter registry
    - retailers/: retailer-specific adapters
    - strategies/: the four acquisition strategies
    - browser/: browser context pool, stealth and network capture
    - cascade.py, retry.py, orchestrator.py, workers.py: orchestration layers

Usage:
    from src.scraper.factory import create_engine

    async with create_engine() as engine:
        result = await engine.search("iphone 15")
"""

from .base import (
    AggregateResult,
    ConfigurationError,
    EngineSettings,
    InvalidQueryError,
    Product,
    load_engine_settings,
)

__all__ = [
    "AggregateResult",
    "ConfigurationError",
    "EngineSettings",
    "InvalidQueryError",
    "Product",
    "load_engine_settings",
]
