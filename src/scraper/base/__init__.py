"""Base infrastructure for the fetch engine.

This package holds everything the strategies share: the data model, the
exception hierarchy, configuration, parsing helpers, embedded-JSON extraction
and the retailer adapter registry.

Public API:
    - SearchQuery, Product, StrategyResult, RetailerOutcome, AggregateResult
    - EngineSettings, RetailerConfig, load_engine_settings
    - RetailerAdapter, RetailerRegistry, register_retailer
    - EmbeddedJsonExtractor, ExtractionRule
"""

from .browser_utils import BrowserDetection, get_launch_options
from .config import (
    BrowserSettings,
    DomSelectors,
    EngineSettings,
    RetailerConfig,
    get_engine_settings,
    load_engine_settings,
)
from .errors import (
    BrowserPoolError,
    ConfigurationError,
    EnrichmentError,
    InvalidQueryError,
    RetailerNotConfiguredError,
    ScraperError,
    StrategyError,
)
from .extractors import EmbeddedJsonExtractor, ExtractionRule
from .models import (
    ALL_TIERS,
    HTTP_TIERS,
    AggregateResult,
    CacheEntry,
    FailureKind,
    Product,
    ProductSource,
    ProxyIdentity,
    RequestSpec,
    RetailerOutcome,
    SearchQuery,
    StrategyName,
    StrategyResult,
)
from .registry import (
    GenericRetailerAdapter,
    RetailerAdapter,
    RetailerRegistry,
    register_retailer,
)
from .utils import clean_price, human_delay, normalize_price, parse_rating

__all__ = [
    # Models
    "ALL_TIERS",
    "HTTP_TIERS",
    "AggregateResult",
    "CacheEntry",
    "FailureKind",
    "Product",
    "ProductSource",
    "ProxyIdentity",
    "RequestSpec",
    "RetailerOutcome",
    "SearchQuery",
    "StrategyName",
    "StrategyResult",
    # Errors
    "BrowserPoolError",
    "ConfigurationError",
    "EnrichmentError",
    "InvalidQueryError",
    "RetailerNotConfiguredError",
    "ScraperError",
    "StrategyError",
    # Configuration
    "BrowserSettings",
    "DomSelectors",
    "EngineSettings",
    "RetailerConfig",
    "get_engine_settings",
    "load_engine_settings",
    # Registry and parsing
    "EmbeddedJsonExtractor",
    "ExtractionRule",
    "GenericRetailerAdapter",
    "RetailerAdapter",
    "RetailerRegistry",
    "register_retailer",
    "clean_price",
    "human_delay",
    "normalize_price",
    "parse_rating",
    # Browser helpers
    "BrowserDetection",
    "get_launch_options",
]
