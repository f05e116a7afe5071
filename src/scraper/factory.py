"""Builds a fully wired ``PriceSearchEngine`` from configuration.

Every service (cache, rotator, HTTP transport, browser pool, strategies,
cascade, retry wrapper, worker pool, enricher) is constructed here and
injected; nothing in the engine reaches for a module-level singleton.
"""

import logging

from src.ai.enrichment import Enricher, OpenRouterEnricher
from src.utils.caching import ResponseCache
from src.utils.connection_pool import HttpTransport

from . import retailers  # noqa: F401  registers the retailer adapters
from .base.config import EngineSettings, get_engine_settings, load_engine_settings
from .base.registry import RetailerRegistry
from .browser.pool import BrowserPool
from .cascade import StrategyCascade
from .debug import DebugRecorder
from .identity import IdentityFactory, ProxyRotator
from .orchestrator import PriceSearchEngine
from .retry import RetryingCascade
from .strategies import (
    BrowserNetworkSniffStrategy,
    DirectApiStrategy,
    GraphQLStrategy,
    HarvestedEndpointStrategy,
)
from .workers import WorkerPool

logger = logging.getLogger(__name__)


class EngineFactory:
    """Factory for the engine and its per-worker cascades."""

    @classmethod
    def build_rotator(cls, settings: EngineSettings) -> ProxyRotator:
        return ProxyRotator(
            settings.proxies,
            IdentityFactory(timezone_id=settings.browser.timezone_id),
        )

    @classmethod
    def worker_settings(cls, settings: EngineSettings) -> tuple[int, EngineSettings]:
        """Split the browser context cap across workers.

        Returns the effective worker count and the settings each worker uses.
        Workers never outnumber the cap, so the total context count across
        all worker pools stays at ``max_contexts_per_engine``.
        """
        cap = settings.browser.max_contexts_per_engine
        count = min(settings.worker_count, cap)
        if count < settings.worker_count:
            logger.warning(
                f"worker_count {settings.worker_count} exceeds the browser context "
                f"cap {cap}, using {count} workers"
            )
        browser = settings.browser.model_copy(
            update={"max_contexts_per_engine": max(1, cap // count)}
        )
        return count, settings.model_copy(update={"browser": browser})

    @classmethod
    def build_cascade(
        cls,
        settings: EngineSettings,
        rotator: ProxyRotator | None = None,
        with_browser: bool = True,
    ) -> RetryingCascade:
        """Build a retrying cascade with its own transport and browser pool.

        Pass the engine's rotator so every cascade draws from one
        round-robin. Without ``with_browser`` the cascade only serves HTTP
        tiers and never launches a browser.
        """
        if rotator is None:
            rotator = cls.build_rotator(settings)
        recorder = DebugRecorder(settings.debug.enabled, settings.debug.output_path)
        transport = HttpTransport(
            pool_limit=settings.http.pool_limit,
            host_limit=settings.http.host_limit,
            total_timeout_sec=settings.http.timeout_sec,
        )
        closeables: list = [transport]

        http_options = {
            "transport": transport,
            "rotator": rotator,
            "max_attempts": settings.http.max_proxy_attempts,
            "delay_range_sec": settings.human_delay_range_sec,
            "timeout_sec": settings.http.timeout_sec,
            "recorder": recorder,
        }
        strategies = [
            DirectApiStrategy(**http_options),
            GraphQLStrategy(**http_options),
            HarvestedEndpointStrategy(**http_options),
        ]
        if with_browser:
            pool = BrowserPool(settings.browser, rotator=rotator)
            strategies.append(BrowserNetworkSniffStrategy(pool, settings.browser, recorder))
            closeables.append(pool)

        enabled = {key: settings.retailers[key] for key in settings.enabled_retailers()}
        cascade = StrategyCascade(
            RetailerRegistry.build(enabled),
            strategies,
            http_timeout_sec=settings.http.timeout_sec,
            browser_timeout_sec=settings.browser.timeout_sec,
            closeables=closeables,
        )
        return RetryingCascade(
            cascade, retries=settings.retry.retries, delay_sec=settings.retry.delay_sec
        )

    @classmethod
    def build_enricher(cls, settings: EngineSettings) -> Enricher | None:
        if not settings.enrichment.enabled:
            return None
        return OpenRouterEnricher(settings.enrichment)

    @classmethod
    def create_engine(
        cls,
        settings: EngineSettings | None = None,
        config_path: str | None = None,
        debug_mode: bool | None = None,
    ) -> PriceSearchEngine:
        """Create an engine from settings (loaded from config when omitted).

        Args:
        ----
            settings: Ready-made settings, takes precedence over config_path
            config_path: Optional path to the YAML configuration file
            debug_mode: Optional debug capture override

        Raises:
        ------
            ConfigurationError: If the configuration file is missing or invalid

        """
        if settings is None:
            settings = (
                load_engine_settings(config_path) if config_path else get_engine_settings()
            )
        if debug_mode is not None:
            settings = settings.model_copy(
                update={"debug": settings.debug.model_copy(update={"enabled": debug_mode})}
            )

        retailer_keys = settings.enabled_retailers()
        if not retailer_keys:
            logger.warning("No retailers enabled in configuration, searches will fail")

        rotator = cls.build_rotator(settings)
        worker_pool = None
        if settings.worker_count > 0:
            count, per_worker = cls.worker_settings(settings)
            worker_pool = WorkerPool(
                count, lambda: cls.build_cascade(per_worker, rotator)
            )

        logger.info(
            f"Creating search engine for {len(retailer_keys)} retailers: "
            f"{', '.join(retailer_keys)}"
        )
        return PriceSearchEngine(
            runner=cls.build_cascade(
                settings, rotator, with_browser=worker_pool is None
            ),
            retailer_keys=retailer_keys,
            cache=ResponseCache(settings.cache.ttl_sec, settings.cache.max_entries),
            max_concurrency=settings.max_concurrent_retailers,
            early_exit_threshold=settings.early_exit_threshold,
            fast_path_enabled=settings.fast_path_enabled,
            browser_path_enabled=settings.browser_path_enabled,
            worker_pool=worker_pool,
            enricher=cls.build_enricher(settings),
        )


def create_engine(
    settings: EngineSettings | None = None,
    config_path: str | None = None,
    debug_mode: bool | None = None,
) -> PriceSearchEngine:
    """Convenience wrapper around ``EngineFactory.create_engine``."""
    return EngineFactory.create_engine(settings, config_path, debug_mode)
