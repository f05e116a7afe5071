"""Fan-out orchestrator: the engine's public entry point.

``PriceSearchEngine.search`` answers from the cache when it can. Otherwise it
runs a fast path (HTTP tiers only, every retailer at once under a concurrency
cap) and, only if that produced nothing, a browser path that runs the full
cascade in fixed-size batches. Both paths stop early once enough products
have been collected; retailers dropped by an early exit are reported as
skipped, not failed.
"""

import asyncio
import dataclasses
import logging
import time
from collections.abc import Iterable, Sequence
from itertools import chain

from src.ai.enrichment import Enricher
from src.utils.caching import ResponseCache

from .base.errors import ConfigurationError, EnrichmentError
from .base.models import (
    ALL_TIERS,
    HTTP_TIERS,
    AggregateResult,
    RetailerOutcome,
    SearchQuery,
    StrategyName,
)
from .base.utils import dedupe_products
from .cascade import Closeable
from .workers import CascadeRunner, WorkerPool

logger = logging.getLogger(__name__)

FAST_PATH = "fast"
BROWSER_PATH = "browser"


@dataclasses.dataclass
class PathResult:
    """Outcomes gathered by one dispatch path."""

    outcomes: dict[str, RetailerOutcome] = dataclasses.field(default_factory=dict)
    skipped: list[str] = dataclasses.field(default_factory=list)

    @property
    def product_count(self) -> int:
        return sum(len(outcome.products) for outcome in self.outcomes.values())


class PriceSearchEngine:
    """Search every configured retailer and aggregate the listings.

    Args:
    ----
        runner: Retrying cascade used for every retailer run
        retailer_keys: Retailers to search, in dispatch order
        cache: Response cache keyed by normalized query
        max_concurrency: Concurrent retailer cascades (also the batch size of
            the browser path)
        early_exit_threshold: Product count at which dispatch stops
        fast_path_enabled: Run the HTTP-only fast path first
        browser_path_enabled: Fall back to the full cascade when the fast
            path finds nothing
        worker_pool: Optional worker pool the browser path runs through
        enricher: Optional LLM enrichment client for ``enrich``
        closeables: Extra resources closed with the engine

    """

    def __init__(
        self,
        runner: CascadeRunner,
        retailer_keys: Sequence[str],
        cache: ResponseCache | None = None,
        max_concurrency: int = 3,
        early_exit_threshold: int = 15,
        fast_path_enabled: bool = True,
        browser_path_enabled: bool = True,
        worker_pool: WorkerPool | None = None,
        enricher: Enricher | None = None,
        closeables: Iterable[Closeable] = (),
    ):
        if max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be at least 1")
        self.runner = runner
        self.retailer_keys = list(retailer_keys)
        self.cache = cache if cache is not None else ResponseCache()
        self.max_concurrency = max_concurrency
        self.early_exit_threshold = early_exit_threshold
        self.fast_path_enabled = fast_path_enabled
        self.browser_path_enabled = browser_path_enabled
        self.worker_pool = worker_pool
        self.enricher = enricher
        self._closeables = list(closeables)
        self._closed = False

    async def search(self, query: str) -> AggregateResult:
        """Search all retailers for ``query``.

        Returns
        -------
            The aggregate result. Individual retailer failures are reported in
            it, never raised.

        Raises
        ------
            InvalidQueryError: If the query is empty or whitespace only
            ConfigurationError: If no retailers are configured

        """
        started = time.perf_counter()
        search_query = SearchQuery.from_raw(query)
        if not self.retailer_keys:
            raise ConfigurationError("No retailers configured")

        cached = self.cache.get(search_query.cache_key)
        if cached is not None:
            logger.info(f"Cache hit for '{search_query.text}'")
            return dataclasses.replace(cached, cached=True)

        path = FAST_PATH
        result = PathResult()
        if self.fast_path_enabled:
            result = await self._fast_path(search_query)
        if result.product_count == 0 and self.browser_path_enabled:
            logger.info(
                f"Fast path found nothing for '{search_query.text}', "
                "falling back to browser path"
            )
            path = BROWSER_PATH
            result = await self._browser_path(search_query)

        aggregate = self._aggregate(search_query, result, path, started)
        if aggregate.products:
            self.cache.set(search_query.cache_key, aggregate)
        return aggregate

    async def _run_retailer(
        self,
        retailer_key: str,
        query: SearchQuery,
        tiers: Sequence[StrategyName],
        isolated: bool = False,
    ) -> RetailerOutcome:
        try:
            if isolated and self.worker_pool is not None:
                return await self.worker_pool.run(retailer_key, query, tiers)
            return await self.runner.run(retailer_key, query, tiers)
        except Exception as e:
            logger.error(f"{retailer_key}: cascade crashed: {e}", exc_info=True)
            return RetailerOutcome.failed(retailer_key, str(e))

    async def _fast_path(self, query: SearchQuery) -> PathResult:
        """HTTP tiers for every retailer, stopping once the threshold is met."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_one(retailer_key: str) -> RetailerOutcome:
            async with semaphore:
                return await self._run_retailer(retailer_key, query, HTTP_TIERS)

        tasks = {
            asyncio.create_task(run_one(key), name=f"fast-path:{key}"): key
            for key in self.retailer_keys
        }
        result = PathResult()
        pending: set[asyncio.Task] = set(tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    result.outcomes[tasks[task]] = task.result()
                if pending and result.product_count >= self.early_exit_threshold:
                    logger.info(
                        f"Early exit on fast path with {result.product_count} products, "
                        f"dropping {len(pending)} retailers"
                    )
                    break
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        result.skipped = [key for key in self.retailer_keys if key not in result.outcomes]
        return result

    async def _browser_path(self, query: SearchQuery) -> PathResult:
        """Full cascade in sequential batches, parallel within a batch."""
        result = PathResult()
        keys = self.retailer_keys
        for start in range(0, len(keys), self.max_concurrency):
            batch = keys[start : start + self.max_concurrency]
            logger.debug(f"Browser path batch: {', '.join(batch)}")
            outcomes = await asyncio.gather(
                *(self._run_retailer(key, query, ALL_TIERS, isolated=True) for key in batch)
            )
            for outcome in outcomes:
                result.outcomes[outcome.retailer_key] = outcome

            remaining = keys[start + self.max_concurrency :]
            if remaining and result.product_count >= self.early_exit_threshold:
                logger.info(
                    f"Early exit on browser path with {result.product_count} products, "
                    f"skipping {len(remaining)} retailers"
                )
                result.skipped = list(remaining)
                break
        return result

    def _aggregate(
        self, query: SearchQuery, result: PathResult, path: str, started: float
    ) -> AggregateResult:
        ordered = [result.outcomes[key] for key in self.retailer_keys if key in result.outcomes]
        products = dedupe_products(chain.from_iterable(o.products for o in ordered))
        scraped = [o.retailer_key for o in ordered if o.succeeded]
        failed = [o.retailer_key for o in ordered if not o.succeeded]
        execution_time_ms = int((time.perf_counter() - started) * 1000)

        aggregate = AggregateResult(
            query=query.text,
            success=bool(products),
            products=tuple(products),
            scraped_retailers=tuple(scraped),
            failed_retailers=tuple(failed),
            skipped_retailers=tuple(result.skipped),
            execution_time_ms=execution_time_ms,
            path=path,
            errors={o.retailer_key: o.error for o in ordered if o.error},
        )

        summary = (
            f"'{query.text}' via {path} path in {execution_time_ms}ms: "
            f"{len(products)} products, scraped={scraped}, failed={failed}"
        )
        if result.skipped:
            summary += f", skipped={result.skipped}"
        if aggregate.success:
            logger.info(f"Search {summary}")
        else:
            logger.error(f"Search found nothing for {summary}")
        return aggregate

    async def enrich(self, result: AggregateResult, raw_html: str | None = None) -> str | None:
        """Ask the enrichment collaborator for narrative text about a result.

        The engine does not depend on this: with no enricher configured, or
        on any enrichment failure, None is returned.
        """
        if self.enricher is None or not result.products:
            return None
        try:
            return await self.enricher.enrich(list(result.products), raw_html)
        except EnrichmentError as e:
            logger.warning(f"Enrichment failed for '{result.query}': {e}")
            return None

    async def close(self) -> None:
        """Close the runner, worker pool, enricher and any extra resources."""
        if self._closed:
            return
        self._closed = True
        await self.runner.close()
        if self.worker_pool is not None:
            await self.worker_pool.close()
        if self.enricher is not None:
            await self.enricher.close()
        for resource in self._closeables:
            await resource.close()
        logger.debug("Search engine closed")

    async def __aenter__(self) -> "PriceSearchEngine":
        return self

    async def __aexit__(self, _exc_type, _exc_val, _exc_tb) -> None:
        await self.close()
