"""Per-retailer strategy cascade."""

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Protocol

from .base.errors import RetailerNotConfiguredError
from .base.models import (
    ALL_TIERS,
    FailureKind,
    RetailerOutcome,
    SearchQuery,
    StrategyName,
    StrategyResult,
)
from .base.registry import RetailerAdapter
from .strategies.base import FetchStrategy

logger = logging.getLogger(__name__)


class Closeable(Protocol):
    async def close(self) -> None: ...


class StrategyCascade:
    """Try each strategy in priority order until one yields products.

    Every strategy runs under its own deadline. Any exception or timeout is
    treated as "this strategy yielded nothing" and the cascade moves on; only
    the last error message is kept for the outcome.

    Args:
    ----
        adapters: Retailer adapters by key
        strategies: Strategy instances, at most one per ``StrategyName``
        http_timeout_sec: Deadline for each HTTP strategy
        browser_timeout_sec: Deadline for the browser strategy
        closeables: Shared resources (transport, browser pool) closed with
            the cascade

    """

    def __init__(
        self,
        adapters: Mapping[str, RetailerAdapter],
        strategies: Sequence[FetchStrategy],
        http_timeout_sec: float = 15,
        browser_timeout_sec: float = 30,
        closeables: Iterable[Closeable] = (),
    ):
        self.adapters = dict(adapters)
        self.strategies: dict[StrategyName, FetchStrategy] = {
            strategy.name: strategy for strategy in strategies
        }
        self.http_timeout_sec = http_timeout_sec
        self.browser_timeout_sec = browser_timeout_sec
        self._closeables = list(closeables)

    def timeout_for(self, tier: StrategyName) -> float:
        return self.browser_timeout_sec if tier.uses_browser else self.http_timeout_sec

    async def _run_strategy(
        self, strategy: FetchStrategy, adapter: RetailerAdapter, query: SearchQuery
    ) -> StrategyResult:
        timeout = self.timeout_for(strategy.name)
        try:
            return await asyncio.wait_for(strategy.run(adapter, query), timeout)
        except TimeoutError:
            error = f"{strategy.name.value} timed out after {timeout}s"
            logger.warning(f"{adapter.key}: {error}")
        except Exception as e:
            error = f"{strategy.name.value} failed: {e}"
            logger.error(f"{adapter.key}: unexpected {error}", exc_info=True)
        return StrategyResult(strategy=strategy.name, error=error)

    async def run(
        self,
        retailer_key: str,
        query: SearchQuery,
        tiers: Sequence[StrategyName] = ALL_TIERS,
    ) -> RetailerOutcome:
        """Run the cascade for one retailer.

        Returns
        -------
            The first successful strategy's products, or a failed outcome
            carrying the last error

        """
        adapter = self.adapters.get(retailer_key)
        if adapter is None:
            error = RetailerNotConfiguredError(retailer_key)
            logger.error(str(error))
            return RetailerOutcome.failed(retailer_key, str(error), FailureKind.DEFINITIVE)

        last_error: str | None = None
        for tier in tiers:
            strategy = self.strategies.get(tier)
            if strategy is None:
                continue

            logger.debug(f"{retailer_key}: trying {tier.value}")
            result = await self._run_strategy(strategy, adapter, query)
            if result.success:
                return RetailerOutcome(
                    retailer_key=retailer_key,
                    products=result.products,
                    succeeded=True,
                    strategy=tier,
                )
            if result.error:
                last_error = result.error

        logger.info(f"{retailer_key}: all strategies exhausted ({last_error})")
        return RetailerOutcome.failed(
            retailer_key, last_error or "No strategy returned products"
        )

    async def close(self) -> None:
        for strategy in self.strategies.values():
            await strategy.close()
        for resource in self._closeables:
            await resource.close()
