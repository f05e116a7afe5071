"""Retry wrapper around the per-retailer cascade."""

import dataclasses
import logging
from collections.abc import Sequence

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from .base.models import ALL_TIERS, RetailerOutcome, SearchQuery, StrategyName
from .cascade import StrategyCascade

logger = logging.getLogger(__name__)


def _should_retry(outcome: RetailerOutcome) -> bool:
    return not outcome.succeeded and not outcome.definitive


def _last_outcome(retry_state: RetryCallState) -> RetailerOutcome:
    return retry_state.outcome.result()  # type: ignore[union-attr]


class RetryingCascade:
    """Re-run the whole cascade for a retailer on transient failure.

    A retry starts again from the first tier, since which strategy succeeds
    often depends on the proxy and identity drawn for the attempt. Definitive
    failures (for example an unknown retailer) are returned immediately.

    Args:
    ----
        cascade: The cascade to wrap
        retries: Extra attempts after the first one
        delay_sec: Fixed delay between attempts

    """

    def __init__(self, cascade: StrategyCascade, retries: int = 2, delay_sec: float = 1.0):
        self.cascade = cascade
        self.retries = retries
        self.delay_sec = delay_sec

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = _last_outcome(retry_state)
        logger.info(
            f"{outcome.retailer_key}: attempt {retry_state.attempt_number} failed "
            f"({outcome.error}), retrying in {self.delay_sec}s"
        )

    async def run(
        self,
        retailer_key: str,
        query: SearchQuery,
        tiers: Sequence[StrategyName] = ALL_TIERS,
    ) -> RetailerOutcome:
        attempts = 0

        async def attempt() -> RetailerOutcome:
            nonlocal attempts
            attempts += 1
            return await self.cascade.run(retailer_key, query, tiers)

        retryer = AsyncRetrying(
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_fixed(self.delay_sec),
            retry=retry_if_result(_should_retry),
            before_sleep=self._log_retry,
            retry_error_callback=_last_outcome,
        )
        outcome = await retryer(attempt)
        return dataclasses.replace(outcome, attempts=attempts)

    async def close(self) -> None:
        await self.cascade.close()
