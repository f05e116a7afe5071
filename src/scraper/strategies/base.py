"""Strategy interface and the shared HTTP strategy loop."""

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import aiohttp

from src.utils.connection_pool import HttpResponse, HttpTransport

from ..base.browser_utils import BrowserDetection
from ..base.models import (
    Product,
    ProductSource,
    ProxyIdentity,
    RequestSpec,
    SearchQuery,
    StrategyName,
    StrategyResult,
)
from ..base.registry import RetailerAdapter
from ..base.utils import human_delay
from ..debug import DebugRecorder
from ..identity import ProxyRotator

logger = logging.getLogger(__name__)

# Errors a retailer parser may raise on a payload it does not understand
PARSE_ERRORS = (ValueError, KeyError, TypeError, AttributeError, IndexError)


class FetchStrategy(ABC):
    """One way of acquiring a retailer's search results.

    Subclasses implement the three stages and ``run`` ties them together.
    ``run`` never raises for retailer-side problems; it reports them in the
    returned ``StrategyResult``. Timeouts are enforced by the caller.
    """

    name: ClassVar[StrategyName]

    @abstractmethod
    def build_request(
        self, adapter: RetailerAdapter, query: SearchQuery
    ) -> RequestSpec | None:
        """Build the outbound request, or None when the retailer lacks this surface."""

    @abstractmethod
    async def execute(self, adapter: RetailerAdapter, request: RequestSpec) -> Any:
        """Perform the request and return the raw payload."""

    @abstractmethod
    def parse(self, adapter: RetailerAdapter, payload: Any) -> list[Product]:
        """Turn the raw payload into products."""

    @abstractmethod
    async def run(self, adapter: RetailerAdapter, query: SearchQuery) -> StrategyResult:
        """Run all stages for one retailer."""

    def skipped(self) -> StrategyResult:
        return StrategyResult(strategy=self.name)

    async def close(self) -> None:
        pass


class HttpStrategy(FetchStrategy):
    """Plain HTTP strategy with sequential proxy rotation.

    One attempt per proxy, up to ``max_attempts`` (at least one attempt even
    when no proxies are configured). Attempts stop at the first HTTP 200 whose
    body parses into a non-empty product list. A jittered delay separates
    attempts.
    """

    source: ClassVar[ProductSource]

    def __init__(
        self,
        transport: HttpTransport,
        rotator: ProxyRotator,
        max_attempts: int = 3,
        delay_range_sec: tuple[float, float] = (0.3, 1.2),
        timeout_sec: float | None = None,
        recorder: DebugRecorder | None = None,
    ):
        self.transport = transport
        self.rotator = rotator
        self.max_attempts = max_attempts
        self.delay_range_sec = delay_range_sec
        self.timeout_sec = timeout_sec
        self.recorder = recorder or DebugRecorder()

    def attempt_count(self) -> int:
        return max(1, min(self.max_attempts, len(self.rotator)))

    async def execute(
        self,
        adapter: RetailerAdapter,
        request: RequestSpec,
        identity: ProxyIdentity | None = None,
    ) -> HttpResponse:
        return await self.transport.request(request, identity, self.timeout_sec)

    def parse(self, adapter: RetailerAdapter, payload: HttpResponse) -> list[Product]:
        return adapter.parse_response(payload.text, payload.content_type, self.source)

    async def run(self, adapter: RetailerAdapter, query: SearchQuery) -> StrategyResult:
        request = self.build_request(adapter, query)
        if request is None:
            logger.debug(f"{adapter.key}: no {self.name.value} endpoint, skipping")
            return self.skipped()

        last_error: str | None = None
        attempts = self.attempt_count()
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                await human_delay(*self.delay_range_sec)

            identity = self.rotator.next_identity()
            via = identity.proxy_url or "direct"
            try:
                response = await self.execute(adapter, request, identity)
            except (aiohttp.ClientError, TimeoutError) as e:
                last_error = f"{type(e).__name__}: {e}"
                logger.warning(
                    f"{adapter.key}: {self.name.value} attempt {attempt}/{attempts} "
                    f"via {via} failed: {last_error}"
                )
                continue

            self.recorder.save_response(
                adapter.key, self.name.value, response.text, response.content_type
            )

            if not response.ok:
                if BrowserDetection.is_blocked(response.status, response.text):
                    last_error = f"Blocked by bot protection (HTTP {response.status})"
                else:
                    last_error = f"HTTP {response.status}"
                logger.warning(
                    f"{adapter.key}: {self.name.value} attempt {attempt}/{attempts} "
                    f"via {via}: {last_error}"
                )
                continue

            try:
                products = self.parse(adapter, response)
            except PARSE_ERRORS as e:
                last_error = f"Malformed payload: {e}"
                logger.warning(f"{adapter.key}: {self.name.value} parse failed: {e}")
                continue

            if products:
                logger.info(
                    f"{adapter.key}: {self.name.value} returned {len(products)} products"
                )
                return StrategyResult(strategy=self.name, products=tuple(products))

            last_error = "Empty product list"
            logger.debug(
                f"{adapter.key}: {self.name.value} attempt {attempt} parsed no products"
            )

        return StrategyResult(strategy=self.name, error=last_error)
