"""Full browser strategy: network sniffing with embedded-JSON and DOM fallbacks.

The page is loaded in a pooled context with a ``NetworkCapture`` attached
before navigation. Once the page settles, everything needed for parsing is
collected (rendered HTML, captured API bodies, raw DOM records) and the page
is closed. Parsing then happens off the page in this order, first non-empty
wins:

1. embedded JSON in the rendered HTML
2. captured XHR/fetch responses that look like API payloads
3. DOM scraping with the retailer's CSS selectors
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..base.browser_utils import BrowserDetection
from ..base.config import BrowserSettings
from ..base.errors import BrowserPoolError, StrategyError
from ..base.models import (
    Product,
    ProductSource,
    RequestSpec,
    SearchQuery,
    StrategyName,
    StrategyResult,
)
from ..base.registry import MAX_DOM_PRODUCTS, RetailerAdapter
from ..browser.capture import CapturedResponse, NetworkCapture
from ..browser.pool import BrowserPool
from ..browser.stealth import dismiss_consent, simulate_human
from ..debug import DebugRecorder
from .base import PARSE_ERRORS, FetchStrategy

logger = logging.getLogger(__name__)

DOM_WAIT_TIMEOUT_MS = 5000

# Runs in the page: one record per container, missing fields are null
DOM_EXTRACT_SCRIPT = """
(elements, args) => {
  const pick = (root, selector) => (selector ? root.querySelector(selector) : null);
  const text = (root, selector) => {
    const node = pick(root, selector);
    return node ? node.textContent.trim() : null;
  };
  const attr = (root, selector, names) => {
    const node = pick(root, selector);
    if (!node) return null;
    for (const name of names) {
      const value = node.getAttribute(name);
      if (value) return value;
    }
    return null;
  };
  return elements.slice(0, args.limit).map((el) => ({
    name: text(el, args.selectors.name),
    price: text(el, args.selectors.price),
    originalPrice: text(el, args.selectors.original_price),
    image: attr(el, args.selectors.image, ['src', 'data-src', 'srcset']),
    link: attr(el, args.selectors.link, ['href']),
    rating: text(el, args.selectors.rating) || attr(el, args.selectors.rating, ['aria-label']),
  }));
}
"""


@dataclass
class PageSnapshot:
    """Everything collected from one page load."""

    url: str
    html: str = ""
    captured: list[CapturedResponse] = field(default_factory=list)
    dom_records: list[dict[str, Any]] = field(default_factory=list)


class BrowserNetworkSniffStrategy(FetchStrategy):
    name = StrategyName.BROWSER_NETWORK_SNIFF

    def __init__(
        self,
        pool: BrowserPool,
        settings: BrowserSettings | None = None,
        recorder: DebugRecorder | None = None,
        rng: random.Random | None = None,
    ):
        self.pool = pool
        self.settings = settings or pool.settings
        self.recorder = recorder or DebugRecorder()
        self._rng = rng or random.Random()  # noqa: S311

    def build_request(
        self, adapter: RetailerAdapter, query: SearchQuery
    ) -> RequestSpec | None:
        return RequestSpec(url=adapter.config.search_url(query.text))

    async def _navigate(self, page: Page, url: str) -> None:
        """Load ``url`` with retries, then wait for the network to go idle.

        Raises
        ------
            StrategyError: If every navigation attempt fails or the page
                answers with an error status

        """
        retries = self.settings.navigation_retries
        for attempt in range(retries + 1):
            try:
                response = await page.goto(url, wait_until="domcontentloaded")
            except PlaywrightError as e:
                if attempt >= retries:
                    raise StrategyError(f"Navigation to {url} failed: {e}") from e
                delay = self._rng.uniform(*self.settings.navigation_retry_delay_sec)
                logger.debug(
                    f"Navigation attempt {attempt + 1} to {url} failed, "
                    f"retrying in {delay:.1f}s: {e}"
                )
                await asyncio.sleep(delay)
                continue

            if response is not None and response.status >= 400:
                raise StrategyError(
                    f"Search page answered HTTP {response.status}", status=response.status
                )
            break

        try:
            await page.wait_for_load_state(
                "networkidle", timeout=self.settings.network_idle_timeout_ms
            )
        except PlaywrightTimeoutError:
            logger.debug(f"Network did not go idle on {url}, continuing")

    async def _scrape_dom(self, page: Page, adapter: RetailerAdapter) -> list[dict[str, Any]]:
        selectors = adapter.config.dom_selectors
        if selectors is None:
            return []
        try:
            await page.wait_for_selector(selectors.container, timeout=DOM_WAIT_TIMEOUT_MS)
        except PlaywrightTimeoutError:
            logger.debug(f"{adapter.key}: no '{selectors.container}' containers rendered")
            return []
        return await page.eval_on_selector_all(
            selectors.container,
            DOM_EXTRACT_SCRIPT,
            {"selectors": selectors.model_dump(), "limit": MAX_DOM_PRODUCTS},
        )

    async def execute(self, adapter: RetailerAdapter, request: RequestSpec) -> PageSnapshot:
        """Load the search page in a pooled context and collect its data."""
        snapshot = PageSnapshot(url=request.url)
        async with self.pool.open_page() as page:
            async with NetworkCapture(page, adapter.is_api_response) as capture:
                await self._navigate(page, request.url)
                await dismiss_consent(page)
                if self.settings.simulate_human:
                    await simulate_human(page, self._rng)
                snapshot.html = await page.content()
                snapshot.captured = await capture.drain()

            if BrowserDetection.detect_captcha_challenge(snapshot.html):
                logger.warning(f"{adapter.key}: search page shows a CAPTCHA challenge")

            await self.recorder.save_page(page, adapter.key, snapshot.html)
            snapshot.dom_records = await self._scrape_dom(page, adapter)
        return snapshot

    def parse(self, adapter: RetailerAdapter, payload: PageSnapshot) -> list[Product]:
        products = adapter.parse_embedded(payload.html, ProductSource.EMBEDDED_JSON)
        if products:
            return products

        for captured in payload.captured:
            if captured.status != 200:
                continue
            try:
                products = adapter.parse_response(
                    captured.body, captured.content_type, ProductSource.NETWORK_CAPTURE
                )
            except PARSE_ERRORS as e:
                logger.debug(f"{adapter.key}: captured {captured.url} not parseable: {e}")
                continue
            if products:
                logger.debug(f"{adapter.key}: products recovered from {captured.url}")
                return products

        return adapter.parse_dom_records(payload.dom_records)

    async def run(self, adapter: RetailerAdapter, query: SearchQuery) -> StrategyResult:
        request = self.build_request(adapter, query)
        if request is None:
            return self.skipped()

        try:
            snapshot = await self.execute(adapter, request)
        except (StrategyError, BrowserPoolError, PlaywrightError) as e:
            logger.warning(f"{adapter.key}: browser strategy failed: {e}")
            return StrategyResult(strategy=self.name, error=str(e))

        try:
            products = self.parse(adapter, snapshot)
        except PARSE_ERRORS as e:
            logger.warning(f"{adapter.key}: browser payload parse failed: {e}")
            return StrategyResult(strategy=self.name, error=f"Malformed payload: {e}")

        if not products:
            return StrategyResult(strategy=self.name, error="No products found on page")

        sources = {product.source.value for product in products}
        logger.info(
            f"{adapter.key}: browser strategy returned {len(products)} products "
            f"({', '.join(sorted(sources))})"
        )
        return StrategyResult(strategy=self.name, products=tuple(products))
