"""LLM enrichment of search results.

The fetch engine hands its normalized products (and optionally raw page HTML)
to an ``Enricher`` and gets narrative text back. The engine works the same
with no enricher configured; every failure here surfaces as
``EnrichmentError`` and is logged by the caller.
"""

import asyncio
import json
import logging
import os
from collections.abc import Sequence
from typing import Protocol

import aiohttp
from aiohttp import ClientError

from src.scraper.base.config import EnrichmentSettings
from src.scraper.base.errors import ConfigurationError, EnrichmentError
from src.scraper.base.models import Product

logger = logging.getLogger(__name__)

RETRY_MULTIPLIER = 2
RETRY_MIN_WAIT_SEC = 1.0
RETRY_MAX_WAIT_SEC = 10.0
MAX_PRODUCTS_IN_PROMPT = 30
MAX_HTML_CHARS = 6000

SYSTEM_PROMPT = (
    "You are a shopping assistant for Indian online retail. Compare the listings "
    "you are given and write a short, factual summary: the price range, the best "
    "value offer, notable discounts against MRP and any retailer that stands out. "
    "Use rupees and do not invent products that are not in the list."
)


class Enricher(Protocol):
    async def enrich(
        self, products: Sequence[Product], raw_html: str | None = None
    ) -> str: ...

    async def close(self) -> None: ...


def build_prompt(products: Sequence[Product], raw_html: str | None = None) -> str:
    """Render products (and a trimmed HTML excerpt) into the user message."""
    listing = [
        {
            "name": product.name,
            "price": product.price,
            "originalPrice": product.original_price,
            "retailer": product.retailer_name,
            "rating": product.rating,
        }
        for product in products[:MAX_PRODUCTS_IN_PROMPT]
    ]
    prompt = "Product listings:\n" + json.dumps(listing, indent=2, ensure_ascii=False)
    if raw_html:
        prompt += "\n\nHTML Content:\n" + raw_html[:MAX_HTML_CHARS]
    return prompt


class OpenRouterEnricher:
    """Enricher backed by an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        settings: EnrichmentSettings | None = None,
        api_key: str | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        self.settings = settings or EnrichmentSettings()
        self.api_key = api_key or os.getenv(self.settings.api_key_env_var)
        if not self.api_key:
            raise ConfigurationError(
                f"Enrichment enabled but {self.settings.api_key_env_var} is not set"
            )
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def enrich(
        self, products: Sequence[Product], raw_html: str | None = None
    ) -> str:
        """Summarize ``products`` with the configured model.

        Raises
        ------
            EnrichmentError: If every attempt fails or the reply is empty

        """
        if not products:
            raise EnrichmentError("No products to enrich")
        return await self._call_with_retry(build_prompt(products, raw_html))

    async def _call_with_retry(self, prompt: str) -> str:
        """Call the API with manual retry logic and exponential back-off."""
        attempts = self.settings.retry_attempts
        last_exception: Exception | None = None

        for attempt in range(attempts):
            try:
                return await self._call(prompt)
            except (TimeoutError, ClientError, EnrichmentError) as e:
                last_exception = e
                logger.warning(f"Enrichment attempt {attempt + 1}/{attempts} failed: {e}")
                if attempt < attempts - 1:
                    wait_time = min(
                        RETRY_MAX_WAIT_SEC, RETRY_MIN_WAIT_SEC * (RETRY_MULTIPLIER**attempt)
                    )
                    await asyncio.sleep(wait_time)

        raise EnrichmentError(f"All enrichment attempts failed: {last_exception}")

    async def _call(self, prompt: str) -> str:
        """Make one chat completion request.

        Raises
        ------
            EnrichmentError: If the response is empty or malformed
            ClientError: If there's an HTTP error communicating with the API
            TimeoutError: If the API request times out

        """
        api_url = f"{self.settings.base_url.rstrip('/')}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.settings.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
        }

        session = await self._get_session()
        async with session.post(
            api_url,
            headers=headers,
            json=payload,
            timeout=aiohttp.ClientTimeout(total=self.settings.timeout_sec),
        ) as response:
            response.raise_for_status()
            data = await response.json()

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise EnrichmentError(f"Unexpected response shape: {e}") from e
        if not content or not str(content).strip():
            raise EnrichmentError("Empty content in response")
        return str(content).strip()

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None
