"""Network response capture for one page navigation.

``NetworkCapture`` is an explicit subscription handle: it attaches a
``response`` listener to a page, buffers the bodies of API-looking responses
while the page loads, and is drained once navigation has settled.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Response

logger = logging.getLogger(__name__)

CAPTURED_RESOURCE_TYPES = {"xhr", "fetch"}
MAX_BODY_CHARS = 5_000_000


@dataclass(frozen=True)
class CapturedResponse:
    url: str
    status: int
    content_type: str
    body: str


class NetworkCapture:
    """Buffer XHR/fetch responses accepted by ``url_filter``.

    Usage:
        async with NetworkCapture(page, adapter.is_api_response) as capture:
            await page.goto(url)
            responses = await capture.drain()
    """

    def __init__(self, page: Page, url_filter: Callable[[str, str], bool]):
        self.page = page
        self.url_filter = url_filter
        self._buffer: list[CapturedResponse] = []
        self._pending: set[asyncio.Task] = set()
        self._active = False

    def start(self) -> None:
        if not self._active:
            self.page.on("response", self._on_response)
            self._active = True

    def stop(self) -> None:
        if self._active:
            self.page.remove_listener("response", self._on_response)
            self._active = False

    def _on_response(self, response: Response) -> None:
        if response.request.resource_type not in CAPTURED_RESOURCE_TYPES:
            return
        content_type = response.headers.get("content-type", "")
        if not self.url_filter(response.url, content_type):
            return
        task = asyncio.ensure_future(self._read(response, content_type))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _read(self, response: Response, content_type: str) -> None:
        try:
            body = await response.text()
        except PlaywrightError as e:
            logger.debug(f"Could not read captured body for {response.url}: {e}")
            return
        if len(body) > MAX_BODY_CHARS:
            logger.debug(f"Skipping oversized captured body from {response.url}")
            return
        self._buffer.append(
            CapturedResponse(
                url=response.url,
                status=response.status,
                content_type=content_type,
                body=body,
            )
        )

    async def drain(self) -> list[CapturedResponse]:
        """Stop listening, wait for in-flight body reads, return the buffer."""
        self.stop()
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        captured, self._buffer = self._buffer, []
        logger.debug(f"Drained {len(captured)} captured API responses")
        return captured

    async def __aenter__(self) -> "NetworkCapture":
        self.start()
        return self

    async def __aexit__(self, _exc_type, _exc_val, _exc_tb) -> None:
        self.stop()
        for task in list(self._pending):
            task.cancel()
