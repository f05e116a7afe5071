"""Bounded pool of browser processes and reusable contexts.

Each browser engine moves through UNINITIALIZED -> LAUNCHING -> READY and is
held until ``close()``. Contexts are created lazily up to a per-engine cap.
Once the cap is reached, new leases reuse existing contexts round-robin
instead of blocking, so a caller may share a context with earlier callers and
must only rely on its own page.
"""

import asyncio
import logging
import random
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field
from enum import Enum

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from ..base.browser_utils import get_launch_options
from ..base.config import BrowserSettings
from ..base.errors import BrowserPoolError
from ..base.models import ProxyIdentity
from ..identity import IdentityFactory, ProxyRotator
from .stealth import build_context_options, build_stealth_script, make_resource_blocker

logger = logging.getLogger(__name__)

Launcher = Callable[[str], Awaitable[Browser]]


class EngineState(Enum):
    UNINITIALIZED = "uninitialized"
    LAUNCHING = "launching"
    READY = "ready"
    CLOSED = "closed"


@dataclass(eq=False)
class BrowserContextHandle:
    """A pooled browser context plus its lease bookkeeping."""

    engine: str
    context: BrowserContext
    created_at: float
    identity: ProxyIdentity | None = None
    leases: int = 0
    total_leases: int = 0
    broken: bool = False
    last_released_at: float = field(default=0.0)

    @property
    def in_use(self) -> bool:
        return self.leases > 0


class BrowserPool:
    """Owns browser processes and hands out contexts and pages."""

    def __init__(
        self,
        settings: BrowserSettings | None = None,
        rotator: ProxyRotator | None = None,
        launcher: Launcher | None = None,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ):
        self.settings = settings or BrowserSettings()
        self.rotator = rotator
        self._identity_factory = IdentityFactory(timezone_id=self.settings.timezone_id)
        self._launcher = launcher
        self._clock = clock
        self._rng = rng or random.Random()  # noqa: S311

        self._playwright: Playwright | None = None
        self._browsers: dict[str, Browser] = {}
        self._states: dict[str, EngineState] = {}
        self._contexts: dict[str, list[BrowserContextHandle]] = {}
        self._round_robin: dict[str, int] = {}
        self._lock = asyncio.Lock()
        self._cleanup_task: asyncio.Task | None = None
        self.launch_count = 0

    @property
    def max_contexts(self) -> int:
        return self.settings.max_contexts_per_engine

    def state(self, engine: str | None = None) -> EngineState:
        return self._states.get(engine or self.settings.engine, EngineState.UNINITIALIZED)

    def contexts(self, engine: str | None = None) -> list[BrowserContextHandle]:
        return list(self._contexts.get(engine or self.settings.engine, []))

    async def _launch(self, engine: str) -> Browser:
        if self._launcher is not None:
            return await self._launcher(engine)
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        browser_type = getattr(self._playwright, engine)
        return await browser_type.launch(
            **get_launch_options(self.settings.headless, self.settings.launch_args)
        )

    async def _get_browser(self, engine: str) -> Browser:
        """Return the engine's browser, launching it on first use. Lock held."""
        state = self.state(engine)
        if state is EngineState.CLOSED:
            raise BrowserPoolError("Browser pool is closed")
        browser = self._browsers.get(engine)
        if state is EngineState.READY and browser is not None and browser.is_connected():
            return browser

        self._states[engine] = EngineState.LAUNCHING
        logger.info(f"Launching {engine} browser")
        try:
            browser = await self._launch(engine)
        except (PlaywrightError, OSError) as e:
            self._states[engine] = EngineState.UNINITIALIZED
            raise BrowserPoolError(f"Could not launch {engine}: {e}") from e
        self.launch_count += 1
        self._browsers[engine] = browser
        self._contexts[engine] = []
        self._states[engine] = EngineState.READY
        self.start_cleanup()
        return browser

    async def _new_context(self, browser: Browser, engine: str) -> BrowserContextHandle:
        identity = (
            self.rotator.next_identity()
            if self.rotator is not None
            else self._identity_factory.create()
        )
        try:
            context = await browser.new_context(**build_context_options(identity))
            await context.add_init_script(
                build_stealth_script(identity.locale, self._rng)
            )
        except PlaywrightError as e:
            raise BrowserPoolError(f"Could not create {engine} context: {e}") from e
        logger.debug(f"Created {engine} context with viewport {identity.viewport}")
        return BrowserContextHandle(
            engine=engine, context=context, created_at=self._clock(), identity=identity
        )

    async def acquire(self, engine: str | None = None) -> BrowserContextHandle:
        """Lease a context: idle first, then a new one below the cap, then shared."""
        engine = engine or self.settings.engine
        async with self._lock:
            browser = await self._get_browser(engine)
            handles = self._contexts[engine]
            live = [h for h in handles if not h.broken]

            handle = next((h for h in live if not h.in_use), None)
            if handle is None and len(live) < self.max_contexts:
                handle = await self._new_context(browser, engine)
                handles.append(handle)
            elif handle is None:
                if not live:
                    raise BrowserPoolError(f"No usable {engine} contexts available")
                index = self._round_robin.get(engine, 0)
                handle = live[index % len(live)]
                self._round_robin[engine] = index + 1
                logger.debug(f"{engine} pool at capacity, sharing an existing context")

            handle.leases += 1
            handle.total_leases += 1
            return handle

    async def release(self, handle: BrowserContextHandle, discard: bool = False) -> None:
        """Return a lease. Discarded contexts close once nobody holds them."""
        async with self._lock:
            handle.leases = max(0, handle.leases - 1)
            handle.last_released_at = self._clock()
            if discard:
                handle.broken = True
            if handle.broken and not handle.in_use:
                await self._remove(handle)

    async def _remove(self, handle: BrowserContextHandle) -> None:
        handles = self._contexts.get(handle.engine, [])
        if handle in handles:
            handles.remove(handle)
        with suppress(PlaywrightError):
            await handle.context.close()
        logger.debug(f"Closed {handle.engine} context")

    @asynccontextmanager
    async def lease(self, engine: str | None = None) -> AsyncIterator[BrowserContextHandle]:
        handle = await self.acquire(engine)
        discard = False
        try:
            yield handle
        except BaseException:
            # Timeouts and cancellations leave the context in an unknown state
            discard = True
            raise
        finally:
            await self.release(handle, discard=discard)

    async def new_page(
        self, handle: BrowserContextHandle, block_resources: bool | None = None
    ) -> Page:
        page = await handle.context.new_page()
        page.set_default_navigation_timeout(self.settings.navigation_timeout_ms)
        page.set_default_timeout(self.settings.navigation_timeout_ms)
        if self.settings.block_resources if block_resources is None else block_resources:
            await page.route(
                "**/*",
                make_resource_blocker(
                    self.settings.blocked_resource_types,
                    self.settings.blocked_url_keywords,
                ),
            )
        return page

    @asynccontextmanager
    async def open_page(
        self, engine: str | None = None, block_resources: bool | None = None
    ) -> AsyncIterator[Page]:
        """Lease a context and open a page on it; both are released on exit."""
        async with self.lease(engine) as handle:
            page = await self.new_page(handle, block_resources)
            try:
                yield page
            finally:
                with suppress(PlaywrightError):
                    await page.close()

    async def sweep(self) -> int:
        """Close idle contexts past their max age, keeping one warm per engine."""
        now = self._clock()
        closed = 0
        async with self._lock:
            for handles in self._contexts.values():
                stale = [
                    h
                    for h in handles
                    if not h.in_use
                    and (h.broken or now - h.created_at > self.settings.context_max_age_sec)
                ]
                for handle in stale:
                    if not handle.broken and len(handles) <= 1:
                        break
                    await self._remove(handle)
                    closed += 1
        if closed:
            logger.info(f"Browser pool sweep closed {closed} idle contexts")
        return closed

    async def _periodic_cleanup(self) -> None:
        while True:
            await asyncio.sleep(self.settings.cleanup_interval_sec)
            try:
                await self.sweep()
            except Exception as e:
                logger.warning(f"Error during browser pool cleanup: {e}", exc_info=True)

    def start_cleanup(self) -> None:
        """Schedule the periodic sweep on the running loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._periodic_cleanup())

    async def close(self) -> None:
        """Close every context and browser and stop Playwright."""
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None

        async with self._lock:
            for handles in self._contexts.values():
                for handle in list(handles):
                    await self._remove(handle)
            for engine, browser in self._browsers.items():
                with suppress(PlaywrightError):
                    await browser.close()
                self._states[engine] = EngineState.CLOSED
            self._browsers.clear()
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
        logger.debug("Browser pool closed")
