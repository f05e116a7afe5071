"""Tests for the browser context pool."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from playwright.async_api import Error as PlaywrightError

from src.scraper.base.config import BrowserSettings
from src.scraper.base.errors import BrowserPoolError
from src.scraper.browser.pool import BrowserPool, EngineState

from conftest import TEST_USER_AGENT


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_context():
    context = MagicMock()
    context.add_init_script = AsyncMock()
    context.close = AsyncMock()
    page = MagicMock()
    page.route = AsyncMock()
    page.close = AsyncMock()
    context.new_page = AsyncMock(return_value=page)
    return context


def make_browser():
    browser = MagicMock()
    browser.is_connected.return_value = True
    browser.new_context = AsyncMock(side_effect=lambda **_: make_context())
    browser.close = AsyncMock()
    return browser


@pytest.fixture
def browser():
    return make_browser()


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def pool(browser, rotator, clock):
    launcher = AsyncMock(return_value=browser)
    pool = BrowserPool(
        BrowserSettings(max_contexts_per_engine=2, context_max_age_sec=300),
        rotator=rotator,
        launcher=launcher,
        clock=clock,
    )
    yield pool
    await pool.close()


class TestBrowserPool:
    """Test lazy launch, context reuse and cleanup."""

    @pytest.mark.asyncio
    async def test_lazy_launch(self, pool, browser):
        assert pool.state() is EngineState.UNINITIALIZED

        handle = await pool.acquire()

        assert pool.state() is EngineState.READY
        assert pool.launch_count == 1
        assert handle.in_use
        kwargs = browser.new_context.call_args.kwargs
        assert kwargs["user_agent"] == TEST_USER_AGENT
        assert kwargs["timezone_id"] == "Asia/Kolkata"
        handle.context.add_init_script.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cap_plus_one_reuses_context(self, pool, browser):
        """Test that a request beyond the cap shares a context instead of blocking."""
        first = await pool.acquire()
        second = await pool.acquire()
        third = await pool.acquire()

        assert len(pool.contexts()) == 2
        assert browser.new_context.await_count == 2
        assert third is first
        assert first.leases == 2
        assert second.leases == 1
        assert pool.launch_count == 1

    @pytest.mark.asyncio
    async def test_idle_context_is_reused(self, pool, browser):
        handle = await pool.acquire()
        await pool.release(handle)

        again = await pool.acquire()

        assert again is handle
        assert again.total_leases == 2
        assert browser.new_context.await_count == 1

    @pytest.mark.asyncio
    async def test_lease_discards_context_on_error(self, pool):
        with pytest.raises(RuntimeError):
            async with pool.lease() as handle:
                raise RuntimeError("page crashed")

        handle.context.close.assert_awaited_once()
        assert pool.contexts() == []

    @pytest.mark.asyncio
    async def test_open_page_blocks_resources_and_closes_page(self, pool):
        async with pool.open_page() as page:
            page.route.assert_awaited_once()
            assert page.route.call_args.args[0] == "**/*"

        page.close.assert_awaited_once()
        assert not pool.contexts()[0].in_use

    @pytest.mark.asyncio
    async def test_sweep_keeps_one_warm_context(self, pool, clock):
        first = await pool.acquire()
        second = await pool.acquire()
        await pool.release(first)
        await pool.release(second)

        clock.now = 301
        closed = await pool.sweep()

        assert closed == 1
        assert len(pool.contexts()) == 1

    @pytest.mark.asyncio
    async def test_sweep_skips_contexts_in_use(self, pool, clock):
        await pool.acquire()
        await pool.acquire()

        clock.now = 1000
        assert await pool.sweep() == 0
        assert len(pool.contexts()) == 2

    @pytest.mark.asyncio
    async def test_relaunch_when_browser_disconnected(self, pool, browser):
        handle = await pool.acquire()
        await pool.release(handle)
        browser.is_connected.return_value = False

        await pool.acquire()

        assert pool.launch_count == 2

    @pytest.mark.asyncio
    async def test_close(self, pool, browser):
        handle = await pool.acquire()
        await pool.close()

        assert pool.state() is EngineState.CLOSED
        handle.context.close.assert_awaited_once()
        browser.close.assert_awaited_once()
        with pytest.raises(BrowserPoolError, match="closed"):
            await pool.acquire()

    @pytest.mark.asyncio
    async def test_launch_failure(self, rotator):
        launcher = AsyncMock(side_effect=PlaywrightError("Executable doesn't exist"))
        pool = BrowserPool(BrowserSettings(), rotator=rotator, launcher=launcher)
        try:
            with pytest.raises(BrowserPoolError, match="Could not launch chromium"):
                await pool.acquire()
            assert pool.state() is EngineState.UNINITIALIZED
        finally:
            await pool.close()

    @pytest.mark.asyncio
    async def test_broken_context_does_not_hold_a_slot(self, pool, browser):
        """Test a discarded context still leased elsewhere is replaced."""
        first = await pool.acquire()
        second = await pool.acquire()
        shared = await pool.acquire()
        assert shared is first

        await pool.release(first, discard=True)
        assert first.broken and first.in_use

        replacement = await pool.acquire()

        assert replacement is not first
        assert replacement is not second
        assert browser.new_context.await_count == 3
        assert len([h for h in pool.contexts() if not h.broken]) == 2

    @pytest.mark.asyncio
    async def test_periodic_cleanup_survives_unexpected_errors(self, rotator):
        calls = []

        async def sweep():
            calls.append(len(calls))
            if len(calls) == 1:
                raise RuntimeError("context list changed")
            raise asyncio.CancelledError

        pool = BrowserPool(BrowserSettings(cleanup_interval_sec=0.01), rotator=rotator)
        pool.sweep = sweep
        try:
            with pytest.raises(asyncio.CancelledError):
                await pool._periodic_cleanup()
        finally:
            await pool.close()

        assert len(calls) == 2
