"""Tests for stealth scripts, request blocking, consent handling and capture."""

import asyncio
import json
import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.scraper.base.browser_utils import BrowserDetection, get_launch_options
from src.scraper.base.models import ProxyIdentity
from src.scraper.browser.capture import NetworkCapture
from src.scraper.browser.stealth import (
    WEBGL_PROFILES,
    build_context_options,
    build_stealth_script,
    dismiss_consent,
    make_resource_blocker,
)


def make_response(url: str, resource_type: str = "xhr", body: str = "{}", status: int = 200):
    response = MagicMock()
    response.url = url
    response.status = status
    response.request.resource_type = resource_type
    response.headers = {"content-type": "application/json"}
    response.text = AsyncMock(return_value=body)
    return response


class TestStealth:
    """Test fingerprint randomization and context options."""

    @pytest.mark.unit
    def test_stealth_script_contents(self):
        script = build_stealth_script("en-IN", random.Random(3))

        assert "navigator, 'webdriver'" in script
        assert '"languages": ["en-IN", "en", "hi"]' in script
        assert any(renderer in script for _, renderer in WEBGL_PROFILES)

    @pytest.mark.unit
    def test_stealth_script_is_seeded(self):
        assert build_stealth_script("en-US", random.Random(9)) == build_stealth_script(
            "en-US", random.Random(9)
        )

    @pytest.mark.unit
    def test_context_options_with_proxy(self):
        identity = ProxyIdentity(
            user_agent="ua",
            viewport=(1400, 880),
            locale="en-GB",
            timezone_id="Asia/Kolkata",
            proxy_url="socks5://proxy.test:1080",
            proxy_type="socks5",
        )
        options = build_context_options(identity)

        assert options["viewport"] == {"width": 1400, "height": 880}
        assert options["proxy"] == {"server": "socks5://proxy.test:1080"}
        assert options["extra_http_headers"]["Accept-Language"].startswith("en-GB")

    @pytest.mark.unit
    def test_launch_options_merge_extra_args(self):
        options = get_launch_options(headless=False, extra_args=["--mute-audio", "--no-first-run"])

        assert options["headless"] is False
        assert options["args"].count("--no-first-run") == 1
        assert "--mute-audio" in options["args"]


class TestPageHelpers:
    """Test route blocking and consent dismissal."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("resource_type", "url", "blocked"),
        [
            ("image", "https://cdn.test/a.jpg", True),
            ("script", "https://www.google-analytics.com/analytics.js", True),
            ("xhr", "https://www.shop.test/api/search", False),
        ],
    )
    async def test_resource_blocker(self, resource_type, url, blocked):
        handler = make_resource_blocker(["image", "font"], ["analytics"])
        route = MagicMock()
        route.request.resource_type = resource_type
        route.request.url = url
        route.abort = AsyncMock()
        route.continue_ = AsyncMock()

        await handler(route)

        assert route.abort.await_count == (1 if blocked else 0)
        assert route.continue_.await_count == (0 if blocked else 1)

    @pytest.mark.asyncio
    async def test_dismiss_consent_clicks_first_match(self):
        element = MagicMock()
        element.click = AsyncMock()
        page = MagicMock()
        page.wait_for_timeout = AsyncMock()
        page.query_selector = AsyncMock(
            side_effect=lambda selector: element if selector == 'button[id*="cookie"]' else None
        )

        matched = await dismiss_consent(page)

        assert matched == 'button[id*="cookie"]'
        element.click.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_dismiss_consent_no_dialog(self):
        page = MagicMock()
        page.query_selector = AsyncMock(return_value=None)

        assert await dismiss_consent(page) is None


class TestBotDetection:
    """Test bot-wall heuristics."""

    @pytest.mark.unit
    def test_blocking_statuses(self):
        assert BrowserDetection.is_blocked(429)
        assert BrowserDetection.is_blocked(503)
        assert not BrowserDetection.is_blocked(404)

    @pytest.mark.unit
    def test_captcha_page(self):
        html = "<title>Robot Check</title><p>Enter the characters you see below. CAPTCHA</p>"
        assert BrowserDetection.detect_captcha_challenge(html)
        assert BrowserDetection.is_blocked(200, html)


class TestNetworkCapture:
    """Test the response subscription handle."""

    @pytest.mark.asyncio
    async def test_captures_filtered_api_responses(self):
        page = MagicMock()
        capture = NetworkCapture(page, lambda url, _ct: "/api/" in url)

        async with capture:
            handler = page.on.call_args.args[1]
            handler(make_response("https://shop.test/api/search", body=json.dumps({"a": 1})))
            handler(make_response("https://shop.test/api/search", resource_type="image"))
            handler(make_response("https://shop.test/beacon"))
            captured = await capture.drain()

        assert len(captured) == 1
        assert captured[0].body == '{"a": 1}'
        assert captured[0].content_type == "application/json"
        page.remove_listener.assert_called_once_with("response", handler)

    @pytest.mark.asyncio
    async def test_drain_waits_for_pending_reads(self):
        page = MagicMock()
        capture = NetworkCapture(page, lambda _url, _ct: True)
        response = make_response("https://shop.test/api/slow")

        async def slow_text():
            await asyncio.sleep(0.01)
            return "[]"

        response.text = AsyncMock(side_effect=slow_text)
        capture.start()
        page.on.call_args.args[1](response)

        captured = await capture.drain()

        assert [c.body for c in captured] == ["[]"]
