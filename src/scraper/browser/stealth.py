"""Stealth fingerprinting, resource blocking and page interaction helpers.

The init script is injected into every context before any page script runs.
Its values are randomized per context so contexts do not share a fingerprint.
"""

import json
import logging
import random
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Route

from ..base.models import ProxyIdentity

logger = logging.getLogger(__name__)

WEBGL_PROFILES = [
    ("NVIDIA Corporation", "NVIDIA GeForce GTX 1050 Ti/PCIe/SSE2"),
    ("NVIDIA Corporation", "NVIDIA GeForce GTX 1650/PCIe/SSE2"),
    ("Intel Inc.", "Intel Iris OpenGL Engine"),
    ("Google Inc. (Intel)", "ANGLE (Intel, Intel(R) UHD Graphics 620 Direct3D11 vs_5_0 ps_5_0)"),
]

PLUGINS = [
    {"name": "Chrome PDF Plugin", "filename": "internal-pdf-viewer"},
    {"name": "Chrome PDF Viewer", "filename": "mhjfbmdgcfjbbpaeojofohoefgiehjai"},
    {"name": "Native Client", "filename": "internal-nacl-plugin"},
]

# Checked in order, first element found is clicked and the rest are skipped
CONSENT_SELECTORS = [
    'button[id*="accept"]',
    'button[id*="cookie"]',
    'button[id*="consent"]',
    'button[id*="agree"]',
    'button[title*="Accept"]',
    'button[title*="accept"]',
    'button[data-testid*="accept"]',
    'button[data-testid*="cookie"]',
    'a[id*="accept"]',
    'a[id*="cookie"]',
    "a.cc-btn.cc-accept-all",
    "a.cc-btn.cc-dismiss",
    ".cookie-consent__btn",
    ".js-accept-all-cookies",
    ".js-accept-cookies",
    ".cc-accept",
    "#accept-cookies",
    "#acceptAllCookies",
    "#cookieAcceptButton",
    'text="Accept"',
    'text="Accept All"',
    'text="I Accept"',
    'text="Accept Cookies"',
    'text="Agree"',
    'text="Allow all"',
    'text="OK"',
]

_STEALTH_TEMPLATE = """
(() => {
  const config = %(config)s;
  Object.defineProperty(navigator, 'webdriver', { get: () => false, configurable: true });
  Object.defineProperty(navigator, 'plugins', { get: () => config.plugins });
  Object.defineProperty(navigator, 'languages', { get: () => config.languages });
  Object.defineProperty(navigator, 'hardwareConcurrency', { get: () => config.hardwareConcurrency });
  Object.defineProperty(navigator, 'deviceMemory', { get: () => config.deviceMemory });
  if (!window.chrome) {
    window.chrome = { runtime: {}, loadTimes: () => ({}), csi: () => ({}) };
  }
  if (navigator.permissions && navigator.permissions.query) {
    const originalQuery = navigator.permissions.query.bind(navigator.permissions);
    navigator.permissions.query = (parameters) =>
      parameters && parameters.name === 'notifications'
        ? Promise.resolve({ state: Notification.permission })
        : originalQuery(parameters);
  }
  const patchWebGL = (proto) => {
    if (!proto) return;
    const getParameter = proto.getParameter;
    proto.getParameter = new Proxy(getParameter, {
      apply(target, thisArg, args) {
        if (args[0] === 37445) return config.webglVendor;
        if (args[0] === 37446) return config.webglRenderer;
        return Reflect.apply(target, thisArg, args);
      },
    });
  };
  patchWebGL(window.WebGLRenderingContext && WebGLRenderingContext.prototype);
  patchWebGL(window.WebGL2RenderingContext && WebGL2RenderingContext.prototype);
})();
"""


def build_stealth_script(
    locale: str = "en-US", rng: random.Random | None = None
) -> str:
    """Render the fingerprint-spoofing init script with randomized values."""
    rng = rng or random.Random()  # noqa: S311
    vendor, renderer = rng.choice(WEBGL_PROFILES)
    language = locale.split("-")[0]
    languages = list(dict.fromkeys([locale, language, "en", "hi"]))
    config = {
        "plugins": PLUGINS,
        "languages": languages,
        "hardwareConcurrency": 4 + rng.randint(0, 4),
        "deviceMemory": rng.choice([4, 8, 8, 16]),
        "webglVendor": vendor,
        "webglRenderer": renderer,
    }
    return _STEALTH_TEMPLATE % {"config": json.dumps(config)}


def build_context_options(identity: ProxyIdentity) -> dict[str, Any]:
    """Keyword arguments for ``Browser.new_context`` from an identity."""
    width, height = identity.viewport
    options: dict[str, Any] = {
        "user_agent": identity.user_agent,
        "viewport": {"width": width, "height": height},
        "locale": identity.locale,
        "timezone_id": identity.timezone_id,
        "extra_http_headers": {"Accept-Language": identity.accept_language},
        "java_script_enabled": True,
    }
    if identity.proxy_url:
        options["proxy"] = {"server": identity.proxy_url}
    return options


def make_resource_blocker(
    resource_types: Iterable[str], url_keywords: Iterable[str]
) -> Callable[[Route], Awaitable[None]]:
    """Build a route handler that aborts heavy and tracking requests."""
    blocked_types = frozenset(resource_types)
    keywords = tuple(keyword.lower() for keyword in url_keywords)

    async def handle(route: Route) -> None:
        request = route.request
        url = request.url.lower()
        if request.resource_type in blocked_types or any(k in url for k in keywords):
            await route.abort()
        else:
            await route.continue_()

    return handle


async def dismiss_consent(
    page: Page, selectors: Iterable[str] = CONSENT_SELECTORS
) -> str | None:
    """Click the first consent/cookie control found.

    Returns
    -------
        The selector that matched, or None when no dialog was found

    """
    for selector in selectors:
        try:
            element = await page.query_selector(selector)
        except PlaywrightError as e:
            logger.debug(f"Consent selector '{selector}' failed: {e}")
            continue
        if element is None:
            continue
        try:
            await element.click(timeout=3000)
            await page.wait_for_timeout(500)
        except PlaywrightError as e:
            logger.debug(f"Consent click on '{selector}' failed: {e}")
        logger.debug(f"Dismissed consent dialog via {selector}")
        return selector
    return None


async def simulate_human(page: Page, rng: random.Random | None = None) -> None:
    """Move the mouse around and scroll a little like a person reading."""
    rng = rng or random.Random()  # noqa: S311
    viewport = page.viewport_size or {"width": 1366, "height": 768}
    try:
        for _ in range(3 + rng.randint(0, 4)):
            await page.mouse.move(
                rng.randint(0, viewport["width"] - 1),
                rng.randint(0, viewport["height"] - 1),
                steps=10 + rng.randint(0, 14),
            )
            await page.wait_for_timeout(100 + rng.random() * 400)
        await page.mouse.wheel(0, 400 + rng.randint(0, 800))
        await page.wait_for_timeout(300 + rng.random() * 700)
    except PlaywrightError as e:
        logger.debug(f"Human interaction simulation interrupted: {e}")
