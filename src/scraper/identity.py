"""Egress proxy rotation and randomized browser identities."""

import logging
import random
import threading
from collections.abc import Callable, Sequence
from urllib.parse import urlparse

from fake_useragent import UserAgent

from .base.errors import ConfigurationError
from .base.models import ProxyIdentity

logger = logging.getLogger(__name__)

BASE_VIEWPORTS = [(1920, 1080), (1536, 864), (1440, 900), (1366, 768)]
VIEWPORT_JITTER_PX = 40
LOCALES = ["en-IN", "en-US", "en-GB"]
DEFAULT_TIMEZONE = "Asia/Kolkata"

PROXY_SCHEMES = {
    "http": "http",
    "https": "http",
    "socks5": "socks5",
    "socks5h": "socks5",
}


def parse_proxy(proxy: str) -> tuple[str, str]:
    """Return ``(url, proxy_type)`` for a configured proxy string.

    Bare ``host:port`` entries are treated as HTTP proxies.

    Raises
    ------
        ConfigurationError: For unsupported schemes or missing hosts

    """
    url = proxy.strip()
    if "://" not in url:
        url = f"http://{url}"
    parsed = urlparse(url)
    proxy_type = PROXY_SCHEMES.get(parsed.scheme.lower())
    if proxy_type is None:
        raise ConfigurationError(f"Unsupported proxy scheme: {parsed.scheme}")
    if not parsed.hostname:
        raise ConfigurationError(f"Proxy has no host: {proxy}")
    return url, proxy_type


class IdentityFactory:
    """Builds a fresh randomized identity for every outbound attempt."""

    def __init__(
        self,
        user_agent_source: Callable[[], str] | None = None,
        timezone_id: str = DEFAULT_TIMEZONE,
        rng: random.Random | None = None,
    ):
        self._user_agent_source = user_agent_source
        self._fake_ua: UserAgent | None = None
        self.timezone_id = timezone_id
        self._rng = rng or random.Random()  # noqa: S311

    def _user_agent(self) -> str:
        if self._user_agent_source is not None:
            return self._user_agent_source()
        if self._fake_ua is None:
            self._fake_ua = UserAgent()
        return self._fake_ua.random

    def create(self, proxy: str | None = None) -> ProxyIdentity:
        width, height = self._rng.choice(BASE_VIEWPORTS)
        viewport = (
            width - self._rng.randint(0, VIEWPORT_JITTER_PX),
            height - self._rng.randint(0, VIEWPORT_JITTER_PX),
        )
        proxy_url, proxy_type = parse_proxy(proxy) if proxy else (None, None)
        return ProxyIdentity(
            user_agent=self._user_agent(),
            viewport=viewport,
            locale=self._rng.choice(LOCALES),
            timezone_id=self.timezone_id,
            proxy_url=proxy_url,
            proxy_type=proxy_type,
        )


class ProxyRotator:
    """Round-robin over the configured proxies.

    ``next()`` returns None (direct connection) when no proxies are
    configured. The index is shared by every caller and guarded by a lock.
    """

    def __init__(
        self,
        proxies: Sequence[str] = (),
        identity_factory: IdentityFactory | None = None,
    ):
        for proxy in proxies:
            parse_proxy(proxy)
        self._proxies = list(proxies)
        self._index = 0
        self._lock = threading.Lock()
        self.identity_factory = identity_factory or IdentityFactory()

    def __len__(self) -> int:
        return len(self._proxies)

    def next(self) -> str | None:
        with self._lock:
            if not self._proxies:
                return None
            proxy = self._proxies[self._index % len(self._proxies)]
            self._index = (self._index + 1) % len(self._proxies)
            return proxy

    def next_identity(self) -> ProxyIdentity:
        """Next proxy plus a freshly randomized identity."""
        return self.identity_factory.create(self.next())
