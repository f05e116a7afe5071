"""Pooled HTTP transport used by the HTTP strategies."""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

import aiohttp
from aiohttp_socks import ProxyConnector

from src.scraper.base.models import ProxyIdentity, RequestSpec

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


@dataclass(frozen=True)
class HttpResponse:
    """A fully read HTTP response."""

    status: int
    text: str
    content_type: str = ""
    url: str = ""

    @property
    def ok(self) -> bool:
        return self.status == 200

    def json(self) -> Any:
        return json.loads(self.text)


class HttpTransport:
    """Connection-pooled aiohttp transport with per-attempt proxy selection.

    HTTP(S) proxies are passed per request on the shared pooled session.
    SOCKS5 proxies need their own connector, so each SOCKS attempt runs on a
    short-lived session.
    """

    def __init__(
        self,
        pool_limit: int = 100,
        host_limit: int = 20,
        total_timeout_sec: float = 15,
        connect_timeout_sec: float = 10,
        dns_cache_sec: int = 300,
        idle_keepalive_sec: int = 60,
    ):
        self._connector_kwargs = {
            "limit": pool_limit,
            "limit_per_host": host_limit,
            "ttl_dns_cache": dns_cache_sec,
            "keepalive_timeout": idle_keepalive_sec,
        }
        self._default_total = total_timeout_sec
        self._connect_timeout = connect_timeout_sec
        self._pooled: aiohttp.ClientSession | None = None
        self._lock = asyncio.Lock()

    def _timeout(self, total: float | None = None) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(
            total=total or self._default_total, connect=self._connect_timeout
        )

    async def _pooled_session(self) -> aiohttp.ClientSession:
        async with self._lock:
            if self._pooled is None or self._pooled.closed:
                self._pooled = aiohttp.ClientSession(
                    connector=aiohttp.TCPConnector(**self._connector_kwargs),
                    timeout=self._timeout(),
                )
                logger.debug(
                    f"Opened pooled HTTP session "
                    f"(limit={self._connector_kwargs['limit']}, "
                    f"per_host={self._connector_kwargs['limit_per_host']})"
                )
            return self._pooled

    async def request(
        self,
        spec: RequestSpec,
        identity: ProxyIdentity | None = None,
        timeout_sec: float | None = None,
    ) -> HttpResponse:
        """Send one request and read the whole body.

        Args:
        ----
            spec: The request to send
            identity: Egress identity (user agent, locale, proxy) for this attempt
            timeout_sec: Optional total timeout override

        Returns:
        -------
            The fully read response, whatever its status

        Raises:
        ------
            aiohttp.ClientError: On connection or protocol failures
            TimeoutError: If the request exceeds its timeout

        """
        headers = {**DEFAULT_HEADERS}
        proxy_type = identity.proxy_type if identity is not None else None
        if identity is not None:
            headers["User-Agent"] = identity.user_agent
            headers["Accept-Language"] = identity.accept_language
        headers.update(spec.headers)
        timeout = self._timeout(timeout_sec)

        if proxy_type == "socks5":
            async with aiohttp.ClientSession(
                connector=ProxyConnector.from_url(identity.proxy_url), timeout=timeout
            ) as socks_session:
                return await self._send(socks_session, spec, headers, None, timeout)

        http_proxy = identity.proxy_url if proxy_type == "http" else None
        pooled = await self._pooled_session()
        return await self._send(pooled, spec, headers, http_proxy, timeout)

    async def _send(
        self,
        session: aiohttp.ClientSession,
        spec: RequestSpec,
        headers: dict[str, str],
        proxy: str | None,
        timeout: aiohttp.ClientTimeout,
    ) -> HttpResponse:
        async with session.request(
            spec.method,
            spec.url,
            params=spec.params,
            json=spec.json_body,
            headers=headers,
            proxy=proxy,
            timeout=timeout,
        ) as response:
            body = await response.text(errors="replace")
            logger.debug(f"{spec.method} {response.url} -> {response.status}")
            return HttpResponse(
                status=response.status,
                text=body,
                content_type=response.headers.get("Content-Type", ""),
                url=str(response.url),
            )

    async def close(self) -> None:
        """Close the pooled session; a later request opens a fresh one."""
        pooled, self._pooled = self._pooled, None
        if pooled is not None and not pooled.closed:
            await pooled.close()
            logger.debug("HTTP transport closed")
