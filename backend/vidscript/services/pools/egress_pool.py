"""
Proxy pool for outbound requests.

Load balances upstream calls over HTTP/HTTPS/SOCKS proxies with the same
cooldown and failover model as the API key pool, and can probe proxies
with a live request.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable
from urllib.parse import quote, urlsplit, urlunsplit

import httpx
from httpx_socks import AsyncProxyTransport

from vidscript.config import Settings, load_proxies_config
from vidscript.models.schemas import ProxyTestResult
from vidscript.services.ai_clients.base import AIClientError, ErrorKind

from .base import FailureKind, PoolEntry, ResourcePool

logger = logging.getLogger(__name__)

PROXY_SCHEMES = ("http", "https", "socks4", "socks5")


def detect_proxy_type(url: str) -> str:
    """Detect proxy type from URL scheme (http if unknown)."""
    scheme = urlsplit(url).scheme.lower()
    return scheme if scheme in PROXY_SCHEMES else "http"


@dataclass
class EgressPath(PoolEntry):
    """A proxy server and its health state."""

    url: str = ""
    type: str = "http"
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    response_time: float = 0.0  # Milliseconds, last successful sample
    country: str = "Unknown"
    speed: str = "Unknown"

    @property
    def proxy_url(self) -> str:
        """Proxy URL with credentials embedded when configured separately."""
        parts = urlsplit(self.url)
        if not self.username or parts.username:
            return self.url

        auth = quote(self.username, safe="")
        if self.password:
            auth += ":" + quote(self.password, safe="")
        return urlunsplit(parts._replace(netloc=f"{auth}@{parts.netloc}"))

    def client_options(self) -> dict:
        """
        httpx.AsyncClient keyword arguments that route through this proxy.

        httpx routes http, https and socks5 proxies natively; socks4 goes
        through an httpx-socks transport.
        """
        if self.type == "socks4":
            return {"transport": AsyncProxyTransport.from_url(self.proxy_url)}
        return {"proxy": self.proxy_url}


class EgressPool(ResourcePool[EgressPath]):
    """
    Round-robin pool of proxies.

    Auth failures disable a proxy permanently; an unavailable proxy is
    disabled until reset_cooldowns(); timeouts and refused connections only
    start a cooldown. An empty pool means requests go out directly.

    Example:
        pool = EgressPool.from_settings(settings)
        proxy = pool.next()  # None when no proxy is configured
        results = await pool.test_all()
    """

    label = "proxy"
    PERMANENT_DISABLE = frozenset({FailureKind.AUTH_FAILED})
    RECOVERABLE_DISABLE = frozenset({FailureKind.UNAVAILABLE})

    def __init__(
        self,
        proxies: list[dict] | None = None,
        cooldown_base: float = 30.0,
        cooldown_max: float = 300.0,
        test_url: str = "https://httpbin.org/ip",
        test_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        probe_transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize pool with proxy definitions.

        Args:
            proxies: Proxy dicts with "url" and optional type/username/password/country/speed
            cooldown_base: Cooldown for the first failure level, seconds
            cooldown_max: Maximum cooldown, seconds
            test_url: URL fetched through a proxy by test()
            test_timeout: Probe timeout, seconds
            clock: Monotonic clock (injectable for tests)
            probe_transport: Transport for probes (tests); bypasses the proxy itself
        """
        super().__init__(cooldown_base, cooldown_max, clock)
        self.test_url = test_url
        self.test_timeout = test_timeout
        self._probe_transport = probe_transport
        for proxy in proxies or []:
            self.add(proxy)

    @classmethod
    def from_settings(cls, settings: Settings) -> "EgressPool":
        """
        Create EgressPool from proxies.yaml and PROXY_URLS.

        Args:
            settings: Application settings

        Returns:
            Configured EgressPool (possibly empty)
        """
        return cls(
            proxies=load_proxies_config(settings),
            cooldown_base=settings.proxy_cooldown_base,
            cooldown_max=settings.proxy_cooldown_max,
            test_url=settings.proxy_test_url,
            test_timeout=settings.proxy_test_timeout,
        )

    def next(self) -> EgressPath | None:
        """
        Get the next available proxy.

        Returns:
            Selected proxy, or None when no usable proxy is configured
        """
        return self._draw()

    def classify(self, error: BaseException) -> FailureKind:
        """Categorize proxy error."""
        if isinstance(error, httpx.TimeoutException):
            return FailureKind.TIMEOUT
        if isinstance(error, httpx.ProxyError):
            message = str(error).lower()
            if "407" in message or "auth" in message:
                return FailureKind.AUTH_FAILED
            return FailureKind.UNAVAILABLE
        if isinstance(error, httpx.ConnectError):
            return FailureKind.CONNECTION_REFUSED
        if isinstance(error, AIClientError):
            if error.kind == ErrorKind.TIMEOUT:
                return FailureKind.TIMEOUT
            if error.kind == ErrorKind.NETWORK:
                return FailureKind.CONNECTION_REFUSED
            if error.status_code == 407:
                return FailureKind.AUTH_FAILED

        message = str(error).lower()
        if "timeout" in message or "timed out" in message:
            return FailureKind.TIMEOUT
        if "connection refused" in message:
            return FailureKind.CONNECTION_REFUSED
        if "authentication" in message or "unauthorized" in message or "407" in message:
            return FailureKind.AUTH_FAILED
        if "proxy" in message and ("unavailable" in message or "unsupported" in message):
            return FailureKind.UNAVAILABLE
        return FailureKind.UNKNOWN

    def mark_success(self, entry: EgressPath, response_time: float = 0.0) -> None:
        """
        Record a successful request through the proxy.

        Args:
            entry: Proxy that was used
            response_time: Response time sample in milliseconds
        """
        super().mark_success(entry)
        with self._lock:
            entry.response_time = response_time

    def add(self, proxy: dict) -> EgressPath:
        """
        Add new proxy to the pool.

        Args:
            proxy: Dict with "url" and optional type/username/password/country/speed

        Returns:
            Created proxy entry
        """
        url = (proxy.get("url") or "").strip()
        if not url:
            raise ValueError("Proxy URL must not be empty")

        proxy_type = (proxy.get("type") or detect_proxy_type(url)).lower()
        if proxy_type not in PROXY_SCHEMES:
            raise ValueError(f"Unsupported proxy type: {proxy_type}")

        with self._lock:
            entry = EgressPath(
                id=self._next_id("proxy"),
                url=url,
                type=proxy_type,
                username=proxy.get("username") or None,
                password=proxy.get("password") or None,
                country=proxy.get("country") or "Unknown",
                speed=proxy.get("speed") or "Unknown",
            )
        return self._append(entry)

    # ═══════════════════════════════════════════════════════════════════════════
    # Live probing
    # ═══════════════════════════════════════════════════════════════════════════

    async def test(self, identifier: str) -> ProxyTestResult:
        """
        Test proxy connectivity with a live request.

        Feeds the outcome back through mark_success / mark_failed.

        Args:
            identifier: Proxy id

        Returns:
            ProxyTestResult with response time and exit IP, or the error

        Raises:
            KeyError: If the proxy does not exist
        """
        proxy = self.find(identifier)
        if proxy is None:
            raise KeyError(f"Proxy not found: {identifier}")

        started = time.perf_counter()
        try:
            async with self._probe_client(proxy) as client:
                response = await client.get(self.test_url)
            if response.status_code >= 400:
                raise httpx.HTTPStatusError(
                    f"HTTP {response.status_code}",
                    request=response.request,
                    response=response,
                )
        except (httpx.HTTPError, ValueError) as e:
            kind = self.mark_failed(proxy, e)
            logger.warning(f"Proxy {proxy.id} test failed: {e}")
            return ProxyTestResult(
                proxy_id=proxy.id,
                success=False,
                error=str(e) or kind.value,
            )

        response_time = (time.perf_counter() - started) * 1000
        self.mark_success(proxy, response_time)
        logger.info(f"Proxy {proxy.id} OK in {response_time:.0f}ms")

        return ProxyTestResult(
            proxy_id=proxy.id,
            success=True,
            response_time=round(response_time, 1),
            ip=response.text.strip(),
        )

    async def test_all(self) -> list[ProxyTestResult]:
        """Test all proxies one after another."""
        return [await self.test(proxy.id) for proxy in self.entries]

    def _probe_client(self, proxy: EgressPath) -> httpx.AsyncClient:
        if self._probe_transport is not None:
            return httpx.AsyncClient(transport=self._probe_transport, timeout=self.test_timeout)
        return httpx.AsyncClient(timeout=self.test_timeout, **proxy.client_options())

    def _summarize(self, entry: EgressPath) -> dict:
        summary = super()._summarize(entry)
        summary.update({
            "url": entry.url,
            "type": entry.type,
            "response_time": entry.response_time,
            "country": entry.country,
            "speed": entry.speed,
        })
        return summary
