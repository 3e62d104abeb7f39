"""
Endpoint registry: shared HTTP session, per-endpoint rate limiters and transports
"""
import asyncio
import time
from typing import Awaitable, Callable, Optional

import aiohttp

from evm_reader.config.client_config import ClientConfig
from evm_reader.core.network.transport import Endpoint, Transport
from evm_reader.utils.rate_limiter import MultiRateLimiter
from evm_reader.utils.logger import get_logger

logger = get_logger(__name__)


class EndpointRegistry:
    """
    Owns the long-lived, shared network state of a process.

    Transports are cached per (url, headers, config). Rate limiters are
    keyed by URL only, so every transport for the same URL shares one
    budget, sized by whichever configuration registered first.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.rate_limiter = MultiRateLimiter(clock=clock, sleep=sleep)
        self._session_factory = session_factory or self._default_session
        self._session: Optional[aiohttp.ClientSession] = None
        self._transports: dict[tuple, Transport] = {}
        self._sleep = sleep

    @staticmethod
    def _default_session() -> aiohttp.ClientSession:
        connector = aiohttp.TCPConnector(
            use_dns_cache=True,
            ttl_dns_cache=600,
            limit=100,
            limit_per_host=20,
            enable_cleanup_closed=True,
        )
        return aiohttp.ClientSession(connector=connector)

    async def get_session(self) -> aiohttp.ClientSession:
        """Get or create the shared session"""
        if self._session is None or self._session.closed:
            self._session = self._session_factory()
        return self._session

    def transport(self, endpoint: Endpoint, config: ClientConfig) -> Transport:
        """Get or create the transport for an endpoint and configuration"""
        key = (endpoint.key, config)
        transport = self._transports.get(key)
        if transport is None:
            limiter = self.rate_limiter.get(endpoint.url, config.rate_limit_per_second)
            transport = Transport(
                endpoint,
                config,
                limiter,
                self.get_session,
                sleep=self._sleep,
            )
            self._transports[key] = transport
            logger.debug(f"Created transport for {endpoint!r} with {config}")
        return transport

    async def close(self):
        """Close the shared session"""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "EndpointRegistry":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()
