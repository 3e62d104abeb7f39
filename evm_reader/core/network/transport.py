"""
JSON-RPC over HTTP with timeout, fixed-delay retries and rate limiting
"""
import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlsplit

import aiohttp

from evm_reader.config.client_config import ClientConfig
from evm_reader.core.errors import RpcError, RpcTimeoutError, TransportError
from evm_reader.utils.rate_limiter import SlidingWindowRateLimiter
from evm_reader.utils.logger import get_logger

logger = get_logger(__name__)


def redact_url(url: str) -> str:
    """Scheme and host only; paths and queries often embed API keys"""
    parts = urlsplit(url)
    if not parts.scheme or not parts.hostname:
        return "<rpc endpoint>"
    return f"{parts.scheme}://{parts.hostname}"


@dataclass(frozen=True)
class Endpoint:
    """RPC endpoint URL plus static headers merged into every request"""
    url: str
    headers: dict[str, str] = field(default_factory=dict, hash=False)

    @property
    def key(self) -> tuple[str, tuple[tuple[str, str], ...]]:
        return (self.url, tuple(sorted(self.headers.items())))

    def __repr__(self) -> str:
        return f"Endpoint(url={redact_url(self.url)!r}, headers=<{len(self.headers)} hidden>)"


class Transport:
    """
    Sends JSON-RPC requests to one endpoint.

    Every attempt, including retries, takes a slot from the endpoint's
    rate limiter. Timeouts and transport failures are retried up to
    `retry_count` times with a fixed delay; JSON-RPC error objects are
    valid answers and are raised immediately.
    """

    def __init__(
        self,
        endpoint: Endpoint,
        config: ClientConfig,
        limiter: SlidingWindowRateLimiter,
        get_session: Callable[[], Awaitable[aiohttp.ClientSession]],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.endpoint = endpoint
        self.config = config
        self._limiter = limiter
        self._get_session = get_session
        self._sleep = sleep
        self._ids = itertools.count(1)
        self._headers = {"Content-Type": "application/json", **endpoint.headers}
        self._label = redact_url(endpoint.url)

    def build_request(self, method: str, params: Optional[list[Any]] = None) -> dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params if params is not None else [],
        }

    async def send(self, method: str, params: Optional[list[Any]] = None) -> Any:
        """Execute an RPC call and return its `result`"""
        payload = self.build_request(method, params)
        attempts = self.config.retry_count + 1
        last_error: Optional[TransportError] = None

        for attempt in range(1, attempts + 1):
            await self._limiter.acquire()
            try:
                return await self._post(payload)
            except TransportError as e:
                last_error = e
                if attempt < attempts:
                    logger.warning(
                        f"{method} to {self._label} failed (attempt {attempt}/{attempts}): {e}; "
                        f"retrying in {self.config.retry_delay_ms}ms"
                    )
                    await self._sleep(self.config.retry_delay)

        logger.info(f"{method} to {self._label} failed after {attempts} attempts")
        raise last_error

    async def _post(self, payload: dict[str, Any]) -> Any:
        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        try:
            async with session.post(
                self.endpoint.url,
                json=payload,
                headers=self._headers,
                timeout=timeout,
            ) as response:
                if not 200 <= response.status < 300:
                    raise TransportError(f"HTTP {response.status} from {self._label}")
                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise TransportError(f"Non-JSON response from {self._label}") from e
        except asyncio.TimeoutError as e:
            raise RpcTimeoutError(
                f"Request to {self._label} timed out after {self.config.timeout_ms}ms"
            ) from e
        except aiohttp.ClientError as e:
            raise TransportError(f"Request to {self._label} failed: {e.__class__.__name__}") from e

        if not isinstance(data, dict):
            raise TransportError(f"Unexpected JSON-RPC response from {self._label} (non-object)")

        error = data.get("error")
        if isinstance(error, dict):
            raise RpcError.from_response(error)
        if error is not None:
            raise RpcError(str(error))

        if "result" not in data:
            raise TransportError(f"Unexpected JSON-RPC response from {self._label} (missing result)")
        return data["result"]
