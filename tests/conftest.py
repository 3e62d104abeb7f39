"""
Shared fixtures: a fake clock, a fake aiohttp session and an in-memory chain
that answers eth_call (including Multicall3 aggregate/aggregate3).
"""
from collections import deque
from typing import Any, Callable

import pytest
from eth_abi import decode, encode
from web3 import Web3

from evm_reader.config.client_config import ClientConfig
from evm_reader.core.network.rpc_client import RpcClient
from evm_reader.core.network.transport import Endpoint
from evm_reader.utils.endpoint_registry import EndpointRegistry

RPC_URL = "https://rpc.example.org/v1/secret-key"
MULTICALL = "0xcA11bde05977b3631167028862bE2a173976CA11"
TOKEN = "0x1111111111111111111111111111111111111111"
OTHER = "0x2222222222222222222222222222222222222222"
HOLDER = "0x3333333333333333333333333333333333333333"
EOA = "0x4444444444444444444444444444444444444444"


def selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4])


class Revert(Exception):
    pass


class FakeClock:
    """Monotonic clock whose sleep advances time instantly"""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeResponse:
    def __init__(self, status: int = 200, payload: Any = None, invalid_json: bool = False):
        self.status = status
        self._payload = payload
        self._invalid_json = invalid_json

    async def json(self, content_type=None):
        if self._invalid_json:
            raise ValueError("Expecting value")
        return self._payload


class _RequestContext:
    def __init__(self, session: "FakeSession", payload: dict):
        self._session = session
        self._payload = payload

    async def __aenter__(self) -> FakeResponse:
        if self._session.failures:
            outcome = self._session.failures.popleft()
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return self._session.handler(self._payload)

    async def __aexit__(self, *exc_info):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession.post"""

    def __init__(self, handler: Callable[[dict], FakeResponse], clock: FakeClock):
        self.handler = handler
        self.clock = clock
        self.failures: deque = deque()
        self.requests: list[dict] = []
        self.closed = False

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({
            "url": url,
            "json": json,
            "headers": headers,
            "timeout": timeout,
            "at": self.clock(),
        })
        return _RequestContext(self, json)

    @property
    def methods(self) -> list[str]:
        return [r["json"]["method"] for r in self.requests]

    async def close(self):
        self.closed = True


class FakeChain:
    """Contracts keyed by address and selector; returns raw bytes or raises Revert"""

    def __init__(self):
        self.contracts: dict[str, dict[bytes, Callable[[bytes], bytes]]] = {}
        self.balances: dict[str, int] = {}
        self.block_number = 19_000_000
        self.chain_id = 1
        self.call_blocks: list[Any] = []

    def add(self, address: str, signature: str, fn: Callable[[bytes], bytes]):
        self.contracts.setdefault(address.lower(), {})[selector(signature)] = fn

    def returns(self, address: str, signature: str, types: list[str], values: list[Any]):
        data = encode(types, values)
        self.add(address, signature, lambda _args: data)

    def reverts(self, address: str, signature: str):
        def _revert(_args):
            raise Revert()
        self.add(address, signature, _revert)

    def execute(self, to: str, data: bytes) -> bytes:
        if to.lower() == MULTICALL.lower():
            return self._multicall(data)
        functions = self.contracts.get(to.lower())
        if functions is None:
            # No code at this address
            return b""
        fn = functions.get(data[:4])
        if fn is None:
            raise Revert()
        return fn(data[4:])

    def _multicall(self, data: bytes) -> bytes:
        if data[:4] == selector("aggregate3((address,bool,bytes)[])"):
            (calls,) = decode(["(address,bool,bytes)[]"], data[4:])
            out = []
            for target, allow_failure, call_data in calls:
                try:
                    out.append((True, self.execute(target, call_data)))
                except Revert:
                    if not allow_failure:
                        raise
                    out.append((False, b""))
            return encode(["(bool,bytes)[]"], [out])
        if data[:4] == selector("aggregate((address,bytes)[])"):
            (calls,) = decode(["(address,bytes)[]"], data[4:])
            out = [self.execute(target, call_data) for target, call_data in calls]
            return encode(["uint256", "bytes[]"], [self.block_number, out])
        raise Revert()

    def handle(self, payload: dict) -> FakeResponse:
        method, params = payload["method"], payload["params"]
        try:
            if method == "eth_call":
                tx, block = params
                self.call_blocks.append(block)
                data = bytes.fromhex(tx["data"][2:])
                result = "0x" + self.execute(tx["to"], data).hex()
            elif method == "eth_getBalance":
                result = hex(self.balances.get(params[0].lower(), 0))
            elif method == "eth_chainId":
                result = hex(self.chain_id)
            elif method == "eth_blockNumber":
                result = hex(self.block_number)
            else:
                return FakeResponse(payload={
                    "jsonrpc": "2.0", "id": payload["id"],
                    "error": {"code": -32601, "message": "method not found"},
                })
        except Revert:
            return FakeResponse(payload={
                "jsonrpc": "2.0", "id": payload["id"],
                "error": {"code": 3, "message": "execution reverted", "data": "0x"},
            })
        return FakeResponse(payload={"jsonrpc": "2.0", "id": payload["id"], "result": result})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def session(chain, clock) -> FakeSession:
    return FakeSession(chain.handle, clock)


@pytest.fixture
def registry(session, clock) -> EndpointRegistry:
    return EndpointRegistry(session_factory=lambda: session, clock=clock, sleep=clock.sleep)


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(retry_count=2, retry_delay_ms=500, timeout_ms=5000, rate_limit_per_second=10)


@pytest.fixture
def endpoint() -> Endpoint:
    return Endpoint(RPC_URL, {"x-api-key": "top-secret-value"})


@pytest.fixture
def transport(registry, endpoint, config):
    return registry.transport(endpoint, config)


@pytest.fixture
def client(transport) -> RpcClient:
    return RpcClient(transport)


@pytest.fixture
def erc20_token(chain):
    """A token at TOKEN with the usual ERC-20 views"""
    chain.returns(TOKEN, "name()", ["string"], ["Wrapped Ether"])
    chain.returns(TOKEN, "symbol()", ["string"], ["WETH"])
    chain.returns(TOKEN, "decimals()", ["uint8"], [18])
    chain.returns(TOKEN, "totalSupply()", ["uint256"], [2**200])
    chain.returns(TOKEN, "balanceOf(address)", ["uint256"], [1_500_000_000_000_000_000])
    return TOKEN
