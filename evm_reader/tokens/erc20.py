"""
ERC-20 helpers: balances, metadata and optional capability detection
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Optional

from evm_reader.config.settings import NATIVE_DECIMALS
from evm_reader.core.abi import to_checksum_address
from evm_reader.core.block import BlockSelector
from evm_reader.core.errors import DecodeError, RpcError
from evm_reader.core.network.rpc_client import RpcClient
from evm_reader.utils.serialization import format_units
from evm_reader.utils.logger import get_logger

logger = get_logger(__name__)

# Minimal ERC-20 ABI subset
ERC20_ABI = [
    {"type": "function", "name": "decimals", "stateMutability": "view", "inputs": [],
     "outputs": [{"name": "", "type": "uint8"}]},
    {"type": "function", "name": "symbol", "stateMutability": "view", "inputs": [],
     "outputs": [{"name": "", "type": "string"}]},
    {"type": "function", "name": "name", "stateMutability": "view", "inputs": [],
     "outputs": [{"name": "", "type": "string"}]},
    {"type": "function", "name": "totalSupply", "stateMutability": "view", "inputs": [],
     "outputs": [{"name": "", "type": "uint256"}]},
    {"type": "function", "name": "balanceOf", "stateMutability": "view",
     "inputs": [{"name": "account", "type": "address"}],
     "outputs": [{"name": "", "type": "uint256"}]},
]

PAUSABLE_ABI = [
    {"type": "function", "name": "paused", "stateMutability": "view", "inputs": [],
     "outputs": [{"name": "", "type": "bool"}]},
]

OWNABLE_ABI = [
    {"type": "function", "name": "owner", "stateMutability": "view", "inputs": [],
     "outputs": [{"name": "", "type": "address"}]},
]


@dataclass(frozen=True)
class CapabilityProbe:
    """Supported(value) or Unsupported(reason)"""
    supported: bool
    value: Any = None
    reason: Optional[str] = None

    @classmethod
    def found(cls, value: Any) -> "CapabilityProbe":
        return cls(supported=True, value=value)

    @classmethod
    def unsupported(cls, reason: str) -> "CapabilityProbe":
        return cls(supported=False, reason=reason)


async def probe_capability(
    client: RpcClient,
    token: str,
    abi: list[dict[str, Any]],
    function_name: str,
    block: Optional[BlockSelector] = None,
) -> CapabilityProbe:
    """
    Call an optional view function. A revert or undecodable answer means
    the contract does not implement it; transport failures still raise.
    """
    try:
        value = await client.read_contract(token, abi, function_name, [], block)
    except (RpcError, DecodeError) as e:
        logger.debug(f"{function_name}() not supported by {token}: {e.message}")
        return CapabilityProbe.unsupported(e.message)
    return CapabilityProbe.found(value)


async def get_native_balance(
    client: RpcClient,
    account: str,
    block: Optional[BlockSelector] = None,
) -> dict[str, Any]:
    """Native coin balance of an account"""
    account = to_checksum_address(account, "account address")
    balance = await client.get_balance(account, block)
    return {
        "assetType": "native",
        "account": account,
        "balanceRaw": str(balance),
        "balance": format_units(balance, NATIVE_DECIMALS),
    }


async def get_erc20_balance(
    client: RpcClient,
    token: str,
    account: str,
    block: Optional[BlockSelector] = None,
    format_output: bool = True,
) -> dict[str, Any]:
    """ERC-20 balance of an account, with decimals and symbol"""
    token = to_checksum_address(token, "token address")
    account = to_checksum_address(account, "account address")

    decimals, symbol, raw = await asyncio.gather(
        client.read_contract(token, ERC20_ABI, "decimals", [], block),
        client.read_contract(token, ERC20_ABI, "symbol", [], block),
        client.read_contract(token, ERC20_ABI, "balanceOf", [account], block),
    )

    out = {
        "assetType": "erc20",
        "token": token,
        "account": account,
        "decimals": decimals,
        "symbol": symbol,
        "balanceRaw": str(raw),
    }
    if format_output:
        out["balance"] = format_units(raw, decimals)
    return out


async def get_token_metadata(
    client: RpcClient,
    token: str,
    block: Optional[BlockSelector] = None,
) -> dict[str, Any]:
    """Name, symbol, decimals, total supply and detected pausable/ownable flags"""
    token = to_checksum_address(token, "token address")

    name, symbol, decimals, total_supply = await asyncio.gather(
        client.read_contract(token, ERC20_ABI, "name", [], block),
        client.read_contract(token, ERC20_ABI, "symbol", [], block),
        client.read_contract(token, ERC20_ABI, "decimals", [], block),
        client.read_contract(token, ERC20_ABI, "totalSupply", [], block),
    )

    paused = await probe_capability(client, token, PAUSABLE_ABI, "paused", block)
    owner = await probe_capability(client, token, OWNABLE_ABI, "owner", block)

    capabilities: dict[str, Any] = {
        "pausable": paused.supported,
        "ownable": owner.supported,
    }
    if paused.supported:
        capabilities["paused"] = paused.value
    if owner.supported:
        capabilities["owner"] = owner.value

    return {
        "token": token,
        "name": name,
        "symbol": symbol,
        "decimals": decimals,
        "totalSupply": str(total_supply),
        "capabilities": capabilities,
    }
