"""
Network presets and resolution of the endpoint to use for a request
"""
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from evm_reader.config.client_config import ClientConfig
from evm_reader.config.secrets import RpcCredentials
from evm_reader.core.errors import ValidationError

CUSTOM_PRESET = "Custom"


@dataclass(frozen=True)
class NativeCurrency:
    name: str
    symbol: str
    decimals: int = 18


@dataclass(frozen=True)
class NetworkPreset:
    """Static description of a well-known network"""
    name: str
    chain_id: int
    rpc_url: str
    description: str = ""
    explorer_url: Optional[str] = None
    native_currency: Optional[NativeCurrency] = None


@dataclass
class NetworkConfig:
    """Endpoint and client settings resolved for one request"""
    rpc_url: str
    headers: dict[str, str] = field(default_factory=dict)
    chain_id: Optional[int] = None
    explorer_url: Optional[str] = None
    client_config: ClientConfig = field(default_factory=ClientConfig)


NETWORK_PRESETS: list[NetworkPreset] = [
    NetworkPreset(
        name="Katana",
        chain_id=1261120,
        rpc_url="https://rpc.katana.network/",
        description="Katana Network",
        explorer_url="https://katanascan.io",
        native_currency=NativeCurrency("Katana", "KATANA"),
    ),
    NetworkPreset(
        name="Ethereum Mainnet",
        chain_id=1,
        rpc_url="https://eth.llamarpc.com",
        description="Ethereum Mainnet",
        explorer_url="https://etherscan.io",
        native_currency=NativeCurrency("Ether", "ETH"),
    ),
    NetworkPreset(
        name="Polygon",
        chain_id=137,
        rpc_url="https://polygon-rpc.com",
        description="Polygon PoS",
        explorer_url="https://polygonscan.com",
        native_currency=NativeCurrency("MATIC", "MATIC"),
    ),
    NetworkPreset(
        name="Arbitrum One",
        chain_id=42161,
        rpc_url="https://arb1.arbitrum.io/rpc",
        description="Arbitrum One Mainnet",
        explorer_url="https://arbiscan.io",
        native_currency=NativeCurrency("Ether", "ETH"),
    ),
    NetworkPreset(
        name="Base",
        chain_id=8453,
        rpc_url="https://mainnet.base.org",
        description="Base Mainnet",
        explorer_url="https://basescan.org",
        native_currency=NativeCurrency("Ether", "ETH"),
    ),
    NetworkPreset(
        name="BSC",
        chain_id=56,
        rpc_url="https://bsc-dataseed.binance.org",
        description="BNB Smart Chain",
        explorer_url="https://bscscan.com",
        native_currency=NativeCurrency("BNB", "BNB"),
    ),
    NetworkPreset(
        name="Sepolia Testnet",
        chain_id=11155111,
        rpc_url="https://rpc.sepolia.org",
        description="Ethereum Sepolia Testnet",
        explorer_url="https://sepolia.etherscan.io",
        native_currency=NativeCurrency("Sepolia ETH", "ETH"),
    ),
    NetworkPreset(
        name=CUSTOM_PRESET,
        chain_id=0,
        rpc_url="",
        description="Use custom RPC endpoint from credentials",
    ),
]


def get_preset_by_name(name: str) -> Optional[NetworkPreset]:
    """Get a preset by its display name"""
    for preset in NETWORK_PRESETS:
        if preset.name == name:
            return preset
    return None


def get_preset_options() -> list[dict[str, str]]:
    """Options list for a host parameter picker"""
    return [
        {"name": p.name, "value": p.name, "description": p.description}
        for p in NETWORK_PRESETS
    ]


def resolve_network(
    preset_name: Optional[str],
    credentials: RpcCredentials,
    options: Optional[Mapping[str, Any]] = None,
) -> NetworkConfig:
    """
    Pick the endpoint for a request.

    A named preset (anything but Custom) with an RPC URL wins over the
    credentials URL; credential headers are sent either way.
    """
    client_config = ClientConfig.from_options(options)

    if preset_name and preset_name != CUSTOM_PRESET:
        preset = get_preset_by_name(preset_name)
        if preset is None:
            raise ValidationError(f"Unknown network preset '{preset_name}'")
        if preset.rpc_url:
            return NetworkConfig(
                rpc_url=preset.rpc_url,
                headers=dict(credentials.headers),
                chain_id=preset.chain_id,
                explorer_url=preset.explorer_url,
                client_config=client_config,
            )

    if not credentials.rpc_url:
        raise ValidationError("An RPC URL is required when no network preset is selected")

    return NetworkConfig(
        rpc_url=credentials.rpc_url,
        headers=dict(credentials.headers),
        client_config=client_config,
    )
