"""
RPC credentials: endpoint URL plus optional static headers
Loads configuration from environment variables or .env file
"""
import json
import os
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional
from dotenv import load_dotenv

from evm_reader.core.errors import ValidationError
from evm_reader.core.network.transport import redact_url

# Load .env file
load_dotenv()


@dataclass
class RpcCredentials:
    rpc_url: str
    headers: dict[str, str] = field(default_factory=dict)

    def __repr__(self) -> str:
        # Header values and URL paths are usually API keys
        return f"RpcCredentials(rpc_url={redact_url(self.rpc_url)!r}, headers=<{len(self.headers)} hidden>)"


def parse_header_pairs(pairs: Optional[Iterable[Any]]) -> dict[str, str]:
    """
    Turn host-style header entries into a mapping.

    Accepts a list of {"name": ..., "value": ...} dicts, the wrapped form
    {"header": [...]}, or a plain mapping. Entries with an empty name or
    value are dropped.
    """
    if not pairs:
        return {}
    if isinstance(pairs, dict):
        if "header" in pairs:
            pairs = pairs["header"] or []
        else:
            pairs = [{"name": k, "value": v} for k, v in pairs.items()]

    headers: dict[str, str] = {}
    for pair in pairs:
        if not isinstance(pair, dict):
            continue
        name = pair.get("name")
        value = pair.get("value")
        if name and value:
            headers[str(name)] = str(value)
    return headers


def load_credentials() -> Optional[RpcCredentials]:
    """Get RPC credentials from EVM_RPC_URL / EVM_RPC_HEADERS"""
    rpc_url = os.getenv("EVM_RPC_URL")
    if not rpc_url:
        return None

    raw_headers = os.getenv("EVM_RPC_HEADERS", "").strip()
    headers: dict[str, str] = {}
    if raw_headers:
        try:
            headers = parse_header_pairs(json.loads(raw_headers))
        except json.JSONDecodeError as e:
            raise ValidationError(f"EVM_RPC_HEADERS is not valid JSON: {e.msg}") from e

    return RpcCredentials(rpc_url=rpc_url.strip(), headers=headers)
