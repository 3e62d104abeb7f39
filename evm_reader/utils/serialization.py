"""
JSON-safe output helpers
EVM integers are arbitrary precision; anything that could lose precision
as a JSON number leaves as a decimal string.
"""
import re
from typing import Any

# Largest integer a double represents exactly
MAX_SAFE_INTEGER = 2**53 - 1

# Integer types wider than this many bits are always emitted as strings,
# whatever the value, so a field keeps one JSON type
MAX_NUMBER_BITS = 48

_INT_TYPE = re.compile(r"^u?int(\d*)$")


def int_type_bits(abi_type: str) -> int | None:
    """Bit width of an ABI integer type, None for other types"""
    match = _INT_TYPE.match(abi_type)
    if not match:
        return None
    return int(match.group(1) or 256)


def json_safe_scalar(abi_type: str, value: Any) -> Any:
    """Convert one decoded ABI leaf value for JSON output"""
    bits = int_type_bits(abi_type)
    if bits is not None:
        return str(value) if bits > MAX_NUMBER_BITS else int(value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value


def normalize_bigint(value: Any) -> Any:
    """Recursively stringify unsafe integers and hex-encode bytes"""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value) if abs(value) > MAX_SAFE_INTEGER else value
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return [normalize_bigint(v) for v in value]
    if isinstance(value, dict):
        return {k: normalize_bigint(v) for k, v in value.items()}
    return value


def format_units(value: int, decimals: int) -> str:
    """Exact decimal rendering of `value / 10**decimals`, trailing zeros trimmed"""
    negative = value < 0
    integer, fraction = divmod(abs(value), 10**decimals)
    text = str(integer)
    if decimals > 0:
        fraction_text = str(fraction).rjust(decimals, "0").rstrip("0")
        if fraction_text:
            text = f"{text}.{fraction_text}"
    return f"-{text}" if negative else text
