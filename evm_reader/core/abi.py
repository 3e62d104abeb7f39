"""
ABI handling: parsing ABI text, encoding call data, decoding return data

Parsing is an ordered cascade of parsers returning tagged results; the
first parser that succeeds wins. Encoding goes through web3's contract
encoder, decoding through eth_abi.
"""
import json
import re
from dataclasses import dataclass
from typing import Any, Callable, NamedTuple, Optional, Sequence

from eth_abi import decode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import filter_abi_by_name, filter_abi_by_type, get_abi_output_types
from web3 import Web3
from web3.exceptions import Web3Exception

from evm_reader.core.errors import DecodeError, EncodeError, ValidationError
from evm_reader.utils.serialization import int_type_bits, json_safe_scalar

Abi = list[dict[str, Any]]

_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")
_IDENTIFIER = re.compile(r"^[A-Za-z_$][\w$]*$")
_ARRAY_SUFFIX = re.compile(r"^(\[\d*\])*")

READ_ONLY_MUTABILITY = ("view", "pure")


def to_checksum_address(value: Any, field_name: str = "address") -> str:
    """Validate a 20-byte hex address and return its checksummed form"""
    if not isinstance(value, str) or not _ADDRESS.match(value.strip()):
        raise ValidationError(f"Invalid {field_name}: {value!r}")
    return Web3.to_checksum_address(value.strip())


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AbiParseResult:
    """Ok(abi) or Err(reason)"""
    abi: Optional[Abi] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.abi is not None

    @classmethod
    def success(cls, abi: Abi) -> "AbiParseResult":
        return cls(abi=abi)

    @classmethod
    def failure(cls, reason: str) -> "AbiParseResult":
        return cls(error=reason)


def _sanitize_json_like(text: str) -> str:
    # Block comments, line comments outside strings (best effort), trailing commas, BOM
    out = re.sub(r"/\*[\s\S]*?\*/", "", text)
    out = re.sub(r'(^|[^:"])//.*$', r"\1", out, flags=re.MULTILINE)
    out = re.sub(r",(\s*[}\]])", r"\1", out)
    return out.lstrip("\ufeff").strip()


def _normalize_entries(candidate: Any) -> Optional[Abi]:
    if isinstance(candidate, dict):
        candidate = candidate.get("abi", candidate)
    if isinstance(candidate, dict):
        candidate = [candidate]
    if not isinstance(candidate, list) or not all(isinstance(e, dict) for e in candidate):
        return None

    entries = []
    for entry in candidate:
        entry = dict(entry)
        if entry.get("type", "function") == "function":
            entry.setdefault("type", "function")
            entry.setdefault("inputs", [])
            entry.setdefault("outputs", [])
        entries.append(entry)
    return entries


def _parse_object(source: Any) -> AbiParseResult:
    if isinstance(source, str):
        return AbiParseResult.failure("not a parsed ABI object")
    abi = _normalize_entries(source)
    if abi is None:
        return AbiParseResult.failure("object is not an ABI array")
    return AbiParseResult.success(abi)


def _parse_json(source: Any) -> AbiParseResult:
    if not isinstance(source, str):
        return AbiParseResult.failure("not text")
    try:
        parsed = json.loads(source)
    except json.JSONDecodeError:
        # Strict JSON failed; retry with comments and trailing commas removed
        try:
            parsed = json.loads(_sanitize_json_like(source))
        except json.JSONDecodeError as e:
            return AbiParseResult.failure(f"not JSON ({e.msg})")
    abi = _normalize_entries(parsed)
    if abi is None:
        return AbiParseResult.failure("JSON is not an ABI array")
    return AbiParseResult.success(abi)


def _take_group(text: str, start: int) -> tuple[str, int]:
    """Return the contents of the parenthesised group at `start` and the index after it"""
    if start >= len(text) or text[start] != "(":
        raise ValueError(f"expected '(' at position {start}")
    depth = 0
    for i in range(start, len(text)):
        if text[i] == "(":
            depth += 1
        elif text[i] == ")":
            depth -= 1
            if depth == 0:
                return text[start + 1:i], i + 1
    raise ValueError("unbalanced parentheses")


def _split_top_level(text: str) -> list[str]:
    parts, depth, current = [], 0, []
    for ch in text:
        if ch == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        current.append(ch)
    tail = "".join(current).strip()
    if tail or parts:
        parts.append(tail)
    return parts


def _parse_param(text: str) -> dict[str, Any]:
    text = text.strip()
    if not text:
        raise ValueError("empty parameter")

    if text.startswith("tuple("):
        text = text[len("tuple"):]
    if text.startswith("("):
        inner, end = _take_group(text, 0)
        suffix = _ARRAY_SUFFIX.match(text[end:]).group(0)
        param: dict[str, Any] = {
            "type": "tuple" + suffix,
            "components": [_parse_param(p) for p in _split_top_level(inner)],
        }
        rest = text[end + len(suffix):].split()
    else:
        tokens = text.split()
        abi_type = tokens[0]
        # uint/int aliases
        abi_type = re.sub(r"^(u?int)(?=$|\[)", r"\g<1>256", abi_type)
        param = {"type": abi_type}
        rest = tokens[1:]

    rest = [t for t in rest if t not in ("memory", "calldata", "storage", "indexed", "payable")]
    if len(rest) > 1:
        raise ValueError(f"unexpected tokens in parameter '{text}'")
    param["name"] = rest[0] if rest else ""
    if param["name"] and not _IDENTIFIER.match(param["name"]):
        raise ValueError(f"invalid parameter name '{param['name']}'")
    return param


def _parse_signature(line: str) -> dict[str, Any]:
    body = line[len("function"):].strip()
    paren = body.find("(")
    if paren <= 0:
        raise ValueError(f"missing parameter list in '{line}'")
    name = body[:paren].strip()
    if not _IDENTIFIER.match(name):
        raise ValueError(f"invalid function name '{name}'")

    inputs_text, end = _take_group(body, paren)
    rest = body[end:].strip()

    outputs_text = ""
    returns_at = rest.find("returns")
    if returns_at >= 0:
        group_at = rest.find("(", returns_at)
        if group_at < 0:
            raise ValueError(f"missing return list in '{line}'")
        outputs_text, _ = _take_group(rest, group_at)
        rest = rest[:returns_at]

    mutability = "nonpayable"
    for token in rest.split():
        if token in ("view", "pure", "payable", "nonpayable"):
            mutability = token
        elif token not in ("external", "public"):
            raise ValueError(f"unexpected modifier '{token}'")

    return {
        "type": "function",
        "name": name,
        "inputs": [_parse_param(p) for p in _split_top_level(inputs_text)],
        "outputs": [_parse_param(p) for p in _split_top_level(outputs_text)],
        "stateMutability": mutability,
    }


def _parse_human_readable(source: Any) -> AbiParseResult:
    if not isinstance(source, str):
        return AbiParseResult.failure("not text")

    abi: Abi = []
    for raw_line in source.splitlines():
        line = raw_line.strip().rstrip(";")
        if not line:
            continue
        keyword = line.split(None, 1)[0].split("(", 1)[0]
        if keyword in ("event", "error", "constructor", "fallback", "receive"):
            continue
        if keyword != "function":
            return AbiParseResult.failure(f"unrecognized signature '{line}'")
        try:
            abi.append(_parse_signature(line))
        except ValueError as e:
            return AbiParseResult.failure(str(e))

    if not abi:
        return AbiParseResult.failure("no function signatures found")
    return AbiParseResult.success(abi)


ABI_PARSERS: tuple[tuple[str, Callable[[Any], AbiParseResult]], ...] = (
    ("object", _parse_object),
    ("json", _parse_json),
    ("human-readable", _parse_human_readable),
)


def parse_abi(source: Any) -> AbiParseResult:
    """Try each parser in order; the first Ok wins"""
    if source is None or (isinstance(source, str) and not source.strip()):
        return AbiParseResult.failure("ABI is empty")

    reasons = []
    for name, parser in ABI_PARSERS:
        result = parser(source)
        if result.ok:
            return result
        reasons.append(f"{name}: {result.error}")
    return AbiParseResult.failure("; ".join(reasons))


def require_abi(source: Any) -> Abi:
    """parse_abi, raising ValidationError on Err"""
    result = parse_abi(source)
    if not result.ok:
        raise ValidationError(f"Invalid ABI ({result.error})")
    return result.abi


def is_read_only(entry: dict[str, Any]) -> bool:
    if entry.get("type", "function") != "function":
        return False
    return entry.get("stateMutability") in READ_ONLY_MUTABILITY or entry.get("constant") is True


def read_only_functions(abi: Abi) -> Abi:
    return [e for e in abi if e.get("name") and is_read_only(e)]


def function_name_options(abi_source: Any) -> list[dict[str, str]]:
    """Sorted read-only function names for a picker; overloads are labelled"""
    result = parse_abi(abi_source)
    if not result.ok:
        return []

    counts: dict[str, int] = {}
    for entry in read_only_functions(result.abi):
        counts[entry["name"]] = counts.get(entry["name"], 0) + 1

    options = []
    for name in sorted(counts):
        label = f"{name} (overloaded)" if counts[name] > 1 else name
        options.append({"name": label, "value": name})
    return options


# ---------------------------------------------------------------------------
# Encoding / decoding
# ---------------------------------------------------------------------------

# Encoding only; this instance never talks to a node
_w3 = Web3()


class FunctionCall(NamedTuple):
    """Call data and the ABI entry it was encoded against"""
    fn_abi: dict[str, Any]
    data: bytes


def _element_param(param: dict[str, Any]) -> dict[str, Any]:
    abi_type = param["type"]
    return {**param, "type": abi_type[:abi_type.rindex("[")]}


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        text = value[2:] if value.startswith(("0x", "0X")) else value
        return bytes.fromhex(text)
    raise TypeError(f"expected hex string, got {type(value).__name__}")


def coerce_arg(param: dict[str, Any], value: Any) -> Any:
    """Convert a JSON argument into the Python value web3 expects"""
    abi_type = param["type"]

    if abi_type.endswith("]"):
        if not isinstance(value, (list, tuple)):
            raise TypeError(f"expected array for {abi_type}")
        element = _element_param(param)
        return [coerce_arg(element, v) for v in value]

    if abi_type == "tuple":
        components = param.get("components", [])
        if isinstance(value, dict):
            value = [value[c["name"]] for c in components]
        if not isinstance(value, (list, tuple)) or len(value) != len(components):
            raise TypeError(f"expected {len(components)} tuple components")
        return tuple(coerce_arg(c, v) for c, v in zip(components, value))

    if int_type_bits(abi_type) is not None:
        if isinstance(value, bool):
            raise TypeError(f"expected integer for {abi_type}")
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            return int(value.strip(), 0)
        raise TypeError(f"expected integer for {abi_type}")

    if abi_type == "address":
        return to_checksum_address(value, "address argument")

    if abi_type == "bool":
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
        if not isinstance(value, bool):
            raise TypeError("expected boolean")
        return value

    if abi_type.startswith("bytes"):
        return _to_bytes(value)

    return value


def _shape(param: dict[str, Any], value: Any, json_safe: bool) -> Any:
    abi_type = param["type"]
    if abi_type.endswith("]"):
        element = _element_param(param)
        return [_shape(element, v, json_safe) for v in value]
    if abi_type == "tuple":
        components = param.get("components", [])
        shaped = [_shape(c, v, json_safe) for c, v in zip(components, value)]
        if components and all(c.get("name") for c in components):
            return {c["name"]: v for c, v in zip(components, shaped)}
        return shaped
    if abi_type == "address":
        return Web3.to_checksum_address(value)
    if json_safe:
        return json_safe_scalar(abi_type, value)
    return value


class CallEncoder:
    """Encodes (abi, function, args) into call data with web3's contract encoder"""

    @staticmethod
    def encode(abi: Abi, function_name: str, args: Sequence[Any] = ()) -> FunctionCall:
        """
        Pick the overload the arguments fit and encode against it.

        Overloads are tried in ABI order; the first one whose inputs accept
        the (JSON-converted) arguments wins. The returned entry is the one
        the result must be decoded with.
        """
        args = list(args or [])
        candidates = filter_abi_by_name(function_name, filter_abi_by_type("function", abi))
        if not candidates:
            raise EncodeError(f"Function '{function_name}' not found in ABI")

        last_error: Optional[Exception] = None
        for fn_abi in candidates:
            inputs = fn_abi.get("inputs", [])
            if len(inputs) != len(args):
                last_error = ValueError(f"expected {len(inputs)} arguments, got {len(args)}")
                continue
            try:
                values = [coerce_arg(p, a) for p, a in zip(inputs, args)]
                # Single-entry contract, so the name is unambiguous
                contract = _w3.eth.contract(abi=[fn_abi])
                data = contract.encode_abi(fn_abi["name"], args=values)
            except (Web3Exception, EncodingError, ValidationError, TypeError, ValueError, KeyError) as e:
                last_error = e
                continue
            return FunctionCall(fn_abi, Web3.to_bytes(hexstr=data))

        message = last_error.message if isinstance(last_error, ValidationError) else str(last_error)
        raise EncodeError(f"Cannot encode arguments for '{function_name}': {message}")


class ResultDecoder:
    """Decodes return data for one function ABI entry"""

    @staticmethod
    def decode(fn_abi: dict[str, Any], data: bytes, json_safe: bool = False) -> Any:
        """
        Decode `data` against the entry's outputs.

        Returns None for functions without outputs, the bare value for a
        single output and a list otherwise. With `json_safe`, integers wider
        than 48 bits become decimal strings and bytes become hex.
        """
        function_name = fn_abi.get("name", "")
        outputs = fn_abi.get("outputs", [])
        if not outputs:
            return None
        if not data:
            raise DecodeError(f"Empty return data for '{function_name}' (is this a contract?)")

        try:
            values = decode(get_abi_output_types(fn_abi), bytes(data))
        except (DecodingError, ValueError, OverflowError) as e:
            raise DecodeError(f"Cannot decode return data for '{function_name}': {e}") from e

        shaped = [_shape(p, v, json_safe) for p, v in zip(outputs, values)]
        return shaped[0] if len(shaped) == 1 else shaped


def parse_args(value: Any) -> list[Any]:
    """Call arguments from a JSON array or JSON text; empty text means no arguments"""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        if not value.strip():
            return []
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Arguments are not valid JSON: {e.msg}") from e
        if not isinstance(parsed, list):
            raise ValidationError("Arguments must be a JSON array")
        return parsed
    raise ValidationError(f"Arguments must be a JSON array, got {type(value).__name__}")
