"""
Error types raised by the EVM reader
"""
from typing import Any, Optional


class EvmReaderError(Exception):
    """Base class for all reader errors"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = dict(details or {})

    def with_context(self, **details: Any) -> "EvmReaderError":
        """Attach identifying details (contract address, function, ...) and return self"""
        for key, value in details.items():
            if value is not None:
                self.details.setdefault(key, value)
        return self

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.message} ({context})"


class ValidationError(EvmReaderError):
    """Malformed input: address, block tag, ABI, args or client options"""


class EmptyBatchError(ValidationError):
    """A multicall batch was submitted without any calls"""

    def __init__(self, message: str = "No calls provided", details: Optional[dict[str, Any]] = None):
        super().__init__(message, details)


class TransportError(EvmReaderError):
    """Connection failure, non-2xx status or malformed response body"""


class RpcTimeoutError(TransportError):
    """A single request attempt exceeded the configured timeout"""


class RpcError(EvmReaderError):
    """The endpoint answered with a JSON-RPC error object"""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        data: Any = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.code = code
        self.data = data

    @classmethod
    def from_response(cls, error: dict[str, Any]) -> "RpcError":
        """Build the most specific RpcError for a JSON-RPC error object"""
        code = error.get("code")
        message = str(error.get("message") or "unknown error")
        data = error.get("data")
        # Geth and most clients use code 3 for reverts that carry data
        if code == 3 or "revert" in message.lower():
            return CallRevertedError(message, code=code, data=data)
        return cls(message, code=code, data=data)

    def __str__(self) -> str:
        base = super().__str__()
        if self.code is None:
            return f"RPC error: {base}"
        return f"RPC error {self.code}: {base}"


class CallRevertedError(RpcError):
    """An eth_call reverted on-chain"""


class EncodeError(EvmReaderError):
    """Call data could not be built for a function and its arguments"""


class DecodeError(EvmReaderError):
    """Return bytes could not be decoded against the supplied ABI"""
