"""
Client configuration for RPC transports
"""
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from evm_reader.config.settings import (
    DEFAULT_RETRY_COUNT,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_RATE_LIMIT_PER_SECOND,
    RETRY_COUNT_RANGE,
    RETRY_DELAY_MS_RANGE,
    TIMEOUT_MS_RANGE,
    RATE_LIMIT_RANGE,
)
from evm_reader.core.errors import ValidationError


def _check_range(name: str, value: Any, bounds: tuple[int, int]) -> None:
    # bool is an int subclass but never a valid option value
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    low, high = bounds
    if not low <= value <= high:
        raise ValidationError(f"{name} must be between {low} and {high}, got {value}")


@dataclass(frozen=True)
class ClientConfig:
    """
    Retry, timeout and rate-limit knobs for a Transport.
    Immutable: a different configuration means a new Transport.
    """
    retry_count: int = DEFAULT_RETRY_COUNT
    retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    rate_limit_per_second: int = DEFAULT_RATE_LIMIT_PER_SECOND

    def __post_init__(self):
        _check_range("retry_count", self.retry_count, RETRY_COUNT_RANGE)
        _check_range("retry_delay_ms", self.retry_delay_ms, RETRY_DELAY_MS_RANGE)
        _check_range("timeout_ms", self.timeout_ms, TIMEOUT_MS_RANGE)
        _check_range("rate_limit_per_second", self.rate_limit_per_second, RATE_LIMIT_RANGE)

    @property
    def retry_delay(self) -> float:
        """Delay between attempts in seconds"""
        return self.retry_delay_ms / 1000

    @property
    def timeout(self) -> float:
        """Per-attempt timeout in seconds"""
        return self.timeout_ms / 1000

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None) -> "ClientConfig":
        """
        Build a config from the host's advanced options.

        Keys follow the host naming (retryCount, retryDelay, timeout,
        rateLimitPerSecond); missing or None values fall back to defaults.
        """
        options = options or {}

        def pick(key: str, default: int) -> Any:
            value = options.get(key)
            if value is None:
                return default
            # Hosts often hand numbers over as floats
            if isinstance(value, float) and value.is_integer():
                return int(value)
            return value

        return cls(
            retry_count=pick("retryCount", DEFAULT_RETRY_COUNT),
            retry_delay_ms=pick("retryDelay", DEFAULT_RETRY_DELAY_MS),
            timeout_ms=pick("timeout", DEFAULT_TIMEOUT_MS),
            rate_limit_per_second=pick("rateLimitPerSecond", DEFAULT_RATE_LIMIT_PER_SECOND),
        )


DEFAULT_CLIENT_CONFIG = ClientConfig()
