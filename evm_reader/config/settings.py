"""
Global settings for the EVM reader
"""
import os
from typing import Final

# Multicall3 is deployed at the same address on most chains
DEFAULT_MULTICALL_ADDRESS: Final[str] = "0xcA11bde05977b3631167028862bE2a173976CA11"

# Client defaults
DEFAULT_RETRY_COUNT: Final[int] = 3
DEFAULT_RETRY_DELAY_MS: Final[int] = 1000
DEFAULT_TIMEOUT_MS: Final[int] = 30000
DEFAULT_RATE_LIMIT_PER_SECOND: Final[int] = 10

# Inclusive (min, max) bounds for client options
RETRY_COUNT_RANGE: Final[tuple[int, int]] = (0, 10)
RETRY_DELAY_MS_RANGE: Final[tuple[int, int]] = (100, 10000)
TIMEOUT_MS_RANGE: Final[tuple[int, int]] = (1000, 120000)
RATE_LIMIT_RANGE: Final[tuple[int, int]] = (1, 100)

# Sliding window used by the rate limiter, in seconds
RATE_LIMIT_WINDOW_SECONDS: Final[float] = 1.0

# Block tags accepted in a block selector
BLOCK_TAGS: Final[tuple[str, ...]] = ("latest", "safe", "finalized")
DEFAULT_BLOCK_TAG: Final[str] = "latest"

# Native balances are always formatted with 18 decimals
NATIVE_DECIMALS: Final[int] = 18

# Logging level
LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO").upper()
