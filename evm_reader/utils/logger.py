"""
Logging utilities
"""
import logging
from rich.logging import RichHandler
from rich.console import Console

from evm_reader.config.settings import LOG_LEVEL

# Logs go to stderr so stdout stays clean for JSON output
console = Console(stderr=True)


def setup_logging(level: str = LOG_LEVEL):
    """Configure logging with rich handler"""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console,
                rich_tracebacks=True,
                show_path=False,
                markup=False
            )
        ]
    )

    # Reduce noise from external libraries
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance"""
    return logging.getLogger(name)
