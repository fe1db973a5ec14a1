"""
Loguru configuration shared by the server and the CLI drivers.
"""

import sys

from loguru import logger

SERVER_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
# Step-by-step output of the test drivers
CLI_FORMAT = "<level>{message}</level>"


def configure_logging(level: str = "INFO", fmt: str = SERVER_FORMAT) -> None:
    """Replace loguru's default handler with a single colourised stderr handler."""
    logger.remove()
    logger.add(sys.stderr, format=fmt, level=level.upper(), colorize=True)
