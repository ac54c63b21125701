"""
Logging Configuration

Centralized logging using loguru with structured output.
"""

import sys
from loguru import logger

from config import get_settings

settings = get_settings()

# Remove default handler
logger.remove()

# Add console handler with custom format
logger.add(
    sys.stderr,
    format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>",
    level=settings.log_level,
    colorize=True,
)

# Add file handler for persistent logs
logger.add(
    f"{settings.log_dir}/insights_{{time:YYYY-MM-DD}}.log",
    rotation="10 MB",
    retention="7 days",
    format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]}:{function}:{line} | {message}",
    level=settings.log_level,
)

logger.configure(extra={"name": "app"})


def get_logger(name: str):
    """Get a logger with a specific name for component identification."""
    return logger.bind(name=name)


# Pre-configured loggers for different components
insights_logger = get_logger("insights")
llm_logger = get_logger("llm")
data_logger = get_logger("data")
cache_logger = get_logger("cache")
api_logger = get_logger("api")
