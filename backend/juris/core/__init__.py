"""Core application configuration and utilities.

This package contains core functionality including:
- Configuration management (config.py)
- Error taxonomy (exceptions.py)
- Logging setup (logging.py)
"""

from juris.core.config import settings

__all__ = [
    "settings",
]
