"""
Core package for configuration, logging, and shared exceptions.
"""

from leadcrm.core.config import Settings, settings
from leadcrm.core.logging import configure_structlog, get_structlog_logger

__all__ = [
    "Settings",
    "settings",
    "configure_structlog",
    "get_structlog_logger",
]
