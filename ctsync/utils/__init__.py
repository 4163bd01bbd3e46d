"""Shared utilities for configuration and logging"""

from ctsync.utils.config_loader import ConfigLoader, ConfigurationError
from ctsync.utils.logging_config import DailyLogFileHandler, configure_logging

__all__ = ["ConfigLoader", "ConfigurationError", "DailyLogFileHandler", "configure_logging"]
