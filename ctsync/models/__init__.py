"""Data models for the change-tracking sync service."""

from ctsync.models.config import AppConfig, DatabaseConfig, LoggingConfig, SyncConfig
from ctsync.models.table import (
    ColumnDescriptor,
    RunStatus,
    SyncLogEntry,
    SyncState,
    TableDescriptor,
    quote_identifier,
)

__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "SyncConfig",
    "ColumnDescriptor",
    "RunStatus",
    "SyncLogEntry",
    "SyncState",
    "TableDescriptor",
    "quote_identifier",
]
