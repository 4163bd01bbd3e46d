"""Database connectivity for source and destination servers."""

from ctsync.database.connection import (
    ConnectionProvider,
    detect_odbc_driver,
    fetch_all,
    fetch_one,
    run_statement,
)
from ctsync.database.dialect import SqlServerDialect

__all__ = [
    "ConnectionProvider",
    "SqlServerDialect",
    "detect_odbc_driver",
    "fetch_all",
    "fetch_one",
    "run_statement",
]
