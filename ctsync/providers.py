"""Centralized provider module for source and destination connections.

This module provides factory functions that turn configuration into
ConnectionProvider instances. Swap the ``connect`` callable here to use a
different DB-API driver without touching the sync components.

Default implementation:
- pyodbc with the newest installed "ODBC Driver NN for SQL Server"
"""

from typing import Any, Callable

import pyodbc
import structlog

from ctsync.database.connection import ConnectionProvider, detect_odbc_driver
from ctsync.models.config import AppConfig, DatabaseConfig
from ctsync.sync.orchestrator import SyncOrchestrator

log = structlog.stdlib.get_logger()


def get_connection_provider(
    db_config: DatabaseConfig,
    name: str,
    connect: Callable[..., Any] = pyodbc.connect,
    installed_drivers: list[str] | None = None,
) -> ConnectionProvider:
    """Get a connection provider for one database.

    Args:
        db_config: Server, database, credentials and timeouts
        name: Label for log events ("source" or "destination")
        connect: DB-API connect callable
        installed_drivers: Optional driver list used instead of pyodbc.drivers()

    Returns:
        ConnectionProvider bound to the rendered connection string

    Raises:
        RuntimeError: If no usable ODBC driver can be found
    """
    driver = db_config.driver or detect_odbc_driver(installed_drivers)

    log.info(
        "initializing_connection_provider",
        name=name,
        server=db_config.server,
        database=db_config.database,
        driver=driver,
        sql_login=db_config.uses_sql_login,
    )

    return ConnectionProvider(
        connection_string=db_config.connection_string(driver),
        command_timeout=db_config.command_timeout,
        connect=connect,
        name=name,
    )


def get_sync_orchestrator(
    config: AppConfig,
    connect: Callable[..., Any] = pyodbc.connect,
    installed_drivers: list[str] | None = None,
) -> SyncOrchestrator:
    """Get a SyncOrchestrator wired to the configured source and destination.

    Args:
        config: Application configuration
        connect: DB-API connect callable shared by both providers
        installed_drivers: Optional driver list used instead of pyodbc.drivers()

    Returns:
        SyncOrchestrator with default components
    """
    source = get_connection_provider(config.source, "source", connect, installed_drivers)
    destination = get_connection_provider(
        config.destination, "destination", connect, installed_drivers
    )
    return SyncOrchestrator(
        source=source,
        destination=destination,
        control_schema=config.sync.control_schema,
    )
