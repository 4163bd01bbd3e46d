"""Scoped database connections and ODBC driver detection."""

from contextlib import closing, contextmanager
from typing import Any, Callable, Iterator, Sequence

import pyodbc
import structlog

log = structlog.stdlib.get_logger()

# Newest first
PREFERRED_DRIVERS: tuple[str, ...] = (
    "ODBC Driver 18 for SQL Server",
    "ODBC Driver 17 for SQL Server",
    "ODBC Driver 13 for SQL Server",
    "ODBC Driver 11 for SQL Server",
)

FALLBACK_DRIVERS: tuple[str, ...] = (
    "SQL Server Native Client 11.0",
    "SQL Server Native Client 10.0",
    "SQL Server",
)


def detect_odbc_driver(installed: list[str] | None = None) -> str:
    """
    Pick the best installed SQL Server ODBC driver.

    Args:
        installed: Driver names to choose from (defaults to pyodbc.drivers())

    Returns:
        ODBC driver name

    Raises:
        RuntimeError: If no SQL Server driver is installed
    """
    drivers = list(installed) if installed is not None else pyodbc.drivers()
    log.debug("available_odbc_drivers", drivers=drivers)

    for driver in PREFERRED_DRIVERS:
        if driver in drivers:
            log.info("using_odbc_driver", driver=driver)
            return driver

    for driver in FALLBACK_DRIVERS:
        if driver in drivers:
            log.warning("using_fallback_odbc_driver", driver=driver)
            return driver

    raise RuntimeError("No SQL Server ODBC driver found. Please install ODBC Driver 17 or 18.")


class ConnectionProvider:
    """Opens one short-lived connection per unit of work.

    Connections are never pooled or shared: ``connection()`` opens right
    before use, commits when the block exits normally, rolls back when it
    raises, and closes on every path.
    """

    def __init__(
        self,
        connection_string: str,
        command_timeout: int | None = None,
        connect: Callable[..., Any] = pyodbc.connect,
        name: str = "database",
    ):
        """
        Initialize connection provider.

        Args:
            connection_string: DB-API connection string passed to ``connect``
            command_timeout: Per-statement timeout in seconds (None leaves the driver default)
            connect: DB-API connect callable
            name: Label used in log events (e.g. "source", "destination")
        """
        self._connection_string = connection_string
        self._command_timeout = command_timeout
        self._connect = connect
        self.name = name

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Yield an open connection scoped to the ``with`` block."""
        conn = self._connect(self._connection_string, autocommit=False)
        try:
            if self._command_timeout is not None:
                conn.timeout = self._command_timeout
            yield conn
            conn.commit()
        except BaseException:
            try:
                conn.rollback()
            except Exception as e:
                log.warning("rollback_failed", database=self.name, error=str(e))
            raise
        finally:
            conn.close()


def run_statement(conn: Any, sql: str, params: Sequence[Any] = ()) -> int:
    """Execute one statement on ``conn`` and return the driver's row count."""
    with closing(conn.cursor()) as cursor:
        if params:
            cursor.execute(sql, tuple(params))
        else:
            cursor.execute(sql)
        return cursor.rowcount


def fetch_all(conn: Any, sql: str, params: Sequence[Any] = ()) -> list[Any]:
    """Execute a query on ``conn`` and return every row."""
    with closing(conn.cursor()) as cursor:
        if params:
            cursor.execute(sql, tuple(params))
        else:
            cursor.execute(sql)
        return cursor.fetchall()


def fetch_one(conn: Any, sql: str, params: Sequence[Any] = ()) -> Any | None:
    """Execute a query on ``conn`` and return its first row, or None."""
    with closing(conn.cursor()) as cursor:
        if params:
            cursor.execute(sql, tuple(params))
        else:
            cursor.execute(sql)
        return cursor.fetchone()
