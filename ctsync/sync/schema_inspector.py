"""Discovery of change-tracked tables, key columns and column lists."""

import structlog

from ctsync.database.connection import ConnectionProvider, fetch_all
from ctsync.models.table import ColumnDescriptor, TableDescriptor
from ctsync.sync.errors import SchemaError

log = structlog.stdlib.get_logger()

TRACKED_TABLES_SQL = """
    SELECT SCHEMA_NAME(t.schema_id) AS SchemaName, t.name AS TableName
    FROM sys.tables t
    INNER JOIN sys.change_tracking_tables ct ON t.object_id = ct.object_id
    WHERE t.is_ms_shipped = 0
    ORDER BY t.name
"""

PRIMARY_KEY_SQL = """
    SELECT c.name
    FROM sys.indexes i
    INNER JOIN sys.index_columns ic ON i.object_id = ic.object_id AND i.index_id = ic.index_id
    INNER JOIN sys.columns c ON ic.object_id = c.object_id AND ic.column_id = c.column_id
    WHERE i.is_primary_key = 1
        AND i.object_id = OBJECT_ID(?)
    ORDER BY ic.key_ordinal
"""

COLUMNS_SQL = """
    SELECT c.name, t.name AS type_name, c.is_identity
    FROM sys.columns c
    INNER JOIN sys.types t ON c.user_type_id = t.user_type_id
    WHERE c.object_id = OBJECT_ID(?)
    ORDER BY c.column_id
"""


class SchemaInspector:
    """Read-only queries against the source catalog."""

    def __init__(self, source: ConnectionProvider):
        """
        Initialize schema inspector.

        Args:
            source: Connection provider for the source database
        """
        self._source = source

    def list_tracked_tables(self) -> list[TableDescriptor]:
        """
        List change-tracking-enabled user tables, ordered by name.

        Returns:
            Tracked tables (possibly empty)

        Raises:
            SchemaError: If the catalog query fails
        """
        try:
            rows = self._fetch_all(TRACKED_TABLES_SQL)
        except Exception as e:
            log.error("list_tracked_tables_failed", error=str(e))
            raise SchemaError(f"Failed to list change-tracked tables: {e}") from e

        tables = [TableDescriptor(schema_name=row[0], name=row[1]) for row in rows]
        log.info("tracked_tables_found", count=len(tables))
        return tables

    def get_primary_key(self, table: TableDescriptor) -> list[str]:
        """
        Get primary-key columns in key-ordinal order.

        An empty list means the table has no primary key and cannot be synced.

        Raises:
            SchemaError: If the catalog query fails
        """
        try:
            rows = self._fetch_all(PRIMARY_KEY_SQL, table.qualified_name)
        except Exception as e:
            log.error("get_primary_key_failed", table=str(table), error=str(e))
            raise SchemaError(f"Failed to read primary key of {table}: {e}") from e

        pk_columns = [row[0] for row in rows]
        log.debug("primary_key_loaded", table=str(table), pk_columns=pk_columns)
        return pk_columns

    def get_columns(self, table: TableDescriptor) -> list[ColumnDescriptor]:
        """
        Get all columns in physical (column_id) order.

        Raises:
            SchemaError: If the catalog query fails or the table has no columns
        """
        try:
            rows = self._fetch_all(COLUMNS_SQL, table.qualified_name)
        except Exception as e:
            log.error("get_columns_failed", table=str(table), error=str(e))
            raise SchemaError(f"Failed to read columns of {table}: {e}") from e

        if not rows:
            raise SchemaError(f"No columns found for {table}")

        columns = [
            ColumnDescriptor(name=row[0], sql_type=row[1], is_identity=bool(row[2]))
            for row in rows
        ]
        log.debug("columns_loaded", table=str(table), column_count=len(columns))
        return columns

    def _fetch_all(self, sql: str, *params: object) -> list:
        with self._source.connection() as conn:
            return fetch_all(conn, sql, params)
