"""Dialect-specific statement fragments for the destination database."""

from ctsync.models.table import quote_identifier


class SqlServerDialect:
    """SQL Server syntax for the few statements that differ between engines."""

    name: str = "mssql"

    def insert_returning(self, table: str, columns: list[str], id_column: str) -> str:
        """INSERT statement that returns the generated identity as a one-row result."""
        column_list = ", ".join(quote_identifier(c) for c in columns)
        placeholders = ", ".join("?" for _ in columns)
        return (
            f"INSERT INTO {table} ({column_list}) "
            f"OUTPUT INSERTED.{quote_identifier(id_column)} "
            f"VALUES ({placeholders})"
        )

    def identity_insert(self, table: str, enabled: bool) -> str | None:
        """Statement toggling explicit identity inserts, or None if unsupported."""
        return f"SET IDENTITY_INSERT {table} {'ON' if enabled else 'OFF'}"

    def control_table_ddl(self, schema: str) -> list[str]:
        """Idempotent DDL for the SyncControl and SyncLog tables."""
        control = f"{quote_identifier(schema)}.[SyncControl]"
        sync_log = f"{quote_identifier(schema)}.[SyncLog]"
        return [
            f"""
            IF OBJECT_ID(N'{control}', N'U') IS NULL
            CREATE TABLE {control} (
                TableName NVARCHAR(256) NOT NULL PRIMARY KEY,
                LastSyncVersion BIGINT NOT NULL DEFAULT 0,
                LastSyncTime DATETIME2 NULL,
                RowsInserted BIGINT NOT NULL DEFAULT 0,
                RowsUpdated BIGINT NOT NULL DEFAULT 0,
                RowsDeleted BIGINT NOT NULL DEFAULT 0
            )
            """,
            f"""
            IF OBJECT_ID(N'{sync_log}', N'U') IS NULL
            CREATE TABLE {sync_log} (
                LogID INT IDENTITY(1,1) NOT NULL PRIMARY KEY,
                SyncStartTime DATETIME2 NOT NULL,
                SyncEndTime DATETIME2 NULL,
                Status NVARCHAR(20) NOT NULL,
                TableName NVARCHAR(256) NULL,
                RowsProcessed INT NOT NULL DEFAULT 0,
                DurationSeconds INT NOT NULL DEFAULT 0,
                ErrorMessage NVARCHAR(MAX) NULL
            )
            """,
        ]
