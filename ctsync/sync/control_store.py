"""Durable sync state on the destination: per-table bookmarks and the run log."""

from datetime import datetime

import structlog

from ctsync.database.connection import ConnectionProvider, fetch_all, fetch_one, run_statement
from ctsync.database.dialect import SqlServerDialect
from ctsync.models.table import RunStatus, SyncLogEntry, SyncState, quote_identifier
from ctsync.sync.errors import FatalError, VersionError
from ctsync.sync.models import ChangeCounts

log = structlog.stdlib.get_logger()


class SyncControlStore:
    """Reads and commits per-table replication bookmarks (``SyncControl``)."""

    def __init__(
        self,
        destination: ConnectionProvider,
        schema: str = "dbo",
        dialect: SqlServerDialect | None = None,
    ):
        """
        Initialize control store.

        Args:
            destination: Connection provider for the destination database
            schema: Schema that holds the SyncControl and SyncLog tables
            dialect: Destination dialect (SQL Server by default)
        """
        self._destination = destination
        self._schema = schema
        self._dialect = dialect or SqlServerDialect()
        self._table = f"{quote_identifier(schema)}.[SyncControl]"
        self._log_table = f"{quote_identifier(schema)}.[SyncLog]"

    def get_state(self, table_name: str) -> SyncState | None:
        """Load the bookmark for a table, or None if it has never been seen."""
        with self._destination.connection() as conn:
            return self._select_state(conn, table_name)

    def get_or_create(self, table_name: str) -> SyncState:
        """
        Load the bookmark for a table, creating it at version 0 on first sight.

        The read and the lazy insert share one connection and one transaction.

        Raises:
            VersionError: If the control row cannot be read or created
        """
        try:
            with self._destination.connection() as conn:
                state = self._select_state(conn, table_name)
                if state is not None:
                    return state

                now = datetime.now()
                run_statement(
                    conn,
                    f"INSERT INTO {self._table} "
                    "(TableName, LastSyncVersion, LastSyncTime, "
                    "RowsInserted, RowsUpdated, RowsDeleted) "
                    "VALUES (?, 0, ?, 0, 0, 0)",
                    (table_name, now),
                )
        except Exception as e:
            log.error("sync_state_load_failed", table=table_name, error=str(e))
            raise VersionError(f"Failed to load sync state for {table_name}: {e}") from e

        log.info("sync_state_initialized", table=table_name)
        return SyncState(table_name=table_name, last_sync_version=0, last_sync_time=now)

    def commit(self, table_name: str, new_version: int, delta: ChangeCounts) -> None:
        """
        Advance a table's bookmark and add to its counters in one statement.

        The update only applies while the stored version is not ahead of
        ``new_version``, so a bookmark can never move backwards.

        Args:
            table_name: Fully qualified table name
            new_version: Version the table is now synced up to
            delta: Changes applied in this batch

        Raises:
            VersionError: If the update fails or would regress the bookmark
        """
        try:
            with self._destination.connection() as conn:
                updated = run_statement(
                    conn,
                    f"UPDATE {self._table} "
                    "SET LastSyncVersion = ?, LastSyncTime = ?, "
                    "RowsInserted = RowsInserted + ?, "
                    "RowsUpdated = RowsUpdated + ?, "
                    "RowsDeleted = RowsDeleted + ? "
                    "WHERE TableName = ? AND LastSyncVersion <= ?",
                    (
                        new_version,
                        datetime.now(),
                        delta.inserted,
                        delta.updated,
                        delta.deleted,
                        table_name,
                        new_version,
                    ),
                )
        except Exception as e:
            log.error("sync_state_commit_failed", table=table_name, error=str(e))
            raise VersionError(f"Failed to commit sync state for {table_name}: {e}") from e

        if updated == 0:
            log.warning("sync_state_commit_rejected", table=table_name, version=new_version)
            raise VersionError(
                f"Sync state for {table_name} is missing or ahead of version {new_version}"
            )

        log.info(
            "sync_state_committed",
            table=table_name,
            version=new_version,
            inserted=delta.inserted,
            updated=delta.updated,
            deleted=delta.deleted,
        )

    def create_control_tables(self) -> None:
        """Create SyncControl and SyncLog if they do not exist yet."""
        with self._destination.connection() as conn:
            for ddl in self._dialect.control_table_ddl(self._schema):
                run_statement(conn, ddl)
        log.info("control_tables_ensured", schema=self._schema)

    def control_tables_exist(self) -> bool:
        """Check that both control tables can be queried."""
        try:
            with self._destination.connection() as conn:
                fetch_all(conn, f"SELECT 1 FROM {self._table} WHERE 1 = 0")
                fetch_all(conn, f"SELECT 1 FROM {self._log_table} WHERE 1 = 0")
        except Exception as e:
            log.warning("control_tables_missing", schema=self._schema, error=str(e))
            return False
        return True

    def _select_state(self, conn, table_name: str) -> SyncState | None:
        row = fetch_one(
            conn,
            "SELECT LastSyncVersion, LastSyncTime, RowsInserted, RowsUpdated, RowsDeleted "
            f"FROM {self._table} WHERE TableName = ?",
            (table_name,),
        )
        if row is None:
            return None
        return SyncState(
            table_name=table_name,
            last_sync_version=row[0] or 0,
            last_sync_time=row[1],
            rows_inserted=row[2] or 0,
            rows_updated=row[3] or 0,
            rows_deleted=row[4] or 0,
        )


class SyncRunLog:
    """Append-only audit trail of runs and table failures (``SyncLog``)."""

    def __init__(
        self,
        destination: ConnectionProvider,
        schema: str = "dbo",
        dialect: SqlServerDialect | None = None,
    ):
        self._destination = destination
        self._dialect = dialect or SqlServerDialect()
        self._table = f"{quote_identifier(schema)}.[SyncLog]"

    def open(self) -> int:
        """
        Insert the run row with status Running.

        Returns:
            LogID assigned by the destination

        Raises:
            FatalError: If the row cannot be written
        """
        sql = self._dialect.insert_returning(self._table, ["SyncStartTime", "Status"], "LogID")
        try:
            with self._destination.connection() as conn:
                row = fetch_one(conn, sql, (datetime.now(), RunStatus.RUNNING.value))
        except Exception as e:
            log.error("run_log_open_failed", error=str(e))
            raise FatalError(f"Failed to open run log: {e}") from e

        if row is None or row[0] is None:
            raise FatalError("Run log insert returned no LogID")

        run_id = int(row[0])
        log.info("run_log_opened", run_id=run_id)
        return run_id

    def close(
        self,
        run_id: int,
        status: RunStatus,
        rows_processed: int = 0,
        duration_seconds: int = 0,
        error_message: str | None = None,
    ) -> None:
        """
        Finish the run row with its final status and totals.

        Raises:
            FatalError: If the row cannot be updated
        """
        try:
            with self._destination.connection() as conn:
                run_statement(
                    conn,
                    f"UPDATE {self._table} "
                    "SET SyncEndTime = ?, Status = ?, RowsProcessed = ?, "
                    "DurationSeconds = ?, ErrorMessage = ? "
                    "WHERE LogID = ?",
                    (
                        datetime.now(),
                        status.value,
                        rows_processed,
                        duration_seconds,
                        error_message,
                        run_id,
                    ),
                )
        except Exception as e:
            log.error("run_log_close_failed", run_id=run_id, error=str(e))
            raise FatalError(f"Failed to close run log {run_id}: {e}") from e

        log.info("run_log_closed", run_id=run_id, status=status.value)

    def record_table_failure(self, table_name: str, error_message: str) -> None:
        """
        Append a failure row for one table; the run row stays open.

        Raises:
            FatalError: If the row cannot be written
        """
        now = datetime.now()
        try:
            with self._destination.connection() as conn:
                run_statement(
                    conn,
                    f"INSERT INTO {self._table} "
                    "(SyncStartTime, SyncEndTime, Status, TableName, RowsProcessed, "
                    "DurationSeconds, ErrorMessage) "
                    "VALUES (?, ?, ?, ?, 0, 0, ?)",
                    (now, now, RunStatus.FAILED.value, table_name, error_message),
                )
        except Exception as e:
            log.error("table_failure_log_failed", table=table_name, error=str(e))
            raise FatalError(f"Failed to record failure of {table_name}: {e}") from e

    def get_entry(self, log_id: int) -> SyncLogEntry | None:
        """Read one run-log row back."""
        with self._destination.connection() as conn:
            row = fetch_one(
                conn,
                "SELECT LogID, SyncStartTime, SyncEndTime, Status, TableName, "
                "RowsProcessed, DurationSeconds, ErrorMessage "
                f"FROM {self._table} WHERE LogID = ?",
                (log_id,),
            )
        if row is None:
            return None
        return self._to_entry(row)

    def failures_since(self, log_id: int) -> list[SyncLogEntry]:
        """Table failure rows appended after the given run row."""
        with self._destination.connection() as conn:
            rows = fetch_all(
                conn,
                "SELECT LogID, SyncStartTime, SyncEndTime, Status, TableName, "
                "RowsProcessed, DurationSeconds, ErrorMessage "
                f"FROM {self._table} WHERE LogID > ? AND TableName IS NOT NULL ORDER BY LogID",
                (log_id,),
            )
        return [self._to_entry(row) for row in rows]

    @staticmethod
    def _to_entry(row) -> SyncLogEntry:
        return SyncLogEntry(
            log_id=row[0],
            start_time=row[1],
            end_time=row[2],
            status=RunStatus(row[3]),
            table_name=row[4],
            rows_processed=row[5] or 0,
            duration_seconds=row[6] or 0,
            error_message=row[7],
        )
