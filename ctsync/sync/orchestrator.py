"""Sync orchestrator: drives one replication run across all tracked tables."""

import threading
import time
from datetime import datetime

import structlog

from ctsync.database.connection import ConnectionProvider
from ctsync.database.dialect import SqlServerDialect
from ctsync.models.table import RunStatus, TableDescriptor
from ctsync.sync.change_applier import ChangeApplier
from ctsync.sync.change_fetcher import ChangeFetcher
from ctsync.sync.control_store import SyncControlStore, SyncRunLog
from ctsync.sync.errors import SyncInProgressError, VersionError
from ctsync.sync.models import (
    ChangeCounts,
    RunReport,
    TableOutcome,
    TableSyncResult,
)
from ctsync.sync.schema_inspector import SchemaInspector
from ctsync.sync.version_tracker import VersionTracker

log = structlog.stdlib.get_logger()


class SyncOrchestrator:
    """Orchestrates replication from the source to the destination database.

    Tables are processed one at a time, in the order the inspector lists
    them. A failure inside one table is recorded and the run moves on; only
    errors outside the table loop abort the run.
    """

    def __init__(
        self,
        source: ConnectionProvider | None = None,
        destination: ConnectionProvider | None = None,
        control_schema: str = "dbo",
        dialect: SqlServerDialect | None = None,
        inspector: SchemaInspector | None = None,
        version_tracker: VersionTracker | None = None,
        fetcher: ChangeFetcher | None = None,
        applier: ChangeApplier | None = None,
        control_store: SyncControlStore | None = None,
        run_log: SyncRunLog | None = None,
    ):
        """
        Initialize sync orchestrator.

        Components not passed in are built from the source and destination
        providers.

        Args:
            source: Connection provider for the source database
            destination: Connection provider for the destination database
            control_schema: Destination schema of SyncControl and SyncLog
            dialect: Destination dialect (SQL Server by default)
            inspector: Optional SchemaInspector instance
            version_tracker: Optional VersionTracker instance
            fetcher: Optional ChangeFetcher instance
            applier: Optional ChangeApplier instance
            control_store: Optional SyncControlStore instance
            run_log: Optional SyncRunLog instance
        """
        needs_source = inspector is None or fetcher is None or version_tracker is None
        if needs_source and source is None:
            raise ValueError("source is required when source-side components are not provided")
        needs_destination = (
            applier is None or control_store is None or run_log is None
        )
        if needs_destination and destination is None:
            raise ValueError(
                "destination is required when destination-side components are not provided"
            )

        dialect = dialect or SqlServerDialect()
        self._inspector = inspector or SchemaInspector(source)
        self._fetcher = fetcher or ChangeFetcher(source)
        self._applier = applier or ChangeApplier(destination, dialect)
        self._control_store = control_store or SyncControlStore(
            destination, control_schema, dialect
        )
        self._run_log = run_log or SyncRunLog(destination, control_schema, dialect)
        self._version_tracker = version_tracker or VersionTracker(source, self._control_store)
        self._run_lock = threading.Lock()

        log.info("sync_orchestrator_initialized")

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def run(self) -> RunReport:
        """
        Run one sync across every change-tracked table.

        Returns:
            RunReport whose status is Success, Partial or Failed

        Raises:
            SyncInProgressError: If another run on this orchestrator is still executing
        """
        if not self._run_lock.acquire(blocking=False):
            log.warning("sync_run_already_in_progress")
            raise SyncInProgressError("A sync run is already in progress")
        try:
            return self._run()
        finally:
            self._run_lock.release()

    def _run(self) -> RunReport:
        start_time = datetime.now()
        started = time.monotonic()
        log.info("sync_run_started", start_time=start_time)

        run_id: int | None = None
        totals = ChangeCounts()
        results: list[TableSyncResult] = []

        try:
            run_id = self._run_log.open()

            tables = self._inspector.list_tracked_tables()
            log.info("tracked_tables_listed", run_id=run_id, table_count=len(tables))

            for table in tables:
                result = self.sync_table(table)
                results.append(result)

                if result.outcome is TableOutcome.COMMITTED:
                    totals = totals + result.counts
                elif result.outcome is TableOutcome.FAILED:
                    self._run_log.record_table_failure(table.qualified_name, result.reason or "")

            failures = sum(1 for r in results if r.outcome is TableOutcome.FAILED)
            status = RunStatus.SUCCESS if failures == 0 else RunStatus.PARTIAL
            elapsed = time.monotonic() - started

            self._run_log.close(run_id, status, totals.total, int(elapsed))

            log.info(
                "sync_run_completed",
                run_id=run_id,
                status=status.value,
                inserted=totals.inserted,
                updated=totals.updated,
                deleted=totals.deleted,
                errors=failures,
                duration_seconds=round(elapsed, 2),
            )

            return RunReport(
                run_id=run_id,
                status=status,
                start_time=start_time,
                end_time=datetime.now(),
                duration_seconds=elapsed,
                totals=totals,
                tables=results,
            )

        except Exception as e:
            elapsed = time.monotonic() - started
            log.exception("sync_run_failed", run_id=run_id, error=str(e))

            if run_id is not None:
                try:
                    self._run_log.close(
                        run_id,
                        RunStatus.FAILED,
                        totals.total,
                        int(elapsed),
                        error_message=str(e),
                    )
                except Exception as close_error:
                    log.error(
                        "run_log_failure_not_recorded", run_id=run_id, error=str(close_error)
                    )

            return RunReport(
                run_id=run_id,
                status=RunStatus.FAILED,
                start_time=start_time,
                end_time=datetime.now(),
                duration_seconds=elapsed,
                totals=totals,
                tables=results,
                error=str(e),
            )

    def sync_table(self, table: TableDescriptor) -> TableSyncResult:
        """
        Sync one table and report how it ended.

        Any error while syncing is caught here and returned as a failed
        result; nothing is retried.

        Args:
            table: Table to sync

        Returns:
            Committed, skipped or failed TableSyncResult
        """
        log.info("syncing_table", table=str(table))
        try:
            result = self._sync_table(table)
        except Exception as e:
            log.error("table_sync_failed", table=str(table), error=str(e), exc_info=True)
            return TableSyncResult.failed(table, str(e))

        if result.outcome is TableOutcome.COMMITTED:
            log.info(
                "table_synced",
                table=str(table),
                inserted=result.counts.inserted,
                updated=result.counts.updated,
                deleted=result.counts.deleted,
                rows_affected=result.rows_affected,
                version=result.to_version,
            )
        return result

    def _sync_table(self, table: TableDescriptor) -> TableSyncResult:
        last_version = self._version_tracker.get_last_sync_version(table)
        current_version = self._version_tracker.get_current_version()

        if current_version == last_version:
            log.info("no_changes", table=str(table), version=current_version)
            return TableSyncResult.skipped(
                table, "no changes", from_version=last_version, to_version=current_version
            )

        pk_columns = self._inspector.get_primary_key(table)
        if not pk_columns:
            log.warning("no_primary_key_skipping", table=str(table))
            return TableSyncResult.skipped(table, "no primary key")

        self._check_retention(table, last_version)

        columns = self._inspector.get_columns(table)
        changes = self._fetcher.get_changes(
            table, columns, pk_columns, last_version, current_version
        )
        if changes:
            log.info("processing_changes", table=str(table), change_count=len(changes))

        counts = ChangeCounts()
        rows_affected = 0
        for change in changes:
            rows_affected += self._applier.apply(table, change, columns, pk_columns)
            counts.record(change.operation)

        log.info("rows_affected", table=str(table), rows_affected=rows_affected)
        self._control_store.commit(table.qualified_name, current_version, counts)

        return TableSyncResult(
            table=table,
            outcome=TableOutcome.COMMITTED,
            counts=counts,
            rows_affected=rows_affected,
            from_version=last_version,
            to_version=current_version,
        )

    def _check_retention(self, table: TableDescriptor, last_version: int) -> None:
        min_valid = self._version_tracker.get_min_valid_version(table)
        if last_version >= min_valid:
            return
        if last_version == 0:
            log.warning(
                "initial_sync_window_truncated",
                table=str(table),
                min_valid_version=min_valid,
            )
            return
        raise VersionError(
            f"Last synced version {last_version} of {table} is older than the minimum "
            f"valid version {min_valid}; changes were purged and the table must be reseeded"
        )
