"""Change-version tracking for maintaining synchronization state."""

import structlog

from ctsync.database.connection import ConnectionProvider, fetch_one
from ctsync.models.table import TableDescriptor
from ctsync.sync.control_store import SyncControlStore
from ctsync.sync.errors import VersionError

log = structlog.stdlib.get_logger()


class VersionTracker:
    """Reads the source's change versions and the destination's bookmarks."""

    def __init__(self, source: ConnectionProvider, control_store: SyncControlStore):
        """
        Initialize version tracker.

        Args:
            source: Connection provider for the source database
            control_store: Store holding per-table bookmarks on the destination
        """
        self._source = source
        self._control_store = control_store

    def get_last_sync_version(self, table: TableDescriptor) -> int:
        """
        Get the version a table was last synced to.

        A table seen for the first time gets a control row at version 0.
        Existing bookmarks are never modified here.

        Raises:
            VersionError: If the bookmark cannot be read or created
        """
        state = self._control_store.get_or_create(table.qualified_name)
        log.debug("last_sync_version", table=str(table), version=state.last_sync_version)
        return state.last_sync_version

    def get_current_version(self) -> int:
        """
        Get the source database's current change-tracking version.

        Returns:
            Current version, or 0 when change tracking reports none

        Raises:
            VersionError: If the version cannot be read
        """
        value = self._scalar("SELECT CHANGE_TRACKING_CURRENT_VERSION()", "current version")
        version = int(value) if value is not None else 0
        log.debug("current_version", version=version)
        return version

    def get_min_valid_version(self, table: TableDescriptor) -> int:
        """
        Get the oldest version whose changes are still retained for a table.

        Raises:
            VersionError: If the version cannot be read
        """
        value = self._scalar(
            "SELECT CHANGE_TRACKING_MIN_VALID_VERSION(OBJECT_ID(?))",
            f"minimum valid version of {table}",
            table.qualified_name,
        )
        return int(value) if value is not None else 0

    def _scalar(self, sql: str, what: str, *params: object):
        try:
            with self._source.connection() as conn:
                row = fetch_one(conn, sql, params)
        except Exception as e:
            log.error("version_read_failed", what=what, error=str(e))
            raise VersionError(f"Failed to read {what}: {e}") from e
        return row[0] if row is not None else None
