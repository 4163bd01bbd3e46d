"""Synchronization components for change-tracking replication."""

from ctsync.sync.change_applier import ChangeApplier
from ctsync.sync.change_fetcher import ChangeFetcher
from ctsync.sync.control_store import SyncControlStore, SyncRunLog
from ctsync.sync.errors import (
    ApplyError,
    ChangeFetchError,
    FatalError,
    SchemaError,
    SyncError,
    SyncInProgressError,
    VersionError,
)
from ctsync.sync.models import (
    ChangeCounts,
    ChangeOperation,
    ChangeRecord,
    RunReport,
    TableOutcome,
    TableSyncResult,
)
from ctsync.sync.orchestrator import SyncOrchestrator
from ctsync.sync.schema_inspector import SchemaInspector
from ctsync.sync.version_tracker import VersionTracker

__all__ = [
    "ApplyError",
    "ChangeApplier",
    "ChangeCounts",
    "ChangeFetchError",
    "ChangeFetcher",
    "ChangeOperation",
    "ChangeRecord",
    "FatalError",
    "RunReport",
    "SchemaError",
    "SchemaInspector",
    "SyncControlStore",
    "SyncError",
    "SyncInProgressError",
    "SyncOrchestrator",
    "SyncRunLog",
    "TableOutcome",
    "TableSyncResult",
    "VersionError",
    "VersionTracker",
]
