"""Error types raised by the sync components."""


class SyncError(Exception):
    """Base class for sync failures."""


class SchemaError(SyncError):
    """Table, primary-key or column discovery failed."""


class VersionError(SyncError):
    """A change version could not be read, initialized or committed."""


class ChangeFetchError(SyncError):
    """The change window for a table could not be read."""


class ApplyError(SyncError):
    """A change could not be applied to the destination."""

    def __init__(self, message: str, statement: str | None = None):
        super().__init__(message)
        self.statement = statement


class FatalError(SyncError):
    """Failure outside the per-table boundary; aborts the whole run."""


class SyncInProgressError(SyncError):
    """A run was requested while another run is still executing."""
