"""Data models for synchronization operations."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from ctsync.models.table import RunStatus, TableDescriptor


class ChangeOperation(str, Enum):
    """Operation tag reported by the change-tracking feed."""

    INSERT = "I"
    UPDATE = "U"
    DELETE = "D"


class ChangeRecord(BaseModel):
    """One row change between two versions, in feed order."""

    operation: ChangeOperation = Field(default=..., description="Insert, update or delete")
    version: int = Field(default=..., ge=0, description="Feed change version of this row")
    key_values: dict[str, Any] = Field(
        default_factory=dict, description="Primary-key column values"
    )
    values: dict[str, Any] = Field(
        default_factory=dict, description="Non-key column values (empty for deletes)"
    )

    def row(self) -> dict[str, Any]:
        """Key and non-key values merged into one mapping."""
        return {**self.values, **self.key_values}


class ChangeCounts(BaseModel):
    """Per-operation change counts for one table or one run."""

    inserted: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    deleted: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.deleted

    def record(self, operation: ChangeOperation) -> None:
        """Count one applied change."""
        if operation is ChangeOperation.INSERT:
            self.inserted += 1
        elif operation is ChangeOperation.UPDATE:
            self.updated += 1
        else:
            self.deleted += 1

    def __add__(self, other: "ChangeCounts") -> "ChangeCounts":
        return ChangeCounts(
            inserted=self.inserted + other.inserted,
            updated=self.updated + other.updated,
            deleted=self.deleted + other.deleted,
        )


class TableOutcome(str, Enum):
    """How a table's sync attempt ended."""

    COMMITTED = "committed"
    SKIPPED = "skipped"
    FAILED = "failed"


class TableSyncResult(BaseModel):
    """Tagged result of syncing one table."""

    table: TableDescriptor = Field(default=...)
    outcome: TableOutcome = Field(default=...)
    counts: ChangeCounts = Field(default_factory=ChangeCounts)
    rows_affected: int = Field(default=0, ge=0, description="Rows touched on the destination")
    from_version: int | None = Field(default=None)
    to_version: int | None = Field(default=None)
    reason: str | None = Field(default=None, description="Skip reason or error message")

    @classmethod
    def skipped(cls, table: TableDescriptor, reason: str, **kwargs: Any) -> "TableSyncResult":
        return cls(table=table, outcome=TableOutcome.SKIPPED, reason=reason, **kwargs)

    @classmethod
    def failed(cls, table: TableDescriptor, error: str) -> "TableSyncResult":
        return cls(table=table, outcome=TableOutcome.FAILED, reason=error)


class RunReport(BaseModel):
    """Report of one end-to-end sync run."""

    run_id: int | None = Field(default=None, description="SyncLog id of the run row")
    status: RunStatus = Field(default=...)
    start_time: datetime = Field(default=...)
    end_time: datetime = Field(default=...)
    duration_seconds: float = Field(default=0.0, ge=0.0)
    totals: ChangeCounts = Field(default_factory=ChangeCounts)
    tables: list[TableSyncResult] = Field(default_factory=list)
    error: str | None = Field(default=None, description="Fatal error message")

    @property
    def success(self) -> bool:
        """True only when every table committed or was skipped."""
        return self.status is RunStatus.SUCCESS

    @property
    def failed_tables(self) -> list[TableSyncResult]:
        return [t for t in self.tables if t.outcome is TableOutcome.FAILED]

    @property
    def rows_processed(self) -> int:
        return self.totals.total
