"""Pydantic models for replicated tables and durable sync state."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def quote_identifier(identifier: str) -> str:
    """Bracket-quote a SQL Server identifier, doubling any closing bracket."""
    return "[" + identifier.replace("]", "]]") + "]"


class TableDescriptor(BaseModel):
    """A change-tracked source table."""

    model_config = ConfigDict(frozen=True)

    schema_name: str = Field(default=..., min_length=1, description="Owning schema")
    name: str = Field(default=..., min_length=1, description="Table name")

    @property
    def qualified_name(self) -> str:
        """Bracketed two-part name, also the key of the control row."""
        return f"{quote_identifier(self.schema_name)}.{quote_identifier(self.name)}"

    def __str__(self) -> str:
        return self.qualified_name


class ColumnDescriptor(BaseModel):
    """A single column of a tracked table, in physical order."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default=..., min_length=1, description="Column name")
    sql_type: str = Field(default=..., description="Source type name (e.g. int, nvarchar)")
    is_identity: bool = Field(default=False, description="True for IDENTITY columns")


class SyncState(BaseModel):
    """Durable replication bookmark for one table."""

    table_name: str = Field(default=..., description="Fully qualified table name")
    last_sync_version: int = Field(default=0, ge=0, description="Last committed change version")
    last_sync_time: datetime | None = Field(default=None, description="Time of the last commit")
    rows_inserted: int = Field(default=0, ge=0)
    rows_updated: int = Field(default=0, ge=0)
    rows_deleted: int = Field(default=0, ge=0)

    model_config = {
        "json_schema_extra": {
            "example": {
                "table_name": "[dbo].[Orders]",
                "last_sync_version": 13,
                "last_sync_time": "2024-01-15T14:30:00",
                "rows_inserted": 120,
                "rows_updated": 48,
                "rows_deleted": 3,
            }
        }
    }


class RunStatus(str, Enum):
    """Status values written to the run log."""

    RUNNING = "Running"
    SUCCESS = "Success"
    PARTIAL = "Partial"
    FAILED = "Failed"


class SyncLogEntry(BaseModel):
    """One row of the append-only run log."""

    log_id: int | None = Field(default=None, description="Identifier assigned by the store")
    start_time: datetime = Field(default=...)
    end_time: datetime | None = Field(default=None)
    status: RunStatus = Field(default=RunStatus.RUNNING)
    table_name: str | None = Field(
        default=None, description="Set only on table-scoped failure entries"
    )
    rows_processed: int = Field(default=0, ge=0)
    duration_seconds: int = Field(default=0, ge=0)
    error_message: str | None = Field(default=None)
