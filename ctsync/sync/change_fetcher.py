"""Reading the ordered change window of a table from the change-tracking feed."""

from contextlib import closing
from typing import Sequence

import structlog

from ctsync.database.connection import ConnectionProvider
from ctsync.models.table import ColumnDescriptor, TableDescriptor
from ctsync.sync.errors import ChangeFetchError, VersionError
from ctsync.sync.models import ChangeOperation, ChangeRecord
from ctsync.sync.sql import SqlStatement, quote_identifier

log = structlog.stdlib.get_logger()


def non_key_columns(columns: Sequence[ColumnDescriptor], pk_columns: Sequence[str]) -> list[str]:
    """Column names that are not part of the primary key, in physical order."""
    keys = {pk.casefold() for pk in pk_columns}
    return [c.name for c in columns if c.name.casefold() not in keys]


class ChangeFetcher:
    """Computes the row changes of a table within a version window."""

    def __init__(self, source: ConnectionProvider):
        """
        Initialize change fetcher.

        Args:
            source: Connection provider for the source database
        """
        self._source = source

    def build_query(
        self,
        table: TableDescriptor,
        columns: Sequence[ColumnDescriptor],
        pk_columns: Sequence[str],
        from_version: int,
        to_version: int,
    ) -> SqlStatement:
        """
        Build the diff query for the window ``(from_version, to_version]``.

        The change feed drives a right outer join onto the current rows, so a
        deleted row still appears, with NULL non-key values. Results come back
        in feed version order, then key order.
        """
        table_name = table.qualified_name
        select_list = ["CT.SYS_CHANGE_OPERATION", "CT.SYS_CHANGE_VERSION"]
        select_list += [f"CT.{quote_identifier(pk)}" for pk in pk_columns]
        select_list += [f"T.{quote_identifier(c)}" for c in non_key_columns(columns, pk_columns)]
        join = " AND ".join(
            f"T.{quote_identifier(pk)} = CT.{quote_identifier(pk)}" for pk in pk_columns
        )
        order_by = ["CT.SYS_CHANGE_VERSION"] + [f"CT.{quote_identifier(pk)}" for pk in pk_columns]

        text = (
            f"SELECT {', '.join(select_list)} "
            f"FROM {table_name} AS T "
            f"RIGHT OUTER JOIN CHANGETABLE(CHANGES {table_name}, ?) AS CT ON {join} "
            "WHERE CT.SYS_CHANGE_VERSION <= ? "
            f"ORDER BY {', '.join(order_by)}"
        )
        return SqlStatement(text, (from_version, to_version))

    def get_changes(
        self,
        table: TableDescriptor,
        columns: Sequence[ColumnDescriptor],
        pk_columns: Sequence[str],
        from_version: int,
        to_version: int,
    ) -> list[ChangeRecord]:
        """
        Get the changes of a table after ``from_version`` up to ``to_version``.

        Args:
            table: Table to read
            columns: All table columns in physical order
            pk_columns: Primary-key columns in key order
            from_version: Last synced version (exclusive)
            to_version: Current version (inclusive)

        Returns:
            Change records in feed order; empty when the window is empty

        Raises:
            VersionError: If ``to_version`` is behind ``from_version``
            ChangeFetchError: If the query fails or returns an unknown operation
        """
        if from_version == to_version:
            return []
        if to_version < from_version:
            raise VersionError(
                f"Current version {to_version} is behind last synced version "
                f"{from_version} for {table}"
            )
        if not pk_columns:
            raise ChangeFetchError(f"Cannot fetch changes for {table} without a primary key")

        statement = self.build_query(table, columns, pk_columns, from_version, to_version)
        log.debug("fetching_changes", table=str(table), sql=statement.render())

        try:
            with self._source.connection() as conn:
                with closing(conn.cursor()) as cursor:
                    cursor.execute(statement.text, statement.params)
                    rows = cursor.fetchall()
        except Exception as e:
            log.error("fetch_changes_failed", table=str(table), error=str(e))
            raise ChangeFetchError(f"Failed to fetch changes for {table}: {e}") from e

        value_columns = non_key_columns(columns, pk_columns)
        changes = [self._to_change(table, row, pk_columns, value_columns) for row in rows]

        log.info(
            "changes_fetched",
            table=str(table),
            from_version=from_version,
            to_version=to_version,
            change_count=len(changes),
        )
        return changes

    def _to_change(
        self,
        table: TableDescriptor,
        row: Sequence,
        pk_columns: Sequence[str],
        value_columns: Sequence[str],
    ) -> ChangeRecord:
        tag = (row[0] or "").strip()
        try:
            operation = ChangeOperation(tag)
        except ValueError as e:
            raise ChangeFetchError(f"Unknown change operation {tag!r} for {table}") from e

        key_start = 2
        value_start = key_start + len(pk_columns)
        key_values = dict(zip(pk_columns, row[key_start:value_start]))

        if operation is ChangeOperation.DELETE:
            values = {}
        else:
            values = dict(zip(value_columns, row[value_start:]))

        return ChangeRecord(
            operation=operation,
            version=int(row[1]),
            key_values=key_values,
            values=values,
        )
