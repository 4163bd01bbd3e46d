"""Applying individual change records to the destination database."""

from typing import Any, Sequence

import structlog

from ctsync.database.connection import ConnectionProvider, fetch_one, run_statement
from ctsync.database.dialect import SqlServerDialect
from ctsync.models.table import ColumnDescriptor, TableDescriptor
from ctsync.sync.change_fetcher import non_key_columns
from ctsync.sync.errors import ApplyError
from ctsync.sync.models import ChangeOperation, ChangeRecord
from ctsync.sync.sql import SqlStatement, assignment_list, key_predicate, quote_identifier

log = structlog.stdlib.get_logger()


class ChangeApplier:
    """Writes one change at a time, each on its own destination connection."""

    def __init__(self, destination: ConnectionProvider, dialect: SqlServerDialect | None = None):
        """
        Initialize change applier.

        Args:
            destination: Connection provider for the destination database
            dialect: Destination dialect (SQL Server by default)
        """
        self._destination = destination
        self._dialect = dialect or SqlServerDialect()

    def apply(
        self,
        table: TableDescriptor,
        change: ChangeRecord,
        columns: Sequence[ColumnDescriptor],
        pk_columns: Sequence[str],
    ) -> int:
        """
        Apply a change record.

        Inserts are upserts: the feed may report an insert for a row the
        destination already holds (for instance after an earlier partial run),
        in which case the row is updated instead. Deleting a missing row is
        not an error.

        Args:
            table: Destination table (same name as the source table)
            change: Change to apply
            columns: All table columns in physical order
            pk_columns: Primary-key columns in key order

        Returns:
            Number of destination rows affected

        Raises:
            ApplyError: If a statement fails on the destination
        """
        if change.operation is ChangeOperation.INSERT:
            return self.insert_or_update(table, change, columns, pk_columns)
        if change.operation is ChangeOperation.UPDATE:
            return self.update(table, change, columns, pk_columns)
        return self.delete(table, change, pk_columns)

    def insert_or_update(
        self,
        table: TableDescriptor,
        change: ChangeRecord,
        columns: Sequence[ColumnDescriptor],
        pk_columns: Sequence[str],
    ) -> int:
        """Insert the row, or update it when a row with the same key exists."""
        predicate = key_predicate(pk_columns, change.key_values)
        exists_query = SqlStatement(
            f"SELECT 1 FROM {table.qualified_name} WHERE {predicate.text}", predicate.params
        )

        with self._destination.connection() as conn:
            if self._fetch(conn, table, exists_query) is not None:
                log.debug("insert_became_update", table=str(table), key=change.key_values)
                return self._update(conn, table, change, columns, pk_columns)

            row = change.row()
            column_names = [c.name for c in columns]
            insert = SqlStatement(
                f"INSERT INTO {table.qualified_name} "
                f"({', '.join(quote_identifier(c) for c in column_names)}) "
                f"VALUES ({', '.join('?' for _ in column_names)})",
                tuple(row.get(c) for c in column_names),
            )

            has_identity = any(c.is_identity for c in columns)
            if has_identity:
                self._set_identity_insert(conn, table, True)
            affected = self._execute(conn, table, insert)
            # IDENTITY_INSERT is session-scoped; closing the connection also clears it
            if has_identity:
                self._set_identity_insert(conn, table, False)
            return affected

    def update(
        self,
        table: TableDescriptor,
        change: ChangeRecord,
        columns: Sequence[ColumnDescriptor],
        pk_columns: Sequence[str],
    ) -> int:
        """Set every non-key column of the keyed row to the change's values."""
        with self._destination.connection() as conn:
            return self._update(conn, table, change, columns, pk_columns)

    def delete(
        self, table: TableDescriptor, change: ChangeRecord, pk_columns: Sequence[str]
    ) -> int:
        """Delete the keyed row; zero rows affected when it is already gone."""
        predicate = key_predicate(pk_columns, change.key_values)
        statement = SqlStatement(
            f"DELETE FROM {table.qualified_name} WHERE {predicate.text}", predicate.params
        )
        with self._destination.connection() as conn:
            affected = self._execute(conn, table, statement)
        if affected == 0:
            log.debug("delete_target_absent", table=str(table), key=change.key_values)
        return affected

    def _update(
        self,
        conn: Any,
        table: TableDescriptor,
        change: ChangeRecord,
        columns: Sequence[ColumnDescriptor],
        pk_columns: Sequence[str],
    ) -> int:
        value_columns = non_key_columns(columns, pk_columns)
        if not value_columns:
            # key-only table: the keyed row already is the whole row
            return 0

        assignments = assignment_list(value_columns, change.values)
        predicate = key_predicate(pk_columns, change.key_values)
        statement = SqlStatement(
            f"UPDATE {table.qualified_name} SET {assignments.text} WHERE {predicate.text}",
            assignments.params + predicate.params,
        )
        return self._execute(conn, table, statement)

    def _set_identity_insert(self, conn: Any, table: TableDescriptor, enabled: bool) -> None:
        sql = self._dialect.identity_insert(table.qualified_name, enabled)
        if sql is not None:
            self._execute(conn, table, SqlStatement(sql))

    def _execute(self, conn: Any, table: TableDescriptor, statement: SqlStatement) -> int:
        log.debug("executing_statement", table=str(table), sql=statement.render())
        try:
            affected = run_statement(conn, statement.text, statement.params)
        except Exception as e:
            rendered = statement.render()
            log.error("apply_statement_failed", table=str(table), sql=rendered, error=str(e))
            raise ApplyError(f"Failed to apply change to {table}: {e}", statement=rendered) from e
        return max(affected, 0)

    def _fetch(self, conn: Any, table: TableDescriptor, statement: SqlStatement) -> Any | None:
        try:
            return fetch_one(conn, statement.text, statement.params)
        except Exception as e:
            rendered = statement.render()
            log.error("apply_statement_failed", table=str(table), sql=rendered, error=str(e))
            raise ApplyError(f"Failed to apply change to {table}: {e}", statement=rendered) from e
