"""
Shared fixtures for the sync tests.

The destination is an in-memory SQLite database with a ``dbo`` schema
attached, reached through the real ConnectionProvider. The source is a
scripted stand-in that answers the catalog and change-tracking queries from
in-memory tables.
"""

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

import pytest

from ctsync.database.connection import ConnectionProvider
from ctsync.database.dialect import SqlServerDialect
from ctsync.models.table import ColumnDescriptor, TableDescriptor, quote_identifier
from ctsync.sync.control_store import SyncControlStore, SyncRunLog

# Stored as ISO text; pydantic parses it back into datetime
sqlite3.register_adapter(datetime, lambda value: value.isoformat())


class SqliteDialect(SqlServerDialect):
    """SQLite spellings of the destination-specific statements."""

    name = "sqlite"

    def insert_returning(self, table: str, columns: list[str], id_column: str) -> str:
        column_list = ", ".join(quote_identifier(c) for c in columns)
        placeholders = ", ".join("?" for _ in columns)
        return (
            f"INSERT INTO {table} ({column_list}) VALUES ({placeholders}) "
            f"RETURNING {quote_identifier(id_column)}"
        )

    def identity_insert(self, table: str, enabled: bool) -> str | None:
        return None

    def control_table_ddl(self, schema: str) -> list[str]:
        prefix = quote_identifier(schema)
        return [
            f"""
            CREATE TABLE IF NOT EXISTS {prefix}.[SyncControl] (
                TableName TEXT NOT NULL PRIMARY KEY,
                LastSyncVersion INTEGER NOT NULL DEFAULT 0,
                LastSyncTime TEXT,
                RowsInserted INTEGER NOT NULL DEFAULT 0,
                RowsUpdated INTEGER NOT NULL DEFAULT 0,
                RowsDeleted INTEGER NOT NULL DEFAULT 0
            )
            """,
            f"""
            CREATE TABLE IF NOT EXISTS {prefix}.[SyncLog] (
                LogID INTEGER PRIMARY KEY AUTOINCREMENT,
                SyncStartTime TEXT NOT NULL,
                SyncEndTime TEXT,
                Status TEXT NOT NULL,
                TableName TEXT,
                RowsProcessed INTEGER NOT NULL DEFAULT 0,
                DurationSeconds INTEGER NOT NULL DEFAULT 0,
                ErrorMessage TEXT
            )
            """,
        ]


class SharedConnection:
    """Hands out the one in-memory database; close() only counts."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn
        self.timeout: int | None = None
        self.close_count = 0
        self.commit_count = 0
        self.rollback_count = 0

    def cursor(self) -> sqlite3.Cursor:
        return self._conn.cursor()

    def commit(self) -> None:
        self.commit_count += 1
        self._conn.commit()

    def rollback(self) -> None:
        self.rollback_count += 1
        self._conn.rollback()

    def close(self) -> None:
        self.close_count += 1


@dataclass
class FakeTable:
    descriptor: TableDescriptor
    pk: list[str]
    columns: list[ColumnDescriptor]
    # (operation, version, *key values, *non-key values)
    changes: list[tuple] = field(default_factory=list)


class FakeSourceCursor:
    def __init__(self, source: "FakeSource"):
        self._source = source
        self._rows: list[tuple] = []
        self.rowcount = -1

    def execute(self, sql: str, params: tuple = ()) -> "FakeSourceCursor":
        self._rows = self._source.respond(sql, tuple(params))
        return self

    def fetchall(self) -> list[tuple]:
        return list(self._rows)

    def fetchone(self) -> tuple | None:
        return self._rows[0] if self._rows else None

    def close(self) -> None:
        pass


class FakeSourceConnection:
    def __init__(self, source: "FakeSource"):
        self._source = source
        self.timeout: int | None = None

    def cursor(self) -> FakeSourceCursor:
        return FakeSourceCursor(self._source)

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass

    def close(self) -> None:
        self._source.closed += 1


class FakeSource:
    """Answers source catalog and change-tracking queries from in-memory tables."""

    def __init__(self) -> None:
        self.current_version: int | None = 0
        self.min_valid_versions: dict[str, int] = {}
        self.tables: dict[str, FakeTable] = {}
        self.failures: dict[str, Exception] = {}
        self.executed: list[tuple[str, tuple]] = []
        self.connects = 0
        self.closed = 0

    def add_table(
        self,
        schema: str,
        name: str,
        pk: list[str],
        columns: list[ColumnDescriptor],
        changes: list[tuple] | None = None,
    ) -> TableDescriptor:
        descriptor = TableDescriptor(schema_name=schema, name=name)
        self.tables[descriptor.qualified_name] = FakeTable(descriptor, pk, columns, changes or [])
        return descriptor

    def fail_when(self, fragment: str, error: Exception) -> None:
        """Raise ``error`` for any statement containing ``fragment``."""
        self.failures[fragment] = error

    def connect(self, *args: Any, **kwargs: Any) -> FakeSourceConnection:
        self.connects += 1
        return FakeSourceConnection(self)

    def statements_containing(self, fragment: str) -> list[tuple[str, tuple]]:
        return [(sql, params) for sql, params in self.executed if fragment in sql]

    def respond(self, sql: str, params: tuple) -> list[tuple]:
        self.executed.append((sql, params))
        for fragment, error in self.failures.items():
            if fragment in sql:
                raise error

        if "sys.change_tracking_tables" in sql:
            tables = sorted(self.tables.values(), key=lambda t: t.descriptor.name)
            return [(t.descriptor.schema_name, t.descriptor.name) for t in tables]
        if "CHANGE_TRACKING_CURRENT_VERSION" in sql:
            return [(self.current_version,)]
        if "CHANGE_TRACKING_MIN_VALID_VERSION" in sql:
            return [(self.min_valid_versions.get(params[0], 0),)]
        if "is_primary_key" in sql:
            table = self.tables.get(params[0])
            return [(c,) for c in table.pk] if table else []
        if "sys.columns" in sql:
            table = self.tables.get(params[0])
            if table is None:
                return []
            return [(c.name, c.sql_type, c.is_identity) for c in table.columns]
        if "CHANGETABLE" in sql:
            table = next(t for qn, t in self.tables.items() if f"CHANGES {qn}," in sql)
            from_version, to_version = params
            window = [c for c in table.changes if from_version < c[1] <= to_version]
            return sorted(window, key=lambda c: c[1])
        raise AssertionError(f"Unexpected source statement: {sql}")


@pytest.fixture
def sqlite_db() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.execute("ATTACH DATABASE ':memory:' AS dbo")
    yield conn
    conn.close()


@pytest.fixture
def shared_connection(sqlite_db: sqlite3.Connection) -> SharedConnection:
    return SharedConnection(sqlite_db)


@pytest.fixture
def destination(shared_connection: SharedConnection) -> ConnectionProvider:
    return ConnectionProvider(
        "sqlite-memory",
        command_timeout=30,
        connect=lambda *args, **kwargs: shared_connection,
        name="destination",
    )


@pytest.fixture
def dialect() -> SqliteDialect:
    return SqliteDialect()


@pytest.fixture
def control_store(destination: ConnectionProvider, dialect: SqliteDialect) -> SyncControlStore:
    store = SyncControlStore(destination, schema="dbo", dialect=dialect)
    store.create_control_tables()
    return store


@pytest.fixture
def run_log(
    destination: ConnectionProvider, dialect: SqliteDialect, control_store: SyncControlStore
) -> SyncRunLog:
    return SyncRunLog(destination, schema="dbo", dialect=dialect)


@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def source(fake_source: FakeSource) -> ConnectionProvider:
    return ConnectionProvider("fake-source", connect=fake_source.connect, name="source")


@pytest.fixture
def make_destination_table(sqlite_db: sqlite3.Connection) -> Callable[..., TableDescriptor]:
    """Create a table in the attached dbo schema."""

    def _make(name: str, ddl_columns: str, rows: list[tuple] = ()) -> TableDescriptor:
        table = TableDescriptor(schema_name="dbo", name=name)
        sqlite_db.execute(f"CREATE TABLE {table.qualified_name} ({ddl_columns})")
        for row in rows:
            placeholders = ", ".join("?" for _ in row)
            sqlite_db.execute(f"INSERT INTO {table.qualified_name} VALUES ({placeholders})", row)
        sqlite_db.commit()
        return table

    return _make


@pytest.fixture
def orders_table(make_destination_table: Callable[..., TableDescriptor]) -> TableDescriptor:
    return make_destination_table(
        "Orders",
        "[OrderId] INTEGER PRIMARY KEY, [Status] TEXT, [Amount] REAL",
        rows=[(7, "Cancelled", 12.5)],
    )
