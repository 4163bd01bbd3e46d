"""Tests for applying change records to the destination."""

from unittest.mock import MagicMock

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from ctsync.database.connection import ConnectionProvider
from ctsync.database.dialect import SqlServerDialect
from ctsync.models.table import ColumnDescriptor, TableDescriptor
from ctsync.sync.change_applier import ChangeApplier
from ctsync.sync.errors import ApplyError
from ctsync.sync.models import ChangeOperation, ChangeRecord

PK = ["OrderId"]
ORDERS_COLUMNS = [
    ColumnDescriptor(name="OrderId", sql_type="int", is_identity=True),
    ColumnDescriptor(name="Status", sql_type="nvarchar"),
    ColumnDescriptor(name="Amount", sql_type="decimal"),
]


def insert(order_id, status, amount=1.0, version=1) -> ChangeRecord:
    return ChangeRecord(
        operation=ChangeOperation.INSERT,
        version=version,
        key_values={"OrderId": order_id},
        values={"Status": status, "Amount": amount},
    )


def update(order_id, status, amount=1.0, version=2) -> ChangeRecord:
    return ChangeRecord(
        operation=ChangeOperation.UPDATE,
        version=version,
        key_values={"OrderId": order_id},
        values={"Status": status, "Amount": amount},
    )


def delete(order_id, version=3) -> ChangeRecord:
    return ChangeRecord(
        operation=ChangeOperation.DELETE, version=version, key_values={"OrderId": order_id}
    )


def orders_rows(sqlite_db) -> list[tuple]:
    return sqlite_db.execute(
        "SELECT OrderId, Status, Amount FROM dbo.Orders ORDER BY OrderId"
    ).fetchall()


@pytest.fixture
def applier(destination, dialect) -> ChangeApplier:
    return ChangeApplier(destination, dialect)


class TestInsert:
    def test_inserts_all_columns_including_key(self, applier, orders_table, sqlite_db):
        affected = applier.apply(orders_table, insert(5, "New", 10.0), ORDERS_COLUMNS, PK)

        assert affected == 1
        assert orders_rows(sqlite_db) == [(5, "New", 10.0), (7, "Cancelled", 12.5)]

    def test_existing_key_becomes_update(self, applier, orders_table, sqlite_db):
        affected = applier.apply(orders_table, insert(7, "Reopened", 3.0), ORDERS_COLUMNS, PK)

        assert affected == 1
        assert orders_rows(sqlite_db) == [(7, "Reopened", 3.0)]

    def test_text_with_quotes_is_stored_verbatim(self, applier, orders_table, sqlite_db):
        applier.apply(orders_table, insert(8, "O'Brien's order"), ORDERS_COLUMNS, PK)

        assert (8, "O'Brien's order", 1.0) in orders_rows(sqlite_db)


class TestUpdate:
    def test_sets_every_non_key_column(self, applier, orders_table, sqlite_db):
        affected = applier.apply(orders_table, update(7, "Shipped", 99.0), ORDERS_COLUMNS, PK)

        assert affected == 1
        assert orders_rows(sqlite_db) == [(7, "Shipped", 99.0)]

    def test_missing_row_affects_nothing(self, applier, orders_table, sqlite_db):
        affected = applier.apply(orders_table, update(42, "Shipped"), ORDERS_COLUMNS, PK)

        assert affected == 0
        assert orders_rows(sqlite_db) == [(7, "Cancelled", 12.5)]

    def test_key_only_table_has_nothing_to_update(
        self, applier, make_destination_table, sqlite_db
    ):
        table = make_destination_table(
            "OrderTags", "[OrderId] INTEGER, [Tag] TEXT, PRIMARY KEY ([OrderId], [Tag])", [(1, "a")]
        )
        columns = [
            ColumnDescriptor(name="OrderId", sql_type="int"),
            ColumnDescriptor(name="Tag", sql_type="nvarchar"),
        ]
        change = ChangeRecord(
            operation=ChangeOperation.INSERT,
            version=1,
            key_values={"OrderId": 1, "Tag": "a"},
        )

        assert applier.apply(table, change, columns, ["OrderId", "Tag"]) == 0
        assert sqlite_db.execute("SELECT COUNT(*) FROM dbo.OrderTags").fetchone()[0] == 1


class TestDelete:
    def test_deletes_keyed_row(self, applier, orders_table, sqlite_db):
        assert applier.apply(orders_table, delete(7), ORDERS_COLUMNS, PK) == 1
        assert orders_rows(sqlite_db) == []

    def test_absent_row_is_not_an_error(self, applier, orders_table, sqlite_db):
        assert applier.apply(orders_table, delete(404), ORDERS_COLUMNS, PK) == 0
        assert orders_rows(sqlite_db) == [(7, "Cancelled", 12.5)]


def test_null_key_value_matches_with_is_null(applier, make_destination_table, sqlite_db):
    table = make_destination_table(
        "Regions", "[Code] TEXT, [Name] TEXT", [(None, "Unassigned"), ("EU", "Europe")]
    )
    columns = [
        ColumnDescriptor(name="Code", sql_type="nvarchar"),
        ColumnDescriptor(name="Name", sql_type="nvarchar"),
    ]
    change = ChangeRecord(
        operation=ChangeOperation.UPDATE,
        version=1,
        key_values={"Code": None},
        values={"Name": "Unknown"},
    )

    assert applier.apply(table, change, columns, ["Code"]) == 1
    assert sqlite_db.execute("SELECT Name FROM dbo.Regions WHERE Code IS NULL").fetchone() == (
        "Unknown",
    )


def test_failing_statement_raises_apply_error_with_rendered_sql(applier, orders_table):
    missing = TableDescriptor(schema_name="dbo", name="NoSuchTable")

    with pytest.raises(ApplyError) as excinfo:
        applier.apply(missing, delete(7), ORDERS_COLUMNS, PK)

    assert excinfo.value.statement == "DELETE FROM [dbo].[NoSuchTable] WHERE [OrderId] = 7"
    assert isinstance(excinfo.value.__cause__, Exception)


change_strategy = st.builds(
    lambda op, order_id, status, version: ChangeRecord(
        operation=op,
        version=version,
        key_values={"OrderId": order_id},
        values={} if op is ChangeOperation.DELETE else {"Status": status, "Amount": 1.0},
    ),
    op=st.sampled_from(list(ChangeOperation)),
    order_id=st.integers(min_value=1, max_value=6),
    status=st.sampled_from(["New", "Shipped", "Cancelled", "It's late"]),
    version=st.integers(min_value=1, max_value=1000),
)


@given(changes=st.lists(change_strategy, max_size=15))
@settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
def test_replaying_a_change_set_is_idempotent(applier, orders_table, sqlite_db, changes):
    """
    *For any* ordered change set, applying it twice leaves the destination in
    the same state as applying it once: replayed inserts become updates and
    replayed deletes find nothing to delete.
    """
    sqlite_db.execute("DELETE FROM dbo.Orders")
    sqlite_db.execute("INSERT INTO dbo.Orders VALUES (1, 'Seed', 5.0)")
    sqlite_db.commit()

    for change in changes:
        applier.apply(orders_table, change, ORDERS_COLUMNS, PK)
    once = orders_rows(sqlite_db)

    for change in changes:
        applier.apply(orders_table, change, ORDERS_COLUMNS, PK)

    assert orders_rows(sqlite_db) == once


class TestIdentityInsert:
    """IDENTITY_INSERT handling, checked against the SQL Server dialect."""

    def make_applier(self):
        conn = MagicMock()
        cursor = conn.cursor.return_value
        cursor.fetchone.return_value = None
        cursor.rowcount = 1
        provider = ConnectionProvider("mock", connect=lambda *a, **k: conn)
        return ChangeApplier(provider, SqlServerDialect()), cursor

    def executed(self, cursor) -> list[str]:
        return [c[0][0] for c in cursor.execute.call_args_list]

    def test_identity_table_wraps_insert(self):
        applier, cursor = self.make_applier()
        table = TableDescriptor(schema_name="dbo", name="Orders")

        applier.apply(table, insert(5, "New"), ORDERS_COLUMNS, PK)

        statements = self.executed(cursor)
        assert statements[0].startswith("SELECT 1 FROM [dbo].[Orders]")
        assert statements[1] == "SET IDENTITY_INSERT [dbo].[Orders] ON"
        assert statements[2].startswith(
            "INSERT INTO [dbo].[Orders] ([OrderId], [Status], [Amount]) VALUES (?, ?, ?)"
        )
        assert statements[3] == "SET IDENTITY_INSERT [dbo].[Orders] OFF"

    def test_table_without_identity_inserts_directly(self):
        applier, cursor = self.make_applier()
        table = TableDescriptor(schema_name="dbo", name="Orders")
        columns = [c.model_copy(update={"is_identity": False}) for c in ORDERS_COLUMNS]

        applier.apply(table, insert(5, "New"), columns, PK)

        statements = self.executed(cursor)
        assert len(statements) == 2
        assert not any("IDENTITY_INSERT" in s for s in statements)

    def test_insert_passes_values_as_parameters(self):
        applier, cursor = self.make_applier()
        table = TableDescriptor(schema_name="dbo", name="Orders")

        applier.apply(table, insert(5, "New", 10.0), ORDERS_COLUMNS, PK)

        insert_call = cursor.execute.call_args_list[2]
        assert insert_call[0][1] == (5, "New", 10.0)
