"""Property-based tests for literal formatting and statement building.

Literals are parsed back through SQLite, the destination engine used in the
test suite, wherever SQLite reads the T-SQL spelling natively.
"""

import sqlite3
from datetime import date, datetime, time
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ctsync.sync.sql import (
    SqlStatement,
    assignment_list,
    format_value,
    key_predicate,
    quote_identifier,
)

text_values = st.text(
    alphabet=st.characters(blacklist_categories=("Cs",), blacklist_characters="\x00"),
    max_size=100,
)


def select_literal(literal: str):
    conn = sqlite3.connect(":memory:")
    try:
        return conn.execute(f"SELECT {literal}").fetchone()[0]
    finally:
        conn.close()


@given(value=text_values)
@settings(max_examples=100)
def test_text_literal_round_trips(value: str) -> None:
    """
    *For any* text, including embedded quotes, the quoted literal reads back
    as the same string.
    """
    literal = format_value(value)

    assert literal.startswith("'") and literal.endswith("'")
    assert select_literal(literal) == value


@given(value=st.text(alphabet="ab'", min_size=1, max_size=20))
@settings(max_examples=50)
def test_text_literal_doubles_every_quote(value: str) -> None:
    """*For any* text, the literal body holds each quote exactly twice as often."""
    literal = format_value(value)

    assert literal[1:-1].count("'") == 2 * value.count("'")
    assert literal[1:-1].replace("''", "'") == value


@given(
    value=st.datetimes(min_value=datetime(1753, 1, 1), max_value=datetime(9999, 12, 31)).map(
        lambda d: d.replace(microsecond=d.microsecond // 1000 * 1000)
    )
)
@settings(max_examples=100)
def test_datetime_literal_round_trips_at_millisecond_precision(value: datetime) -> None:
    """
    *For any* millisecond-precision timestamp, the fixed-format literal
    parses back to the same value.
    """
    literal = format_value(value)
    text = select_literal(literal)

    assert len(text) == len("YYYY-MM-DD HH:MM:SS.mmm")
    assert datetime.strptime(text, "%Y-%m-%d %H:%M:%S.%f") == value


def test_datetime_literal_truncates_to_milliseconds() -> None:
    assert format_value(datetime(2024, 1, 15, 14, 30, 5, 123999)) == "'2024-01-15 14:30:05.123'"
    assert format_value(datetime(2024, 1, 15, 0, 0)) == "'2024-01-15 00:00:00.000'"


@given(value=st.booleans())
def test_boolean_literal_round_trips(value: bool) -> None:
    """*For any* boolean, the literal is 1 or 0 and reads back with the same truth value."""
    literal = format_value(value)

    assert literal in ("1", "0")
    assert bool(select_literal(literal)) is value


@given(value=st.binary(max_size=64))
@settings(max_examples=100)
def test_binary_literal_round_trips(value: bytes) -> None:
    """
    *For any* byte string, the literal is 0x followed by uppercase hex with
    no separators, and decodes to the same bytes.
    """
    literal = format_value(value)

    assert literal.startswith("0x")
    digits = literal[2:]
    assert digits == digits.upper()
    assert len(digits) == 2 * len(value)
    assert bytes.fromhex(digits) == value


def test_bytearray_and_memoryview_format_like_bytes() -> None:
    assert format_value(bytearray(b"\x01\xab")) == "0x01AB"
    assert format_value(memoryview(b"\xff")) == "0xFF"


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, "NULL"),
        (42, "42"),
        (-7, "-7"),
        (Decimal("12.50"), "12.50"),
        (1.5, "1.5"),
        (date(2024, 3, 1), "'2024-03-01'"),
        (time(9, 5, 7, 250000), "'09:05:07.250'"),
    ],
)
def test_other_scalars_use_their_default_text(value, expected: str) -> None:
    assert format_value(value) == expected


def test_render_inlines_parameters_in_order() -> None:
    statement = SqlStatement(
        "UPDATE [dbo].[Orders] SET [Status] = ?, [Paid] = ? WHERE [OrderId] = ?",
        ("It's shipped", True, 5),
    )

    assert statement.render() == (
        "UPDATE [dbo].[Orders] SET [Status] = 'It''s shipped', [Paid] = 1 WHERE [OrderId] = 5"
    )
    assert str(statement) == statement.render()


def test_render_ignores_placeholders_inside_quotes_and_brackets() -> None:
    statement = SqlStatement("SELECT '?', [what?] FROM t WHERE a = ?", (None,))

    assert statement.render() == "SELECT '?', [what?] FROM t WHERE a = NULL"


def test_render_rejects_missing_parameters() -> None:
    with pytest.raises(ValueError):
        SqlStatement("SELECT ? + ?", (1,)).render()


def test_key_predicate_uses_is_null_for_null_key_values() -> None:
    predicate = key_predicate(["TenantId", "OrderId"], {"TenantId": None, "OrderId": 9})

    assert predicate.text == "[TenantId] IS NULL AND [OrderId] = ?"
    assert predicate.params == (9,)


@given(
    keys=st.lists(
        st.text(alphabet="abcdefghij", min_size=1, max_size=8), min_size=1, max_size=4, unique=True
    ),
    data=st.data(),
)
@settings(max_examples=50)
def test_key_predicate_binds_one_parameter_per_non_null_key(keys: list[str], data) -> None:
    """*For any* composite key, every non-null key value becomes one bound parameter."""
    values = {k: data.draw(st.one_of(st.none(), st.integers())) for k in keys}

    predicate = key_predicate(keys, values)

    assert predicate.text.count(" AND ") == len(keys) - 1
    assert predicate.params == tuple(v for v in values.values() if v is not None)
    assert predicate.text.count("IS NULL") == sum(1 for v in values.values() if v is None)


def test_assignment_list_binds_missing_values_as_null() -> None:
    assignments = assignment_list(["Status", "Amount"], {"Status": "New"})

    assert assignments.text == "[Status] = ?, [Amount] = ?"
    assert assignments.params == ("New", None)
    assert assignments.render() == "[Status] = 'New', [Amount] = NULL"


def test_quote_identifier_escapes_closing_brackets() -> None:
    assert quote_identifier("Order Lines") == "[Order Lines]"
    assert quote_identifier("odd]name") == "[odd]]name]"
