"""Statement building and literal formatting for replicated rows.

Statements are executed with bound parameters. ``SqlStatement.render`` inlines
those parameters as T-SQL literals so a statement can be logged or reported
exactly as the destination would see it.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Mapping, Sequence

from ctsync.models.table import quote_identifier

__all__ = [
    "SqlStatement",
    "assignment_list",
    "format_value",
    "key_predicate",
    "quote_identifier",
]


def format_value(value: Any) -> str:
    """
    Format a Python value as a T-SQL literal.

    - None renders as NULL
    - str is single-quoted with embedded quotes doubled
    - datetime renders as 'YYYY-MM-DD HH:MM:SS.mmm'
    - bool renders as 1 or 0
    - bytes renders as 0x followed by uppercase hex digits
    - anything else uses str()

    Args:
        value: Value read from the source row

    Returns:
        Literal text
    """
    if value is None:
        return "NULL"
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    if isinstance(value, datetime):
        return f"'{value:%Y-%m-%d %H:%M:%S}.{value.microsecond // 1000:03d}'"
    if isinstance(value, date):
        return f"'{value.isoformat()}'"
    if isinstance(value, time):
        return f"'{value:%H:%M:%S}.{value.microsecond // 1000:03d}'"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex().upper()
    return str(value)


@dataclass(frozen=True)
class SqlStatement:
    """Statement text with ``?`` placeholders and its bound parameters."""

    text: str
    params: tuple[Any, ...] = field(default_factory=tuple)

    def render(self) -> str:
        """Inline the parameters as literals.

        Placeholders inside quoted strings or bracketed identifiers are left
        alone.
        """
        out: list[str] = []
        params = iter(self.params)
        in_quote = False
        in_bracket = False
        for ch in self.text:
            if in_quote:
                in_quote = ch != "'"
            elif in_bracket:
                in_bracket = ch != "]"
            elif ch == "'":
                in_quote = True
            elif ch == "[":
                in_bracket = True
            elif ch == "?":
                try:
                    out.append(format_value(next(params)))
                except StopIteration:
                    raise ValueError(f"Not enough parameters for statement: {self.text}")
                continue
            out.append(ch)
        return "".join(out)

    def __str__(self) -> str:
        return self.render()


def key_predicate(pk_columns: Sequence[str], key_values: Mapping[str, Any]) -> SqlStatement:
    """
    Build the row-matching predicate for a primary key.

    Each key column becomes an equality test; a NULL key value becomes an
    IS NULL test instead.

    Args:
        pk_columns: Primary-key column names in key order
        key_values: Key column values of the changed row

    Returns:
        SqlStatement holding the predicate (without WHERE) and its parameters
    """
    conditions: list[str] = []
    params: list[Any] = []
    for column in pk_columns:
        value = key_values.get(column)
        if value is None:
            conditions.append(f"{quote_identifier(column)} IS NULL")
        else:
            conditions.append(f"{quote_identifier(column)} = ?")
            params.append(value)
    return SqlStatement(" AND ".join(conditions), tuple(params))


def assignment_list(columns: Sequence[str], values: Mapping[str, Any]) -> SqlStatement:
    """Build ``[col] = ?, ...`` for an UPDATE SET clause."""
    assignments = [f"{quote_identifier(column)} = ?" for column in columns]
    params = tuple(values.get(column) for column in columns)
    return SqlStatement(", ".join(assignments), params)
