"""
SQL construction for the Gibson query endpoint.

The endpoint only accepts a complete SQL string, so values cannot be sent as
bound parameters. Statements are written with ``?`` placeholders and
``bind()`` renders each parameter as an escaped literal. Table and column
names are validated before interpolation.
"""
from __future__ import annotations

import json
import math
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence

_SAFE_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_ORDER_TERM_RE = re.compile(
    r"^\s*([A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)?)(?:\s+(ASC|DESC))?\s*$",
    re.IGNORECASE,
)


def validate_identifier(name: str) -> str:
    if not isinstance(name, str) or not _SAFE_IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


def render_literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValueError("Cannot render non-finite number as SQL literal.")
        return repr(value)
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueError("Cannot render non-finite number as SQL literal.")
        return format(value, "f")
    if isinstance(value, datetime):
        return _quote(value.isoformat())
    if isinstance(value, date):
        return _quote(value.isoformat())
    if isinstance(value, (dict, list, tuple)):
        return _quote(json.dumps(value, ensure_ascii=False, default=str))
    return _quote(str(value))


def _quote(text: str) -> str:
    if "\x00" in text:
        raise ValueError("SQL string literals may not contain NUL characters.")
    return "'" + text.replace("'", "''") + "'"


def bind(sql: str, params: Sequence[Any] = ()) -> str:
    """
    Replace each ``?`` outside quoted strings with the rendered parameter.
    """
    output: List[str] = []
    remaining = list(params)
    in_quote = False
    for char in sql:
        if char == "'":
            in_quote = not in_quote
            output.append(char)
        elif char == "?" and not in_quote:
            if not remaining:
                raise ValueError("Not enough parameters for SQL placeholders.")
            output.append(render_literal(remaining.pop(0)))
        else:
            output.append(char)
    if remaining:
        raise ValueError(
            f"Too many parameters for SQL placeholders ({len(remaining)} unused)."
        )
    return "".join(output)


def order_clause(order_by: str) -> str:
    terms = []
    for term in order_by.split(","):
        match = _ORDER_TERM_RE.match(term)
        if not match:
            raise ValueError(f"Invalid ORDER BY term: {term!r}")
        column, direction = match.group(1), match.group(2)
        terms.append(f"{column} {direction.upper()}" if direction else column)
    return ", ".join(terms)


def select(
    table: str,
    where: Optional[str] = None,
    order_by: Optional[str] = None,
    limit: Optional[int] = None,
    columns: str = "*",
) -> str:
    sql = f"SELECT {columns} FROM {validate_identifier(table)}"
    if where:
        sql += f" WHERE {where}"
    if order_by:
        sql += f" ORDER BY {order_clause(order_by)}"
    if limit is not None:
        sql += f" LIMIT {_positive_int(limit)}"
    return sql


def insert(table: str, columns: Sequence[str]) -> str:
    validate_identifier(table)
    if not columns:
        raise ValueError("INSERT needs at least one column.")
    cols = ", ".join(validate_identifier(col) for col in columns)
    placeholders = ", ".join("?" for _ in columns)
    return f"INSERT INTO {table} ({cols}) VALUES ({placeholders})"


def update(table: str, columns: Sequence[str], returning: bool = True) -> str:
    validate_identifier(table)
    if not columns:
        raise ValueError("UPDATE needs at least one column.")
    sets = ", ".join(f"{validate_identifier(col)} = ?" for col in columns)
    sql = f"UPDATE {table} SET {sets} WHERE id = ?"
    if returning:
        sql += " RETURNING *"
    return sql


def delete(table: str) -> str:
    return f"DELETE FROM {validate_identifier(table)} WHERE id = ?"


def where_and(conditions: Iterable[str]) -> str:
    parts = [condition for condition in conditions if condition]
    if not parts:
        return ""
    if len(parts) == 1:
        return parts[0]
    return " AND ".join(f"({part})" for part in parts)


def equals(column: str) -> str:
    return f"{validate_identifier(column)} = ?"


def like_any(columns: Sequence[str]) -> str:
    """
    Case-insensitive substring match against any of ``columns``.

    Bind one ``like_pattern(term)`` per column.
    """
    if not columns:
        raise ValueError("like_any needs at least one column.")
    clauses = [
        f"LOWER({validate_identifier(col)}) LIKE ? ESCAPE '\\'" for col in columns
    ]
    return "(" + " OR ".join(clauses) + ")"


def like_pattern(term: str) -> str:
    escaped = (
        term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    return f"%{escaped}%"


def _positive_int(value: Any) -> int:
    number = int(value)
    if number < 0:
        raise ValueError(f"LIMIT must be non-negative, got {value!r}")
    return number
