from datetime import date
from decimal import Decimal

import pytest

from bailbonds import sql


def test_bind_escapes_quotes() -> None:
    rendered = sql.bind("SELECT * FROM clients WHERE last_name = ?", ["O'Brien"])
    assert rendered == "SELECT * FROM clients WHERE last_name = 'O''Brien'"


def test_bind_leaves_question_marks_inside_literals() -> None:
    rendered = sql.bind("SELECT '?' AS mark, id FROM cases WHERE id = ?", ["case-1"])
    assert rendered == "SELECT '?' AS mark, id FROM cases WHERE id = 'case-1'"


def test_bind_rejects_parameter_count_mismatch() -> None:
    with pytest.raises(ValueError):
        sql.bind("SELECT * FROM bonds WHERE id = ?", [])
    with pytest.raises(ValueError):
        sql.bind("SELECT * FROM bonds", ["extra"])


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, "NULL"),
        (True, "TRUE"),
        (42, "42"),
        (Decimal("1250.50"), "1250.50"),
        (date(2024, 5, 1), "'2024-05-01'"),
        ({"amount": "250.00"}, "'{\"amount\": \"250.00\"}'"),
    ],
)
def test_render_literal(value, expected) -> None:
    assert sql.render_literal(value) == expected


def test_render_literal_rejects_nul_and_nan() -> None:
    with pytest.raises(ValueError):
        sql.render_literal("bad\x00value")
    with pytest.raises(ValueError):
        sql.render_literal(float("nan"))


def test_identifiers_are_validated() -> None:
    assert sql.validate_identifier("client_id") == "client_id"
    for name in ("clients; DROP TABLE users", "1abc", "name-with-dash", ""):
        with pytest.raises(ValueError):
            sql.validate_identifier(name)


def test_select_with_filters_and_order() -> None:
    where = sql.where_and([sql.equals("client_id"), sql.equals("status"), ""])
    statement = sql.select("bonds", where, "created_at DESC", 5)
    assert statement == (
        "SELECT * FROM bonds WHERE (client_id = ?) AND (status = ?) "
        "ORDER BY created_at DESC LIMIT 5"
    )


def test_order_clause_rejects_injection() -> None:
    assert sql.order_clause("c.court_date asc, id") == "c.court_date ASC, id"
    with pytest.raises(ValueError):
        sql.order_clause("created_at; DELETE FROM clients")


def test_insert_update_delete_statements() -> None:
    assert sql.insert("payments", ["id", "amount"]) == "INSERT INTO payments (id, amount) VALUES (?, ?)"
    assert sql.update("cases", ["status"]) == "UPDATE cases SET status = ? WHERE id = ? RETURNING *"
    assert sql.update("cases", ["status"], returning=False).endswith("WHERE id = ?")
    assert sql.delete("documents") == "DELETE FROM documents WHERE id = ?"
    with pytest.raises(ValueError):
        sql.insert("payments", [])


def test_like_search_escapes_wildcards() -> None:
    clause = sql.like_any(["first_name", "email"])
    pattern = sql.like_pattern("50%_Off")
    assert pattern == "%50\\%\\_off%"
    rendered = sql.bind(clause, [pattern, pattern])
    assert rendered.count("LIKE '%50\\%\\_off%' ESCAPE '\\'") == 2


def test_negative_limit_rejected() -> None:
    with pytest.raises(ValueError):
        sql.select("clients", limit=-1)
