"""
Tests for CLI formatters
"""

import json
from datetime import date
from decimal import Decimal

import pytest

from sqli.cli.formatters import (
    CSVFormatter,
    JSONFormatter,
    RawFormatter,
    TableFormatter,
    get_formatter,
)
from sqli.core.types import Column, QueryResult


@pytest.fixture
def people():
    return QueryResult.success(
        [Column("name", "VARCHAR"), Column("age", "INTEGER")],
        [("Alice", 30), ("Bob", None)],
        0.01,
    )


@pytest.fixture
def no_rows():
    return QueryResult.success([], [], 0.0)


class TestGetFormatter:
    """Test formatter factory function"""

    @pytest.mark.parametrize(
        "name, formatter_type",
        [("table", TableFormatter), ("json", JSONFormatter), ("csv", CSVFormatter), ("raw", RawFormatter)],
    )
    def test_known(self, name, formatter_type):
        assert isinstance(get_formatter(name), formatter_type)

    def test_unknown_formatter(self):
        """Test error for unknown formatter"""
        with pytest.raises(ValueError, match="Unknown format"):
            get_formatter("markdown")


class TestJSONFormatter:
    """Test JSON formatter"""

    def test_format_basic(self, people):
        parsed = json.loads(JSONFormatter().format(people))

        assert parsed == [{"name": "Alice", "age": 30}, {"name": "Bob", "age": None}]

    def test_format_empty(self, no_rows):
        assert json.loads(JSONFormatter().format(no_rows)) == []

    def test_nan_and_special_types(self):
        result = QueryResult.success(
            [Column("x", "DOUBLE"), Column("d", "DATE"), Column("n", "DECIMAL")],
            [(float("nan"), date(2024, 1, 2), Decimal("1.50"))],
            0.0,
        )
        parsed = json.loads(JSONFormatter().format(result))

        assert parsed == [{"x": None, "d": "2024-01-02", "n": "1.50"}]

    def test_compact(self, people):
        output = JSONFormatter().format(people, compact=True)

        assert "\n" not in output
        assert '"name":"Alice"' in output


class TestCSVFormatter:
    """Test CSV formatter"""

    def test_format_basic(self, people):
        output = CSVFormatter().format(people)

        assert output.splitlines() == ["name,age", "Alice,30", "Bob,"]

    def test_header_without_rows(self):
        result = QueryResult.success([Column("id", "INTEGER")], [], 0.0)

        assert CSVFormatter().format(result) == "id\n"

    def test_quoting(self):
        result = QueryResult.success([Column("note", "VARCHAR")], [("a,b",)], 0.0)

        assert CSVFormatter().format(result).splitlines()[1] == '"a,b"'

    def test_statement_without_columns(self, no_rows):
        assert CSVFormatter().format(no_rows) == ""


class TestRawFormatter:
    """Test raw formatter"""

    def test_tab_separated_without_header(self, people):
        assert RawFormatter().format(people) == "Alice\t30\nBob\tNULL\n"

    def test_bytes_as_hex(self):
        result = QueryResult.success([Column("b", "BLOB")], [(b"\x01\xff",)], 0.0)

        assert RawFormatter().format(result) == "\\x01ff\n"


class TestTableFormatter:
    """Test Rich table formatter"""

    def test_contains_values(self, people):
        output = TableFormatter().format(people, no_color=True)

        assert "name" in output
        assert "Alice" in output
        assert "NULL" in output
        assert "2 rows" in output

    def test_single_row_footer(self):
        result = QueryResult.success([Column("one", "INTEGER")], [(1,)], 0.0)

        assert "1 row" in TableFormatter().format(result, no_color=True)

    def test_no_footer(self, people):
        assert "rows" not in TableFormatter().format(people, no_color=True, show_footer=False)

    def test_statement_without_columns(self, no_rows):
        assert TableFormatter().format(no_rows) == "Statement executed (no rows returned)\n"

    def test_markup_is_escaped(self):
        result = QueryResult.success([Column("v", "VARCHAR")], [("[bold]x[/bold]",)], 0.0)

        assert "[bold]x[/bold]" in TableFormatter().format(result, no_color=True)
