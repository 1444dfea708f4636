"""
Tests for database drivers
"""

import pytest

from sqli.core.drivers import (
    DriverSession,
    DuckDBDriver,
    SQLAlchemyDriver,
    get_driver,
)
from sqli.core.errors import DatabaseConnectionError, QueryExecutionError


class TestGetDriver:
    """Test driver selection by URL scheme"""

    def test_duckdb(self):
        assert isinstance(get_driver("duckdb:///:memory:"), DuckDBDriver)

    def test_sqlalchemy_for_everything_else(self):
        assert isinstance(get_driver("sqlite://"), SQLAlchemyDriver)
        assert isinstance(get_driver("postgresql://u@localhost/db"), SQLAlchemyDriver)

    def test_postgres_alias(self):
        driver = get_driver("postgres://u@localhost/db")

        assert driver.url == "postgresql://u@localhost/db"

    def test_missing_scheme(self):
        with pytest.raises(DatabaseConnectionError, match="Invalid connection URL"):
            get_driver("not a url")


class TestDuckDBDriver:
    """Test the DuckDB driver"""

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("duckdb://", ":memory:"),
            ("duckdb:///:memory:", ":memory:"),
            ("duckdb:///tmp/x.duckdb", "/tmp/x.duckdb"),
            ("duckdb://rel.duckdb", "rel.duckdb"),
        ],
    )
    def test_database_path(self, url, expected):
        assert DuckDBDriver.database_path(url) == expected

    def test_select(self, duckdb_url):
        columns, rows = DriverSession(duckdb_url).run("SELECT id, name FROM users ORDER BY id")

        assert [c.name for c in columns] == ["id", "name"]
        assert columns[0].type_name
        assert rows == [(1, "Alice"), (2, "Bob"), (3, "Charlie")]

    def test_nulls(self, duckdb_url):
        _, rows = DriverSession(duckdb_url).run("SELECT age FROM users WHERE name = 'Charlie'")

        assert rows == [(None,)]

    def test_statement_without_rows(self, duckdb_url):
        _, rows = DriverSession(duckdb_url).run("CREATE TABLE t (x INTEGER)")

        assert rows == []

    def test_query_error(self, duckdb_url):
        with pytest.raises(QueryExecutionError, match="DuckDB execution error"):
            DriverSession(duckdb_url).run("SELECT * FROM missing_table")

    def test_unopenable_database(self, tmp_path):
        url = f"duckdb://{tmp_path}/no/such/dir/x.duckdb"

        with pytest.raises(DatabaseConnectionError):
            DriverSession(url).run("SELECT 1")


class TestSQLAlchemyDriver:
    """Test the SQLAlchemy driver against SQLite"""

    def test_select(self, sqlite_url):
        columns, rows = DriverSession(sqlite_url).run("SELECT id, name FROM users ORDER BY id")

        assert [c.name for c in columns] == ["id", "name"]
        assert rows == [(1, "Alice"), (2, "Bob"), (3, "Charlie")]

    def test_inferred_type_names(self, sqlite_url):
        columns, _ = DriverSession(sqlite_url).run("SELECT id, name FROM users ORDER BY id")

        assert [c.type_name for c in columns] == ["int", "str"]

    def test_writes_are_committed(self, sqlite_url):
        DriverSession(sqlite_url).run("INSERT INTO users VALUES (4, 'Dana', 41)")
        _, rows = DriverSession(sqlite_url).run("SELECT name FROM users WHERE id = 4")

        assert rows == [("Dana",)]

    def test_query_error(self, sqlite_url):
        with pytest.raises(QueryExecutionError, match="no such table"):
            DriverSession(sqlite_url).run("SELECT * FROM missing_table")

    def test_unknown_dialect(self):
        with pytest.raises(DatabaseConnectionError):
            DriverSession("nosuchdb://host/db").run("SELECT 1")

    def test_unreachable_file(self, tmp_path):
        url = f"sqlite:///{tmp_path}/no/such/dir/x.sqlite"

        with pytest.raises(DatabaseConnectionError, match="Cannot connect"):
            DriverSession(url).run("SELECT 1")

    def test_failed_connect_releases_engine(self, tmp_path):
        session = DriverSession(f"sqlite:///{tmp_path}/no/such/dir/x.sqlite")

        with pytest.raises(DatabaseConnectionError):
            session.run("SELECT 1")

        assert session.driver.engine is None
        session.interrupt()
