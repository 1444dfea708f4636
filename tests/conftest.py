"""
Pytest configuration and shared fixtures
"""

import sqlite3

import duckdb
import pytest

from sqli.core.config import CONFIG_DIR_ENV, WORKSPACE_DIR_ENV, Settings


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio to only use asyncio backend."""
    return "asyncio"


@pytest.fixture
def settings(tmp_path, monkeypatch):
    """Isolated config and workspace directories"""
    monkeypatch.setenv(CONFIG_DIR_ENV, str(tmp_path / "config"))
    monkeypatch.setenv(WORKSPACE_DIR_ENV, str(tmp_path / "workspace"))
    return Settings.from_env()


@pytest.fixture
def duckdb_file(tmp_path):
    """DuckDB database with a small users table"""
    path = tmp_path / "app.duckdb"
    conn = duckdb.connect(str(path))
    conn.execute("CREATE TABLE users (id INTEGER, name VARCHAR, age INTEGER)")
    conn.execute("INSERT INTO users VALUES (1, 'Alice', 30), (2, 'Bob', 25), (3, 'Charlie', NULL)")
    conn.close()
    return path


@pytest.fixture
def duckdb_url(duckdb_file):
    return f"duckdb://{duckdb_file}"


@pytest.fixture
def sqlite_file(tmp_path):
    """SQLite database with the same users table"""
    path = tmp_path / "app.sqlite"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE users (id INTEGER, name TEXT, age INTEGER)")
    conn.executemany(
        "INSERT INTO users VALUES (?, ?, ?)",
        [(1, "Alice", 30), (2, "Bob", 25), (3, "Charlie", None)],
    )
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def sqlite_url(sqlite_file):
    return f"sqlite:///{sqlite_file}"
