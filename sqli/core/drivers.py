"""
Database drivers

A driver turns "connection URL + SQL text" into column metadata and rows, or
raises a typed error. Two drivers ship with sqli:

- DuckDBDriver:      ``duckdb:///path/to/file.duckdb`` or ``duckdb:///:memory:``
- SQLAlchemyDriver:  every other URL SQLAlchemy understands
                     (``postgresql://``, ``sqlite:///``, ...)

SQL is executed verbatim: no parameter binding, no rewriting.
"""

from __future__ import annotations

import threading
from typing import Any, List, Tuple

import duckdb
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, DBAPIError, NoSuchModuleError, SQLAlchemyError

from sqli.core.errors import DatabaseConnectionError, QueryExecutionError
from sqli.core.types import Column

Rows = List[Tuple[Any, ...]]

POSTGRES_CONNECT_TIMEOUT = 5


def _infer_type_name(rows: Rows, position: int) -> str:
    """Fall back to the Python type of the first non-null value."""
    for row in rows:
        value = row[position]
        if value is not None:
            return type(value).__name__
    return ""


class BaseDriver:
    """Base class for all drivers"""

    def __init__(self, url: str):
        self.url = url

    def connect(self) -> None:
        """Open the connection; raises DatabaseConnectionError."""
        raise NotImplementedError("Drivers must implement connect()")

    def execute(self, sql: str) -> Tuple[List[Column], Rows]:
        """Run SQL verbatim; raises QueryExecutionError."""
        raise NotImplementedError("Drivers must implement execute()")

    def interrupt(self) -> None:
        """Best-effort request to stop a running statement."""

    def close(self) -> None:
        """Release the connection."""


class DuckDBDriver(BaseDriver):
    """
    DuckDB driver using the native ``duckdb`` module.

    Example:
        >>> driver = DuckDBDriver("duckdb:///:memory:")
        >>> driver.connect()
        >>> driver.execute("SELECT 1 AS one")
        ([Column(name='one', type_name=...)], [(1,)])
    """

    SCHEMES = ("duckdb",)

    def __init__(self, url: str):
        super().__init__(url)
        self.conn = None

    @staticmethod
    def database_path(url: str) -> str:
        """
        Extract the database path from a duckdb URL.

        ``duckdb:///:memory:``, ``duckdb://:memory:`` and ``duckdb://`` are
        in-memory; ``duckdb:///tmp/x.duckdb`` is the absolute path
        ``/tmp/x.duckdb`` and ``duckdb://x.duckdb`` is relative.
        """
        rest = url.split("://", 1)[1] if "://" in url else ""
        if rest in ("", "/", ":memory:", "/:memory:"):
            return ":memory:"
        return rest

    def connect(self) -> None:
        try:
            self.conn = duckdb.connect(self.database_path(self.url))
        except duckdb.Error as e:
            raise DatabaseConnectionError(f"Cannot open DuckDB database: {e}") from e

    def execute(self, sql: str) -> Tuple[List[Column], Rows]:
        try:
            result = self.conn.execute(sql)
            if result.description is None:
                return [], []
            rows = [tuple(row) for row in result.fetchall()]
            columns = [Column(desc[0], str(desc[1])) for desc in result.description]
            return columns, rows
        except duckdb.Error as e:
            raise QueryExecutionError(f"DuckDB execution error: {e}") from e

    def interrupt(self) -> None:
        if self.conn is not None:
            try:
                self.conn.interrupt()
            except duckdb.Error:
                pass

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None


class SQLAlchemyDriver(BaseDriver):
    """Driver for any database SQLAlchemy has a dialect for."""

    def __init__(self, url: str):
        super().__init__(self.normalize_url(url))
        self.engine = None
        self.conn = None

    @staticmethod
    def normalize_url(url: str) -> str:
        # SQLAlchemy only accepts the long scheme name
        if url.startswith("postgres://"):
            return "postgresql://" + url[len("postgres://"):]
        return url

    def connect(self) -> None:
        try:
            parsed = make_url(self.url)
            connect_args = {}
            if parsed.get_backend_name() == "postgresql":
                connect_args["connect_timeout"] = POSTGRES_CONNECT_TIMEOUT
            self.engine = create_engine(parsed, connect_args=connect_args)
            self.conn = self.engine.connect()
        except (ArgumentError, NoSuchModuleError) as e:
            raise DatabaseConnectionError(f"Invalid connection URL: {e}") from e
        except SQLAlchemyError as e:
            raise DatabaseConnectionError(f"Cannot connect: {_first_line(e)}") from e
        except ImportError as e:
            raise DatabaseConnectionError(f"Driver for {self.url.split(':', 1)[0]} is not installed: {e}") from e

    def execute(self, sql: str) -> Tuple[List[Column], Rows]:
        try:
            result = self.conn.exec_driver_sql(sql)
            if not result.returns_rows:
                self.conn.commit()
                return [], []
            names = list(result.keys())
            type_codes = [desc[1] for desc in (result.cursor.description or [])] if result.cursor else []
            rows = [tuple(row) for row in result.fetchall()]
            self.conn.commit()
        except DBAPIError as e:
            self._rollback()
            raise QueryExecutionError(_first_line(e)) from e
        except SQLAlchemyError as e:
            self._rollback()
            raise QueryExecutionError(str(e)) from e

        columns = []
        for position, name in enumerate(names):
            type_code = type_codes[position] if position < len(type_codes) else None
            type_name = type_code if isinstance(type_code, str) else _infer_type_name(rows, position)
            columns.append(Column(name, type_name))
        return columns, rows

    def _rollback(self) -> None:
        try:
            self.conn.rollback()
        except SQLAlchemyError:
            pass

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None


def _first_line(error: Exception) -> str:
    """DBAPI errors carry the SQL and a doc link after the first line."""
    orig = getattr(error, "orig", None)
    text = str(orig) if orig is not None else str(error)
    return text.strip().splitlines()[0] if text.strip() else error.__class__.__name__


def get_driver(url: str) -> BaseDriver:
    """
    Get a driver instance for a connection URL

    Args:
        url: Connection URL

    Returns:
        Driver instance (not yet connected)

    Raises:
        DatabaseConnectionError: If the URL has no scheme
    """
    if "://" not in url:
        raise DatabaseConnectionError(f"Invalid connection URL: '{url}'")

    scheme = url.split(":", 1)[0].split("+", 1)[0].lower()
    if scheme in DuckDBDriver.SCHEMES:
        return DuckDBDriver(url)
    return SQLAlchemyDriver(url)


class DriverSession:
    """Connect, execute once, close; ``interrupt`` may be called from another thread."""

    def __init__(self, url: str):
        self.driver = get_driver(url)
        self._lock = threading.Lock()
        self._closed = False

    def run(self, sql: str) -> Tuple[List[Column], Rows]:
        try:
            self.driver.connect()
            return self.driver.execute(sql)
        finally:
            with self._lock:
                self._closed = True
                self.driver.close()

    def interrupt(self) -> None:
        with self._lock:
            if not self._closed:
                self.driver.interrupt()
