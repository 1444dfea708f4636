"""Query requests and results shared by the engine, the CLI and the TUI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from sqli.core.errors import (
    ClientError,
    DatabaseConnectionError,
    QueryCancelled,
    QueryExecutionError,
    SqliError,
)


@dataclass(frozen=True)
class InlineSql:
    """SQL text typed by the user."""

    text: str


@dataclass(frozen=True)
class SqlFileSource:
    """SQL read from a saved file when the request runs."""

    path: Path


QuerySource = Union[InlineSql, SqlFileSource]


@dataclass(frozen=True)
class ConnectionTarget:
    """Either a profile name or an ad-hoc URL, never both."""

    profile: Optional[str] = None
    url: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.profile is None) == (self.url is None):
            raise ValueError("Either a profile name or a URL must be provided")

    def __str__(self) -> str:
        return self.profile if self.profile is not None else str(self.url)


@dataclass(frozen=True)
class QueryRequest:
    """One query submission. Immutable once created."""

    source: QuerySource
    target: ConnectionTarget

    @classmethod
    def inline(cls, sql: str, profile: Optional[str] = None, url: Optional[str] = None) -> "QueryRequest":
        return cls(InlineSql(sql), ConnectionTarget(profile=profile, url=url))

    @classmethod
    def from_file(cls, path: Path, profile: Optional[str] = None, url: Optional[str] = None) -> "QueryRequest":
        return cls(SqlFileSource(Path(path)), ConnectionTarget(profile=profile, url=url))


class ErrorKind(Enum):
    """Error classes a query can end with."""

    CONNECTION = "connection"
    QUERY = "query"
    CLIENT = "client"
    CANCELLED = "cancelled"


_ERROR_TYPES = {
    ErrorKind.CONNECTION: DatabaseConnectionError,
    ErrorKind.QUERY: QueryExecutionError,
    ErrorKind.CLIENT: ClientError,
    ErrorKind.CANCELLED: QueryCancelled,
}


@dataclass(frozen=True)
class QueryFailure:
    kind: ErrorKind
    message: str

    def to_exception(self) -> SqliError:
        return _ERROR_TYPES[self.kind](self.message)

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class Column:
    name: str
    type_name: str = ""


@dataclass(frozen=True)
class QueryResult:
    """
    Outcome of exactly one QueryRequest.

    Either ``columns``/``rows`` are populated, or ``error`` is set and both are
    empty. Rows are tuples of nullable scalars in column order.
    """

    columns: Tuple[Column, ...] = ()
    rows: Tuple[Tuple[Any, ...], ...] = ()
    elapsed: float = 0.0
    error: Optional[QueryFailure] = None
    row_count: int = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "row_count", len(self.rows))

    @classmethod
    def success(cls, columns: List[Column], rows: List[Tuple[Any, ...]], elapsed: float) -> "QueryResult":
        return cls(columns=tuple(columns), rows=tuple(tuple(r) for r in rows), elapsed=elapsed)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, elapsed: float = 0.0) -> "QueryResult":
        return cls(elapsed=elapsed, error=QueryFailure(kind, message))

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def to_dicts(self) -> List[Dict[str, Any]]:
        """Rows as dictionaries keyed by column name."""
        names = self.column_names
        return [dict(zip(names, row)) for row in self.rows]
