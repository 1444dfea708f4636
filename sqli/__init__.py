"""
sqli - A terminal workspace for writing and running SQL

This package provides an interactive TUI with saved query collections and a
one-shot CLI, both running queries against named connection profiles or
ad-hoc connection URLs.
"""

__version__ = "1.1.0"

from sqli.core.types import QueryRequest, QueryResult

__all__ = ["__version__", "QueryRequest", "QueryResult"]
