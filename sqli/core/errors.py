"""Exception hierarchy shared by the CLI and the TUI.

Every error carries the process exit code the CLI uses when it reaches the
command boundary. The TUI reports the same errors inline and keeps running.
"""

from __future__ import annotations


class SqliError(Exception):
    """Base exception for sqli."""

    exit_code = 1


class ConfigError(SqliError):
    """Raised when the config file is malformed or unreadable."""

    exit_code = 3


class ProfileNotFound(SqliError):
    """Raised when a named connection profile does not exist."""

    exit_code = 4

    def __init__(self, name: str):
        super().__init__(f"Connection '{name}' not found")
        self.name = name


class FileSystemError(SqliError):
    """Raised when a collection create/rename/delete/load/save fails."""

    exit_code = 5


class ClientError(SqliError):
    """Raised for failures on our side of the wire (e.g. unreadable SQL file)."""

    exit_code = 5


class DatabaseConnectionError(SqliError):
    """Raised when a connection to the target cannot be established."""

    exit_code = 6


class QueryExecutionError(SqliError):
    """Raised when the database rejects the SQL."""

    exit_code = 7


class QueryCancelled(SqliError):
    """Raised when a running query was cancelled by the user."""

    exit_code = 130


class BusyError(SqliError):
    """Raised when a query is submitted while another one is in flight."""

    def __init__(self, message: str = "A query is already running"):
        super().__init__(message)
