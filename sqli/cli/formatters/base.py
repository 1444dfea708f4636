"""
Base formatter interface for CLI output

All formatters must implement the format() method.
"""

from typing import Any

from sqli.core.types import QueryResult


def display_value(value: Any) -> str:
    """Text shown for a single cell; NULL for None."""
    if value is None:
        return "NULL"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "\\x" + bytes(value).hex()
    return str(value)


class BaseFormatter:
    """Base class for all output formatters"""

    def format(self, result: QueryResult, **kwargs) -> str:
        """
        Format a query result for output

        Args:
            result: Successful query result
            **kwargs: Additional formatter-specific options

        Returns:
            Formatted string ready for output
        """
        raise NotImplementedError("Formatters must implement format() method")
