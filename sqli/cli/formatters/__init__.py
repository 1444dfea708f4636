"""
Output formatters for CLI

Available formatters:
- TableFormatter: Rich tables
- JSONFormatter: Machine-readable JSON
- CSVFormatter: Unix-friendly CSV
- RawFormatter: Tab-separated rows without a header
"""

from sqli.cli.formatters.base import BaseFormatter
from sqli.cli.formatters.csv import CSVFormatter
from sqli.cli.formatters.json import JSONFormatter
from sqli.cli.formatters.raw import RawFormatter
from sqli.cli.formatters.table import TableFormatter

__all__ = ["BaseFormatter", "TableFormatter", "JSONFormatter", "CSVFormatter", "RawFormatter"]

FORMATTERS = {
    "table": TableFormatter,
    "json": JSONFormatter,
    "csv": CSVFormatter,
    "raw": RawFormatter,
}


def get_formatter(format_name: str) -> BaseFormatter:
    """
    Get formatter by name

    Args:
        format_name: Name of formatter (table, json, csv, raw)

    Returns:
        Formatter instance

    Raises:
        ValueError: If formatter not found
    """
    if format_name not in FORMATTERS:
        available = ", ".join(FORMATTERS.keys())
        raise ValueError(f"Unknown format: {format_name}. Available formats: {available}")

    return FORMATTERS[format_name]()
