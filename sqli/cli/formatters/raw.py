"""
Raw formatter: tab-separated values, no header
"""

from sqli.cli.formatters.base import BaseFormatter, display_value
from sqli.core.types import QueryResult


class RawFormatter(BaseFormatter):
    """Format results as bare tab-separated lines for piping"""

    def format(self, result: QueryResult, **kwargs) -> str:
        separator = kwargs.get("separator", "\t")
        return "".join(
            separator.join(display_value(v) for v in row) + "\n" for row in result.rows
        )
