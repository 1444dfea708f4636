"""
CSV formatter for Unix-friendly output
"""

import csv
import io

from sqli.cli.formatters.base import BaseFormatter
from sqli.core.types import QueryResult


class CSVFormatter(BaseFormatter):
    """Format results as CSV"""

    def format(self, result: QueryResult, **kwargs) -> str:
        """
        Format results as CSV

        Args:
            result: Query result
            **kwargs: Options like 'delimiter', 'quote_all'

        Returns:
            CSV string (header row even when there are no rows)
        """
        if not result.columns:
            return ""

        output = io.StringIO()
        writer = csv.writer(
            output,
            delimiter=kwargs.get("delimiter", ","),
            quoting=csv.QUOTE_MINIMAL if not kwargs.get("quote_all") else csv.QUOTE_ALL,
            lineterminator="\n",
        )

        writer.writerow(result.column_names)
        # NULL becomes an empty field
        writer.writerows(["" if v is None else v for v in row] for row in result.rows)

        return output.getvalue()
