"""
JSON formatter for machine-readable output
"""

import json
import math
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from sqli.cli.formatters.base import BaseFormatter
from sqli.core.types import QueryResult


def _clean_value(val: Any) -> Any:
    # NaN and infinity are not valid JSON
    if isinstance(val, float) and (math.isnan(val) or math.isinf(val)):
        return None
    if isinstance(val, (datetime, date, time)):
        return val.isoformat()
    if isinstance(val, Decimal):
        return str(val)
    if isinstance(val, (bytes, bytearray, memoryview)):
        return bytes(val).hex()
    return val


class JSONFormatter(BaseFormatter):
    """Format results as JSON"""

    def format(self, result: QueryResult, **kwargs) -> str:
        """
        Format results as a JSON array of objects

        Args:
            result: Query result
            **kwargs: Options like 'compact', 'indent'

        Returns:
            JSON string
        """
        names = result.column_names
        cleaned = [
            {name: _clean_value(value) for name, value in zip(names, row)}
            for row in result.rows
        ]

        if kwargs.get("compact", False):
            return json.dumps(cleaned, separators=(",", ":"), default=str)
        indent = kwargs.get("indent", 2)
        return json.dumps(cleaned, indent=indent, default=str)
