"""
Rich table formatter for terminal output
"""

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from sqli.cli.formatters.base import BaseFormatter, display_value
from sqli.core.types import QueryResult


class TableFormatter(BaseFormatter):
    """Format results as a Rich table"""

    def format(self, result: QueryResult, **kwargs) -> str:
        """
        Format results as a Rich table

        Args:
            result: Query result
            **kwargs: Options like 'no_color', 'show_footer', 'max_width'

        Returns:
            Formatted table string
        """
        if not result.columns:
            return "Statement executed (no rows returned)\n"

        console = Console(force_terminal=not kwargs.get("no_color", False), highlight=False)
        terminal_width = console.width
        num_cols = len(result.columns)

        # Narrow terminal or many columns: aggressive truncation
        if terminal_width < 80 or num_cols > 8:
            max_col_width = kwargs.get("max_width", 15)
            table = Table(show_header=True, header_style="bold magenta", box=box.SIMPLE)
            for column in result.columns:
                table.add_column(
                    escape(column.name), style="cyan", overflow="ellipsis", max_width=max_col_width, no_wrap=True
                )
        else:
            table = Table(show_header=True, header_style="bold magenta")
            for column in result.columns:
                table.add_column(
                    escape(column.name), style="cyan", overflow="ellipsis", max_width=30, no_wrap=False
                )

        for row in result.rows:
            table.add_row(
                *(
                    "[dim]NULL[/dim]" if value is None else escape(display_value(value))
                    for value in row
                )
            )

        with console.capture() as capture:
            console.print(table)
        output = capture.get()

        if kwargs.get("show_footer", True):
            footer = f"[dim]{result.row_count} row{'s' if result.row_count != 1 else ''}[/dim]"
            with console.capture() as capture:
                console.print(footer)
            output += capture.get()

        return output
