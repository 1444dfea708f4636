"""Rich-based logging helpers for the CLI."""

from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console
from rich.theme import Theme

_THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "debug": "dim",
    }
)

# stdout carries query results, stderr carries everything else. Highlighting is
# off so numbers inside messages are not wrapped in ANSI sequences.
_stdout_console = Console(theme=_THEME, highlight=False)
_stderr_console = Console(stderr=True, theme=_THEME, highlight=False)


@dataclass
class Logger:
    """Lightweight logger facade backed by Rich consoles."""

    verbose: bool = False

    @property
    def console(self) -> Console:
        return _stdout_console

    def info(self, message: str) -> None:
        _stderr_console.print(message, style="info", markup=False, soft_wrap=True)

    def success(self, message: str) -> None:
        _stderr_console.print(message, style="success", markup=False, soft_wrap=True)

    def warning(self, message: str) -> None:
        _stderr_console.print(message, style="warning", markup=False, soft_wrap=True)

    def error(self, message: str) -> None:
        _stderr_console.print(message, style="error", markup=False, soft_wrap=True)

    def debug(self, message: str) -> None:
        if self.verbose:
            _stderr_console.print(message, style="debug", markup=False, soft_wrap=True)


def get_logger(verbose: bool = False) -> Logger:
    """Return a configured Logger instance."""
    return Logger(verbose=verbose)
