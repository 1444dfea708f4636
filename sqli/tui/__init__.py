"""
Interactive terminal workspace

The SessionController and its focus and modal managers are plain Python and
can be driven without a terminal; ``sqli.tui.app`` renders them with Textual.
"""

from sqli.tui.controller import SessionController
from sqli.tui.events import BufferEdited, KeyPress

__all__ = ["SessionController", "KeyPress", "BufferEdited"]
