"""Session state read by the renderer and mutated by the controller."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Set

from sqli.core.collections import CollectionScope, CollectionTree
from sqli.core.profiles import ConnectionProfile
from sqli.core.types import QueryRequest, QueryResult
from sqli.tui.modals import ModalStack


class Pane(Enum):
    CONNECTIONS = "connections"
    COLLECTIONS = "collections"
    EDITOR = "editor"
    RESULTS = "results"


# Focus cycles through the panes in this order
PANE_ORDER = (Pane.CONNECTIONS, Pane.COLLECTIONS, Pane.EDITOR, Pane.RESULTS)


class Mode(Enum):
    NAVIGATION = "navigation"
    EDIT = "edit"


@dataclass
class EditorBuffer:
    """Text in the editor and the saved file it came from, if any."""

    text: str = ""
    path: Optional[Path] = None
    scope: Optional[CollectionScope] = None
    saved_text: str = ""

    @property
    def dirty(self) -> bool:
        return self.text != self.saved_text

    @property
    def title(self) -> str:
        name = self.path.name if self.path else "untitled"
        return f"{name} *" if self.dirty else name


@dataclass
class SearchState:
    """Last search and replacement text, and the offset of the match shown in the editor."""

    pattern: str = ""
    replacement: str = ""
    match: Optional[int] = None


@dataclass
class AppState:
    focus: Pane = Pane.COLLECTIONS
    mode: Mode = Mode.NAVIGATION

    tree: CollectionTree = field(default_factory=CollectionTree)
    selected_entry: Optional[int] = None
    expanded: Set[int] = field(default_factory=set)

    profiles: List[ConnectionProfile] = field(default_factory=list)
    selected_profile: int = 0
    active_profile: Optional[str] = None

    buffer: EditorBuffer = field(default_factory=EditorBuffer)
    search: SearchState = field(default_factory=SearchState)
    modals: ModalStack = field(default_factory=ModalStack)

    pending: Optional[QueryRequest] = None
    last_result: Optional[QueryResult] = None
    result_cursor: int = 0

    status: str = ""
    status_is_error: bool = False
    should_quit: bool = False

    @property
    def running(self) -> bool:
        return self.pending is not None

    def visible_entries(self):
        return self.tree.visible(self.expanded)

    def set_status(self, message: str, error: bool = False) -> None:
        self.status = message
        self.status_is_error = error
