"""
Input events and effects

Input events come from the terminal backend. Effects are the intents the
focus and modal managers hand back to the SessionController, which is the
only place where they turn into I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from sqli.core.collections import CollectionScope, EntryKind
from sqli.core.profiles import ConnectionProfile

# Terminals report some chords under more than one name
KEY_ALIASES = {
    "ctrl+@": "ctrl+space",
    "ctrl+at": "ctrl+space",
    "ctrl+i": "tab",
    "ctrl+m": "enter",
    "backtab": "shift+tab",
    "ctrl+h": "backspace",
    " ": "space",
}


def normalize_key(key: Optional[str]) -> Optional[str]:
    if not key or not isinstance(key, str):
        return None
    return KEY_ALIASES.get(key, key)


@dataclass(frozen=True)
class KeyPress:
    """A key press; ``character`` is the printable text it produces, if any."""

    key: str
    character: Optional[str] = None

    @property
    def printable(self) -> Optional[str]:
        if self.character and len(self.character) == 1 and self.character.isprintable():
            return self.character
        return None


@dataclass(frozen=True)
class BufferEdited:
    """The editor widget's text changed."""

    text: str


@dataclass(frozen=True)
class RunQuery:
    pass


@dataclass(frozen=True)
class CancelQuery:
    pass


@dataclass(frozen=True)
class SaveBuffer:
    pass


@dataclass(frozen=True)
class RefreshCollections:
    pass


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class OpenEntry:
    index: int


@dataclass(frozen=True)
class OpenModal:
    modal: Any


@dataclass(frozen=True)
class CreateEntryRequested:
    parent: Optional[int]
    name: str
    kind: EntryKind
    scope: Optional[CollectionScope]


@dataclass(frozen=True)
class RenameRequested:
    target: int
    new_name: str


@dataclass(frozen=True)
class DeleteRequested:
    target: int


@dataclass(frozen=True)
class ProfileSaveRequested:
    profile: ConnectionProfile
    original_name: Optional[str] = None


@dataclass(frozen=True)
class ProfileDeleteRequested:
    name: str


@dataclass(frozen=True)
class ActivateProfile:
    name: str


@dataclass(frozen=True)
class FindRequested:
    """Move to a match; ``pattern`` None repeats the last search."""

    pattern: Optional[str] = None
    forward: bool = True
    from_start: bool = False


@dataclass(frozen=True)
class ReplaceRequested:
    pattern: str
    replacement: str
    every: bool = False


@dataclass(frozen=True)
class Status:
    message: str
    error: bool = False


Effect = Union[
    RunQuery,
    CancelQuery,
    SaveBuffer,
    RefreshCollections,
    Quit,
    OpenEntry,
    OpenModal,
    CreateEntryRequested,
    RenameRequested,
    DeleteRequested,
    ProfileSaveRequested,
    ProfileDeleteRequested,
    ActivateProfile,
    FindRequested,
    ReplaceRequested,
    Status,
]
