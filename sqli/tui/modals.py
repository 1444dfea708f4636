"""
Modal dialogs

A modal is a plain dataclass describing what is being asked plus the text
the user has typed so far. Modals live on a ``ModalStack``; while the stack
is non-empty every key goes to the top modal. Confirming or cancelling pops
the modal, and a confirm hands back exactly one effect for the controller to
carry out.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Union

from sqli.core.collections import CollectionScope, EntryKind
from sqli.core.profiles import DEFAULT_DRIVER, ConnectionProfile
from sqli.tui.events import (
    CreateEntryRequested,
    DeleteRequested,
    Effect,
    FindRequested,
    KeyPress,
    ProfileDeleteRequested,
    ProfileSaveRequested,
    RenameRequested,
    ReplaceRequested,
)


@dataclass
class TextField:
    """Single-line text input."""

    label: str
    value: str = ""
    secret: bool = False

    def handle(self, event: KeyPress) -> bool:
        if event.key == "backspace":
            self.value = self.value[:-1]
            return True
        if event.key == "ctrl+u":
            self.value = ""
            return True
        char = event.printable
        if char is not None:
            self.value += char
            return True
        return False

    def display(self) -> str:
        return "*" * len(self.value) if self.secret else self.value


@dataclass
class CreateEntry:
    """Name a new file or folder. ``scope`` only matters at the top level."""

    parent: Optional[int]
    kind: EntryKind = EntryKind.FILE
    scope: Optional[CollectionScope] = None
    location: str = ""
    name: TextField = field(default_factory=lambda: TextField("Name"))
    error: str = ""

    @property
    def title(self) -> str:
        return f"New {self.kind.value}"

    @property
    def at_top_level(self) -> bool:
        return self.scope is not None


@dataclass
class RenameEntry:
    target: int
    current_name: str
    name: TextField = field(default_factory=lambda: TextField("Name"))
    error: str = ""

    def __post_init__(self) -> None:
        if not self.name.value:
            self.name.value = self.current_name

    @property
    def title(self) -> str:
        return f"Rename {self.current_name}"


@dataclass
class ConfirmDelete:
    """Yes/no confirmation for removing a collection entry or a profile."""

    label: str
    entry: Optional[int] = None
    profile: Optional[str] = None
    error: str = ""

    @property
    def title(self) -> str:
        return f"Delete {self.label}?"


@dataclass
class SearchEntry:
    """Find, or find and replace, text in the editor buffer."""

    replace: bool = False
    pattern: TextField = field(default_factory=lambda: TextField("Find"))
    replacement: TextField = field(default_factory=lambda: TextField("Replace"))
    focused: int = 0
    error: str = ""

    @property
    def title(self) -> str:
        return "Replace" if self.replace else "Find"

    @property
    def fields(self) -> List[TextField]:
        return [self.pattern, self.replacement] if self.replace else [self.pattern]


PROFILE_FIELDS = ("name", "url", "driver", "host", "port", "database", "user", "password")


@dataclass
class EditConnection:
    """Create (``original`` is None) or edit a connection profile."""

    original: Optional[ConnectionProfile] = None
    fields: List[TextField] = field(default_factory=list)
    focused: int = 0
    error: str = ""

    def __post_init__(self) -> None:
        if self.fields:
            return
        for name in PROFILE_FIELDS:
            value = getattr(self.original, name, None) if self.original else None
            if value is None and name == "driver":
                value = DEFAULT_DRIVER
            self.fields.append(
                TextField(name, "" if value is None else str(value), secret=(name == "password"))
            )

    @property
    def title(self) -> str:
        return f"Edit connection {self.original.name}" if self.original else "New connection"

    def value(self, name: str) -> str:
        return self.fields[PROFILE_FIELDS.index(name)].value.strip()

    def build_profile(self) -> ConnectionProfile:
        """
        Turn the typed values into a profile.

        Raises:
            ValueError: Missing name, missing target or a non-numeric port
        """
        name = self.value("name")
        if not name:
            raise ValueError("Name must not be empty")
        url = self.value("url") or None
        if url is None and not self.value("host") and not self.value("database"):
            raise ValueError("Either a URL or a host/database is required")

        port_text = self.value("port")
        try:
            port = int(port_text) if port_text else None
        except ValueError:
            raise ValueError(f"Invalid port: {port_text}") from None

        values = {
            "name": name,
            "url": url,
            "driver": self.value("driver") or DEFAULT_DRIVER,
            "host": self.value("host") or None,
            "port": port,
            "database": self.value("database") or None,
            "user": self.value("user") or None,
            # An untouched secret keeps its stored value; blank means none
            "password": self.fields[PROFILE_FIELDS.index("password")].value or None,
        }
        if self.original is not None:
            return dataclasses.replace(self.original, **values)
        return ConnectionProfile(**values)


Modal = Union[CreateEntry, RenameEntry, ConfirmDelete, EditConnection, SearchEntry]


def _confirm_create(modal: CreateEntry) -> Optional[Effect]:
    name = modal.name.value.strip()
    if not name:
        modal.error = "Name must not be empty"
        return None
    if "/" in name or "\\" in name or name in (".", ".."):
        modal.error = "Name must be a single path component"
        return None
    return CreateEntryRequested(parent=modal.parent, name=name, kind=modal.kind, scope=modal.scope)


def _confirm_rename(modal: RenameEntry) -> Optional[Effect]:
    name = modal.name.value.strip()
    if not name:
        modal.error = "Name must not be empty"
        return None
    if "/" in name or "\\" in name or name in (".", ".."):
        modal.error = "Name must be a single path component"
        return None
    return RenameRequested(target=modal.target, new_name=name)


def _confirm_delete(modal: ConfirmDelete) -> Optional[Effect]:
    if modal.profile is not None:
        return ProfileDeleteRequested(modal.profile)
    return DeleteRequested(modal.entry)


def _confirm_connection(modal: EditConnection) -> Optional[Effect]:
    try:
        profile = modal.build_profile()
    except ValueError as e:
        modal.error = str(e)
        return None
    original_name = modal.original.name if modal.original else None
    return ProfileSaveRequested(profile=profile, original_name=original_name)


def _confirm_search(modal: SearchEntry, every: bool = False) -> Optional[Effect]:
    pattern = modal.pattern.value
    if not pattern:
        modal.error = "Nothing to search for"
        return None
    if modal.replace:
        return ReplaceRequested(pattern=pattern, replacement=modal.replacement.value, every=every)
    return FindRequested(pattern=pattern, from_start=True)


def _keys_create(modal: CreateEntry, event: KeyPress) -> None:
    if event.key == "tab":
        modal.kind = EntryKind.FOLDER if modal.kind is EntryKind.FILE else EntryKind.FILE
    elif event.key == "ctrl+t" and modal.at_top_level:
        modal.scope = (
            CollectionScope.USER if modal.scope is CollectionScope.LOCAL else CollectionScope.LOCAL
        )
    elif modal.name.handle(event):
        modal.error = ""


def _keys_rename(modal: RenameEntry, event: KeyPress) -> None:
    if modal.name.handle(event):
        modal.error = ""


def _keys_delete(modal: ConfirmDelete, event: KeyPress) -> None:
    pass


def _keys_connection(modal: EditConnection, event: KeyPress) -> None:
    if event.key in ("tab", "down"):
        modal.focused = (modal.focused + 1) % len(modal.fields)
    elif event.key in ("shift+tab", "up"):
        modal.focused = (modal.focused - 1) % len(modal.fields)
    elif modal.fields[modal.focused].handle(event):
        modal.error = ""


def _keys_search(modal: SearchEntry, event: KeyPress) -> Optional[Effect]:
    if event.key in ("tab", "shift+tab") and modal.replace:
        modal.focused = 1 - modal.focused
    elif event.key in ("down", "up"):
        # Step through matches without closing
        if modal.pattern.value:
            return FindRequested(pattern=modal.pattern.value, forward=event.key == "down")
    elif modal.fields[modal.focused].handle(event):
        modal.error = ""
    return None


_CONFIRM: Dict[type, Callable[..., Optional[Effect]]] = {
    CreateEntry: _confirm_create,
    RenameEntry: _confirm_rename,
    ConfirmDelete: _confirm_delete,
    EditConnection: _confirm_connection,
    SearchEntry: _confirm_search,
}

_KEYS: Dict[type, Callable[..., Optional[Effect]]] = {
    CreateEntry: _keys_create,
    RenameEntry: _keys_rename,
    ConfirmDelete: _keys_delete,
    EditConnection: _keys_connection,
    SearchEntry: _keys_search,
}


class ModalStack:
    """LIFO of open modals; only the top one receives input."""

    def __init__(self) -> None:
        self._stack: List[Modal] = []

    def push(self, modal: Modal) -> None:
        if type(modal) not in _CONFIRM:
            raise TypeError(f"Not a modal: {modal!r}")
        self._stack.append(modal)

    def pop(self) -> Optional[Modal]:
        return self._stack.pop() if self._stack else None

    @property
    def top(self) -> Optional[Modal]:
        return self._stack[-1] if self._stack else None

    def __len__(self) -> int:
        return len(self._stack)

    def __bool__(self) -> bool:
        return bool(self._stack)

    def __iter__(self):
        return iter(self._stack)

    def handle_key(self, event: KeyPress) -> List[Effect]:
        """Route a key to the top modal; returns the effect it produced, if any."""
        modal = self.top
        if modal is None:
            return []

        if event.key == "escape":
            self.pop()
            return []
        if event.key == "enter" or (isinstance(modal, ConfirmDelete) and event.key in ("y", "Y")):
            effect = _CONFIRM[type(modal)](modal)
            if effect is None:
                return []
            self.pop()
            return [effect]
        if isinstance(modal, ConfirmDelete) and event.key in ("n", "N"):
            self.pop()
            return []
        if isinstance(modal, SearchEntry) and modal.replace and event.key == "ctrl+a":
            effect = _confirm_search(modal, every=True)
            if effect is None:
                return []
            self.pop()
            return [effect]

        effect = _KEYS[type(modal)](modal, event)
        return [effect] if effect is not None else []
