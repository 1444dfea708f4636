"""
Pane focus and key routing

Keys map to commands through two tables. ``GLOBAL_KEYMAP`` is keyed by
(mode, key); ``None`` as the mode means the binding applies in both modes.
``PANE_KEYMAP`` is keyed by (pane, key) and only consulted in Edit mode,
where it wins over the global table. Command handlers mutate view state
(focus, mode, selection, scroll) directly and return effects for anything
that touches disk, profiles or the query engine.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from sqli.core.collections import CollectionScope, EntryKind
from sqli.tui.events import (
    ActivateProfile,
    CancelQuery,
    Effect,
    FindRequested,
    KeyPress,
    OpenEntry,
    OpenModal,
    Quit,
    RefreshCollections,
    RunQuery,
    SaveBuffer,
    Status,
)
from sqli.tui.modals import (
    ConfirmDelete,
    CreateEntry,
    EditConnection,
    RenameEntry,
    SearchEntry,
    TextField,
)
from sqli.tui.state import PANE_ORDER, AppState, Mode, Pane

PAGE_SIZE = 20


class Command(Enum):
    FOCUS_NEXT = "focus_next"
    FOCUS_PREV = "focus_prev"
    ENTER_EDIT = "enter_edit"
    EXIT_EDIT = "exit_edit"
    NEW_ENTRY = "new_entry"
    EDIT_ENTRY = "edit_entry"
    DELETE_ENTRY = "delete_entry"
    SAVE = "save"
    RUN_QUERY = "run_query"
    CANCEL_QUERY = "cancel_query"
    REFRESH = "refresh"
    QUIT = "quit"
    MOVE_UP = "move_up"
    MOVE_DOWN = "move_down"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"
    ACTIVATE = "activate"
    EXPAND = "expand"
    COLLAPSE = "collapse"
    FIND = "find"
    REPLACE = "replace"
    FIND_NEXT = "find_next"
    FIND_PREV = "find_prev"


GLOBAL_KEYMAP: Dict[Tuple[Optional[Mode], str], Command] = {
    (Mode.NAVIGATION, "tab"): Command.FOCUS_NEXT,
    (Mode.NAVIGATION, "right"): Command.FOCUS_NEXT,
    (Mode.NAVIGATION, "down"): Command.FOCUS_NEXT,
    (Mode.NAVIGATION, "shift+tab"): Command.FOCUS_PREV,
    (Mode.NAVIGATION, "left"): Command.FOCUS_PREV,
    (Mode.NAVIGATION, "up"): Command.FOCUS_PREV,
    (Mode.NAVIGATION, "enter"): Command.ENTER_EDIT,
    (Mode.NAVIGATION, "space"): Command.ENTER_EDIT,
    (Mode.EDIT, "escape"): Command.EXIT_EDIT,
    (None, "ctrl+n"): Command.NEW_ENTRY,
    (None, "ctrl+e"): Command.EDIT_ENTRY,
    (None, "ctrl+s"): Command.SAVE,
    (None, "ctrl+space"): Command.RUN_QUERY,
    (None, "f9"): Command.RUN_QUERY,
    (None, "ctrl+x"): Command.CANCEL_QUERY,
    (None, "ctrl+f"): Command.FIND,
    (None, "ctrl+r"): Command.REPLACE,
    (None, "f3"): Command.FIND_NEXT,
    (None, "shift+f3"): Command.FIND_PREV,
    (None, "f5"): Command.REFRESH,
    (None, "ctrl+c"): Command.QUIT,
}

PANE_KEYMAP: Dict[Tuple[Pane, str], Command] = {
    (Pane.CONNECTIONS, "up"): Command.MOVE_UP,
    (Pane.CONNECTIONS, "down"): Command.MOVE_DOWN,
    (Pane.CONNECTIONS, "enter"): Command.ACTIVATE,
    (Pane.CONNECTIONS, "delete"): Command.DELETE_ENTRY,
    (Pane.COLLECTIONS, "up"): Command.MOVE_UP,
    (Pane.COLLECTIONS, "down"): Command.MOVE_DOWN,
    (Pane.COLLECTIONS, "enter"): Command.ACTIVATE,
    (Pane.COLLECTIONS, "space"): Command.ACTIVATE,
    (Pane.COLLECTIONS, "right"): Command.EXPAND,
    (Pane.COLLECTIONS, "left"): Command.COLLAPSE,
    (Pane.COLLECTIONS, "delete"): Command.DELETE_ENTRY,
    (Pane.RESULTS, "up"): Command.MOVE_UP,
    (Pane.RESULTS, "down"): Command.MOVE_DOWN,
    (Pane.RESULTS, "pageup"): Command.PAGE_UP,
    (Pane.RESULTS, "pagedown"): Command.PAGE_DOWN,
}


def lookup(state: AppState, key: str) -> Optional[Command]:
    """Resolve a key to a command for the current mode and focus."""
    if state.mode is Mode.EDIT:
        command = PANE_KEYMAP.get((state.focus, key))
        if command is not None:
            return command
    return GLOBAL_KEYMAP.get((state.mode, key)) or GLOBAL_KEYMAP.get((None, key))


def handle_key(state: AppState, event: KeyPress) -> List[Effect]:
    command = lookup(state, event.key)
    if command is None:
        return []
    return COMMAND_HANDLERS[command](state)


def _cycle(state: AppState, step: int) -> List[Effect]:
    position = PANE_ORDER.index(state.focus)
    state.focus = PANE_ORDER[(position + step) % len(PANE_ORDER)]
    return []


def _enter_edit(state: AppState) -> List[Effect]:
    state.mode = Mode.EDIT
    return []


def _exit_edit(state: AppState) -> List[Effect]:
    state.mode = Mode.NAVIGATION
    return []


def _selected_profile_name(state: AppState) -> Optional[str]:
    if 0 <= state.selected_profile < len(state.profiles):
        return state.profiles[state.selected_profile].name
    return None


def _new_entry(state: AppState) -> List[Effect]:
    if state.focus is Pane.CONNECTIONS:
        return [OpenModal(EditConnection())]

    tree = state.tree
    if tree.root is None:
        return [Status("Collections are unavailable", error=True)]

    parent = tree.root
    if state.selected_entry in tree:
        entry = tree[state.selected_entry]
        parent = entry.index if entry.is_folder else entry.parent

    if parent == tree.root:
        return [OpenModal(CreateEntry(parent=parent, scope=CollectionScope.LOCAL, location="top level"))]
    folder = tree[parent]
    return [OpenModal(CreateEntry(parent=parent, location=f"{folder.name} ({folder.scope})"))]


def _edit_entry(state: AppState) -> List[Effect]:
    if state.focus is Pane.CONNECTIONS:
        name = _selected_profile_name(state)
        if name is None:
            return [Status("No connection selected", error=True)]
        return [OpenModal(EditConnection(original=state.profiles[state.selected_profile]))]

    tree = state.tree
    if state.selected_entry not in tree or tree[state.selected_entry].kind is EntryKind.ROOT:
        return [Status("Nothing selected to rename", error=True)]
    entry = tree[state.selected_entry]
    return [OpenModal(RenameEntry(target=entry.index, current_name=entry.name))]


def _delete_entry(state: AppState) -> List[Effect]:
    if state.focus is Pane.CONNECTIONS:
        name = _selected_profile_name(state)
        if name is None:
            return []
        return [OpenModal(ConfirmDelete(label=f"connection '{name}'", profile=name))]

    tree = state.tree
    if state.selected_entry not in tree:
        return []
    entry = tree[state.selected_entry]
    return [OpenModal(ConfirmDelete(label=tree.label(entry.index), entry=entry.index))]


def _move(state: AppState, step: int) -> List[Effect]:
    if state.focus is Pane.CONNECTIONS:
        if state.profiles:
            state.selected_profile = max(0, min(len(state.profiles) - 1, state.selected_profile + step))
    elif state.focus is Pane.COLLECTIONS:
        rows = [index for index, _ in state.visible_entries()]
        if not rows:
            state.selected_entry = None
        elif state.selected_entry not in rows:
            state.selected_entry = rows[0]
        else:
            position = rows.index(state.selected_entry) + step
            state.selected_entry = rows[max(0, min(len(rows) - 1, position))]
    elif state.focus is Pane.RESULTS:
        total = state.last_result.row_count if state.last_result else 0
        state.result_cursor = max(0, min(max(total - 1, 0), state.result_cursor + step))
    return []


def _activate(state: AppState) -> List[Effect]:
    if state.focus is Pane.CONNECTIONS:
        name = _selected_profile_name(state)
        return [ActivateProfile(name)] if name is not None else []

    if state.focus is Pane.COLLECTIONS:
        tree = state.tree
        if state.selected_entry not in tree:
            return []
        entry = tree[state.selected_entry]
        if entry.is_folder:
            state.expanded.symmetric_difference_update({entry.index})
            return []
        return [OpenEntry(entry.index)]
    return []


def _set_expanded(state: AppState, expanded: bool) -> List[Effect]:
    tree = state.tree
    if state.selected_entry not in tree:
        return []
    entry = tree[state.selected_entry]
    if entry.is_folder:
        if expanded:
            state.expanded.add(entry.index)
        else:
            state.expanded.discard(entry.index)
    elif not expanded and entry.parent is not None and entry.parent != tree.root:
        # Collapsing on a file jumps to its folder
        state.expanded.discard(entry.parent)
        state.selected_entry = entry.parent
    return []


def _open_search(state: AppState, replace: bool) -> List[Effect]:
    if state.focus is not Pane.EDITOR:
        return [Status("Focus the editor to search it", error=True)]
    search = state.search
    modal = SearchEntry(
        replace=replace,
        pattern=TextField("Find", search.pattern),
        replacement=TextField("Replace", search.replacement),
    )
    return [OpenModal(modal)]


COMMAND_HANDLERS: Dict[Command, Callable[[AppState], List[Effect]]] = {
    Command.FOCUS_NEXT: lambda s: _cycle(s, 1),
    Command.FOCUS_PREV: lambda s: _cycle(s, -1),
    Command.ENTER_EDIT: _enter_edit,
    Command.EXIT_EDIT: _exit_edit,
    Command.NEW_ENTRY: _new_entry,
    Command.EDIT_ENTRY: _edit_entry,
    Command.DELETE_ENTRY: _delete_entry,
    Command.SAVE: lambda s: [SaveBuffer()],
    Command.RUN_QUERY: lambda s: [RunQuery()],
    Command.CANCEL_QUERY: lambda s: [CancelQuery()],
    Command.REFRESH: lambda s: [RefreshCollections()],
    Command.QUIT: lambda s: [Quit()],
    Command.MOVE_UP: lambda s: _move(s, -1),
    Command.MOVE_DOWN: lambda s: _move(s, 1),
    Command.PAGE_UP: lambda s: _move(s, -PAGE_SIZE),
    Command.PAGE_DOWN: lambda s: _move(s, PAGE_SIZE),
    Command.ACTIVATE: _activate,
    Command.EXPAND: lambda s: _set_expanded(s, True),
    Command.COLLAPSE: lambda s: _set_expanded(s, False),
    Command.FIND: lambda s: _open_search(s, False),
    Command.REPLACE: lambda s: _open_search(s, True),
    Command.FIND_NEXT: lambda s: [FindRequested(forward=True)],
    Command.FIND_PREV: lambda s: [FindRequested(forward=False)],
}
