"""
Session controller

Owns the AppState and the core services. Input events go through
``dispatch`` to the modal stack or the focus manager, which return effects;
``apply`` carries the effects out against the profile store, the collection
manager and the query engine. Nothing here blocks: queries run on the
engine's worker thread and the front end calls ``poll_completion`` on a timer.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple

from sqli.core.collections import CollectionManager, CollectionScope, EntryKind
from sqli.core.config import Settings
from sqli.core.errors import BusyError, SqliError
from sqli.core.executor import QueryEngine, QueryHandle
from sqli.core.profiles import ProfileStore
from sqli.core.types import QueryRequest, QueryResult
from sqli.tui import focus
from sqli.tui.events import (
    ActivateProfile,
    BufferEdited,
    CancelQuery,
    CreateEntryRequested,
    DeleteRequested,
    Effect,
    FindRequested,
    KeyPress,
    OpenEntry,
    OpenModal,
    ProfileDeleteRequested,
    ProfileSaveRequested,
    Quit,
    RefreshCollections,
    RenameRequested,
    ReplaceRequested,
    RunQuery,
    SaveBuffer,
    Status,
    normalize_key,
)
from sqli.tui.search import find, location, replace_all, replace_at
from sqli.tui.state import AppState, EditorBuffer, Mode, Pane

ViewKey = Tuple[Optional[CollectionScope], Path]


def _within(path: Optional[Path], ancestor: Path) -> bool:
    if path is None:
        return False
    return path == ancestor or ancestor in path.parents


class SessionController:
    """
    Glue between input, view state and the core services.

    Example:
        >>> controller = SessionController(Settings.from_env())
        >>> effects = controller.handle(KeyPress("ctrl+n"))
        >>> controller.state.modals.top
        CreateEntry(...)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        profiles: Optional[ProfileStore] = None,
        collections: Optional[CollectionManager] = None,
        engine: Optional[QueryEngine] = None,
    ):
        settings = settings or Settings.from_env()
        self.settings = settings
        # A broken config or collection root is reported on the status line, not raised
        self.profiles = profiles or ProfileStore(settings.config_path, strict=False)
        self.collections = collections or CollectionManager(
            settings.user_collections_dir, settings.workspace_dir, strict=False
        )
        self.engine = engine or QueryEngine(self.profiles)
        self.state = AppState()
        self._pending: Optional[QueryHandle] = None

        self._sync_profiles()
        self._sync_tree()
        self._report_load_errors()

    # Input

    def dispatch(self, event) -> List[Effect]:
        """Route one input event; unknown or malformed events yield nothing."""
        if isinstance(event, BufferEdited):
            if isinstance(event.text, str):
                if event.text != self.state.buffer.text:
                    self.state.search.match = None
                self.state.buffer.text = event.text
            return []
        if not isinstance(event, KeyPress):
            return []

        key = normalize_key(event.key)
        if key is None:
            return []
        event = KeyPress(key, event.character)

        if self.state.modals:
            return self.state.modals.handle_key(event)
        return focus.handle_key(self.state, event)

    def apply(self, effects: List[Effect]) -> None:
        for effect in effects:
            handler = self._EFFECT_HANDLERS.get(type(effect))
            if handler is None:
                continue
            try:
                handler(self, effect)
            except SqliError as e:
                self.state.set_status(str(e), error=True)

    def handle(self, event) -> List[Effect]:
        effects = self.dispatch(event)
        self.apply(effects)
        return effects

    # Queries

    def submit_query(self, request: QueryRequest) -> QueryHandle:
        """
        Start a query.

        Raises:
            BusyError: Another query is still in flight
        """
        if self._pending is not None:
            raise BusyError()
        handle = self.engine.execute(request)
        self._pending = handle
        self.state.pending = request
        return handle

    def poll_completion(self) -> Optional[QueryResult]:
        """Collect the in-flight result if it is ready; never blocks."""
        handle = self._pending
        if handle is None or not handle.done():
            return None
        result = handle.result()
        self._pending = None
        self.state.pending = None
        self._show_result(result)
        return result

    def cancel_query(self) -> bool:
        """Abandon the in-flight query. Returns False when nothing was running."""
        handle = self._pending
        if handle is None:
            return False
        handle.cancel()
        self._pending = None
        self.state.pending = None
        self._show_result(handle.result())
        return True

    def quit(self) -> None:
        self.cancel_query()
        self.state.should_quit = True

    def _show_result(self, result: QueryResult) -> None:
        state = self.state
        state.last_result = result
        state.result_cursor = 0
        if result.ok:
            rows = result.row_count
            state.set_status(f"{rows} row{'s' if rows != 1 else ''} in {result.elapsed:.3f}s")
        else:
            state.set_status(str(result.error), error=True)

    # Sync helpers

    def _sync_profiles(self, select: Optional[str] = None) -> None:
        state = self.state
        state.profiles = self.profiles.list()
        if state.active_profile is not None and self.profiles.find(state.active_profile) is None:
            state.active_profile = None
        if select is not None:
            names = [p.name.casefold() for p in state.profiles]
            if select.casefold() in names:
                state.selected_profile = names.index(select.casefold())
        state.selected_profile = max(0, min(state.selected_profile, len(state.profiles) - 1))

    def _view_keys(self) -> Tuple[Optional[ViewKey], Set[ViewKey]]:
        tree = self.state.tree
        selected = None
        if self.state.selected_entry in tree:
            entry = tree[self.state.selected_entry]
            selected = (entry.scope, entry.path)
        expanded = {(tree[i].scope, tree[i].path) for i in self.state.expanded if i in tree}
        return selected, expanded

    def _sync_tree(self, keys: Optional[Tuple[Optional[ViewKey], Set[ViewKey]]] = None) -> None:
        """Point the view at the manager's tree, keeping selection and expansion by path."""
        state = self.state
        state.tree = self.collections.tree
        selected, expanded = keys if keys is not None else (None, set())

        by_key = {(entry.scope, entry.path): entry.index for entry in state.tree.walk()}
        state.expanded = {by_key[k] for k in expanded if k in by_key}
        if selected is not None and selected in by_key:
            state.selected_entry = by_key[selected]
        elif (
            keys is not None
            or state.selected_entry not in state.tree
            or state.selected_entry == state.tree.root
        ):
            rows = state.visible_entries()
            state.selected_entry = rows[0][0] if rows else None

    def _report_load_errors(self) -> None:
        errors = [str(e) for e in (self.profiles.load_error, self.collections.load_error) if e is not None]
        if errors:
            self.state.set_status("; ".join(errors), error=True)

    def _buffer_entry(self) -> Optional[int]:
        buffer = self.state.buffer
        if buffer.path is None or buffer.scope is None:
            return None
        return self.state.tree.find(buffer.path, buffer.scope)

    # Effect handlers

    def _run(self, effect: RunQuery) -> None:
        state = self.state
        buffer = state.buffer
        if not buffer.text.strip():
            state.set_status("No query to execute", error=True)
            return
        if state.active_profile is None:
            state.set_status("No active connection: select one in Connections and press Enter", error=True)
            return

        if buffer.path is not None and not buffer.dirty:
            request = QueryRequest.from_file(buffer.path, profile=state.active_profile)
        else:
            request = QueryRequest.inline(buffer.text, profile=state.active_profile)

        try:
            self.submit_query(request)
        except BusyError as e:
            state.set_status(f"{e}; press Ctrl+X to cancel it", error=True)
            return
        state.set_status(f"Running on {state.active_profile}...")

    def _cancel(self, effect: CancelQuery) -> None:
        if not self.cancel_query():
            self.state.set_status("No query is running")

    def _save(self, effect: SaveBuffer) -> None:
        state = self.state
        index = self._buffer_entry()
        if index is None:
            state.set_status("No file open; create one in Collections with Ctrl+N", error=True)
            return
        self.collections.save(index, state.buffer.text)
        state.buffer.saved_text = state.buffer.text
        state.set_status(f"Saved {state.buffer.path.name}")

    def _open(self, effect: OpenEntry) -> None:
        state = self.state
        entry = state.tree[effect.index]
        discarded = state.buffer.title if state.buffer.dirty and state.buffer.text.strip() else None
        text = self.collections.load(entry.index)
        state.buffer = EditorBuffer(text=text, path=entry.path, scope=entry.scope, saved_text=text)
        state.search.match = None
        state.focus = Pane.EDITOR
        state.mode = Mode.EDIT
        if discarded:
            state.set_status(f"Opened {entry.name}; unsaved changes in {discarded} were discarded")
        else:
            state.set_status(f"Opened {entry.name}")

    def _open_modal(self, effect: OpenModal) -> None:
        self.state.modals.push(effect.modal)

    def _create(self, effect: CreateEntryRequested) -> None:
        state = self.state
        keys = self._view_keys()
        index = self.collections.create(effect.parent, effect.name, effect.kind, effect.scope)
        self._sync_tree(keys)

        entry = state.tree[index]
        if entry.parent is not None and entry.parent != state.tree.root:
            state.expanded.add(entry.parent)
        state.selected_entry = index
        state.set_status(f"Created {state.tree.label(index)}")
        if effect.kind is EntryKind.FILE:
            self._open(OpenEntry(index))

    def _rename(self, effect: RenameRequested) -> None:
        state = self.state
        entry = state.tree[effect.target]
        old_path, old_name = entry.path, entry.name
        keys = self._view_keys()
        index = self.collections.rename(effect.target, effect.new_name)
        new_path = self.collections.tree[index].path

        selected, expanded = keys

        def moved(key: ViewKey) -> ViewKey:
            if _within(key[1], old_path):
                return key[0], new_path / key[1].relative_to(old_path)
            return key

        self._sync_tree((moved(selected) if selected else None, {moved(k) for k in expanded}))
        state.selected_entry = index

        buffer = state.buffer
        if buffer.scope is entry.scope and _within(buffer.path, old_path):
            buffer.path = new_path / buffer.path.relative_to(old_path)
        state.set_status(f"Renamed {old_name} to {state.tree[index].name}")

    def _delete(self, effect: DeleteRequested) -> None:
        state = self.state
        entry = state.tree[effect.target]
        path, scope, label = entry.path, entry.scope, state.tree.label(entry.index)
        keys = self._view_keys()
        self.collections.delete(effect.target)
        self._sync_tree(keys)

        buffer = state.buffer
        if buffer.scope is scope and _within(buffer.path, path):
            # Keep the text so it can still be run, but it no longer has a file
            buffer.path = None
            buffer.scope = None
            buffer.saved_text = ""
        state.set_status(f"Deleted {label}")

    def _save_profile(self, effect: ProfileSaveRequested) -> None:
        state = self.state
        profile = effect.profile
        original = effect.original_name
        renamed = original is not None and original.casefold() != profile.name.casefold()
        if renamed and self.profiles.find(profile.name) is not None:
            state.set_status(f"Connection '{profile.name}' already exists", error=True)
            return

        self.profiles.put(profile)
        if renamed:
            self.profiles.delete(original)
            if state.active_profile is not None and state.active_profile.casefold() == original.casefold():
                state.active_profile = profile.name
        self._sync_profiles(select=profile.name)
        state.set_status(f"Saved connection {profile.name}")

    def _delete_profile(self, effect: ProfileDeleteRequested) -> None:
        self.profiles.delete(effect.name)
        self._sync_profiles()
        self.state.set_status(f"Deleted connection {effect.name}")

    def _activate(self, effect: ActivateProfile) -> None:
        profile = self.profiles.get(effect.name)
        self.state.active_profile = profile.name
        self.state.set_status(f"Using connection {profile.name}")

    def _refresh(self, effect: RefreshCollections) -> None:
        keys = self._view_keys()
        self.collections.refresh()
        self._sync_tree(keys)
        if self.profiles.load_error is not None:
            self.profiles.load()
            self._sync_profiles()
        self.state.set_status("Collections reloaded")

    def _find(self, effect: FindRequested) -> None:
        state = self.state
        search = state.search
        if effect.pattern is not None:
            search.pattern = effect.pattern
        if not search.pattern:
            state.set_status("Nothing to search for: press Ctrl+F in the editor", error=True)
            return

        text = state.buffer.text
        if effect.from_start or search.match is None:
            start = 0 if effect.forward else len(text)
        else:
            start = search.match + 1 if effect.forward else search.match
        search.match = find(text, search.pattern, start, effect.forward)
        if search.match is None:
            state.set_status(f"Pattern not found: {search.pattern}", error=True)
            return
        row, column = location(text, search.match)
        state.set_status(f"'{search.pattern}' at line {row + 1}, column {column + 1}")

    def _replace(self, effect: ReplaceRequested) -> None:
        state = self.state
        buffer, search = state.buffer, state.search
        pattern, replacement = effect.pattern, effect.replacement
        search.pattern, search.replacement = pattern, replacement

        if effect.every:
            buffer.text, count = replace_all(buffer.text, pattern, replacement)
            search.match = None
            state.set_status(f"Replaced {count} occurrence{'s' if count != 1 else ''}")
            return

        # The match on screen is replaced first, otherwise the next one after it
        offset = search.match
        if offset is None or replace_at(buffer.text, offset, pattern, replacement) is None:
            offset = find(buffer.text, pattern, offset or 0)
        if offset is None:
            search.match = None
            state.set_status("No more matches", error=True)
            return
        buffer.text = replace_at(buffer.text, offset, pattern, replacement)
        search.match = find(buffer.text, pattern, offset + len(replacement))
        state.set_status("Replaced occurrence")

    def _status(self, effect: Status) -> None:
        self.state.set_status(effect.message, error=effect.error)

    def _quit(self, effect: Quit) -> None:
        self.quit()

    _EFFECT_HANDLERS: Dict[type, Callable[["SessionController", Effect], None]] = {
        RunQuery: _run,
        CancelQuery: _cancel,
        SaveBuffer: _save,
        OpenEntry: _open,
        OpenModal: _open_modal,
        CreateEntryRequested: _create,
        RenameRequested: _rename,
        DeleteRequested: _delete,
        ProfileSaveRequested: _save_profile,
        ProfileDeleteRequested: _delete_profile,
        ActivateProfile: _activate,
        FindRequested: _find,
        ReplaceRequested: _replace,
        RefreshCollections: _refresh,
        Status: _status,
        Quit: _quit,
    }
