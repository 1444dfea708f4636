"""
sqli terminal workspace

Textual front end for the SessionController. The widgets here only render
AppState and forward input: keys become ``KeyPress`` events, edits in the
query editor become ``BufferEdited`` events, and a 50 ms timer collects
finished queries. The editor is the only widget that ever takes focus, and
only while the Editor pane is in Edit mode.
"""

from typing import List, Optional, Tuple

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import Key
from textual.screen import ModalScreen
from textual.widgets import DataTable, Footer, Header, Static, TextArea
from textual.widgets.text_area import Selection

from sqli.cli.formatters.base import display_value
from sqli.core.config import Settings
from sqli.core.types import QueryResult
from sqli.tui.controller import SessionController
from sqli.tui.events import BufferEdited, KeyPress
from sqli.tui.modals import (
    ConfirmDelete,
    CreateEntry,
    EditConnection,
    RenameEntry,
    SearchEntry,
    TextField,
)
from sqli.tui.search import location
from sqli.tui.state import AppState, Mode, Pane

POLL_INTERVAL = 0.05

PANE_IDS = {
    Pane.CONNECTIONS: "connections-pane",
    Pane.COLLECTIONS: "collections-pane",
    Pane.EDITOR: "editor-pane",
    Pane.RESULTS: "results-pane",
}


class StatusBar(Static):
    """Status bar showing mode, focus, the active connection and messages."""

    def __init__(self, **kwargs) -> None:
        super().__init__("", **kwargs)

    def update_status(self, state: AppState) -> None:
        parts = [state.mode.value.upper(), state.focus.value]
        parts.append(f"conn: {state.active_profile or '-'}")
        if state.running:
            parts.append("running... (Ctrl+X to cancel)")
        if state.status:
            parts.append(state.status)
        self.update(Text(" | ".join(parts)))
        self.set_class(state.status_is_error, "error")


class ResultsViewer(DataTable):
    """Result rows; scrolled by the controller, never focused."""

    def __init__(self, **kwargs) -> None:
        super().__init__(zebra_stripes=True, cursor_type="row", **kwargs)
        self.can_focus = False

    def show(self, result: Optional[QueryResult]) -> None:
        self.clear(columns=True)
        if result is None or not result.ok:
            return
        for column in result.columns:
            label = f"{column.name} ({column.type_name})" if column.type_name else column.name
            self.add_column(label)
        for row in result.rows:
            self.add_row(*(Text("NULL", style="dim") if v is None else display_value(v) for v in row))


def _window(count: int, position: int, height: int) -> Tuple[int, int]:
    """Slice bounds that keep ``position`` on screen."""
    if height <= 0 or count <= height:
        return 0, count
    start = max(0, min(position - height // 2, count - height))
    return start, start + height


def render_connections(state: AppState, height: int = 0) -> Text:
    text = Text()
    if not state.profiles:
        text.append("No connections. Ctrl+N to add one.", style="dim")
        return text
    start, end = _window(len(state.profiles), state.selected_profile, height)
    for i in range(start, end):
        profile = state.profiles[i]
        selected = i == state.selected_profile
        active = state.active_profile is not None and profile.name == state.active_profile
        marker = "> " if selected else "  "
        style = "reverse" if selected and state.focus is Pane.CONNECTIONS else ""
        text.append(f"{marker}{'* ' if active else '  '}{profile.name}", style=style)
        text.append("\n")
    return text


def render_collections(state: AppState, height: int = 0) -> Text:
    text = Text()
    rows = state.visible_entries()
    if not rows:
        text.append("No saved queries. Ctrl+N to create one.", style="dim")
        return text
    positions = [index for index, _ in rows]
    position = positions.index(state.selected_entry) if state.selected_entry in positions else 0
    start, end = _window(len(rows), position, height)
    for index, depth in rows[start:end]:
        entry = state.tree[index]
        if entry.is_folder:
            icon = "v " if index in state.expanded else "> "
        else:
            icon = "  "
        selected = index == state.selected_entry
        style = "reverse" if selected and state.focus is Pane.COLLECTIONS else ("bold" if selected else "")
        text.append("  " * depth + icon + state.tree.label(index), style=style)
        text.append("\n")
    return text


def _render_fields(text: Text, fields: List[TextField], focused: int) -> None:
    for i, field in enumerate(fields):
        cursor = "_" if i == focused else ""
        style = "reverse" if i == focused else ""
        text.append(f"{field.label:>9}: ", style="bold")
        text.append(field.display() + cursor, style=style)
        text.append("\n")


def render_modal(state: AppState) -> Optional[Text]:
    modal = state.modals.top
    if modal is None:
        return None
    text = Text()
    text.append(modal.title + "\n\n", style="bold")

    if isinstance(modal, CreateEntry):
        text.append(f"In: {modal.location}\n")
        text.append(f"Kind: {modal.kind.value}  (Tab to switch)\n")
        if modal.at_top_level:
            text.append(f"Scope: {modal.scope}  (Ctrl+T to switch)\n")
        text.append(f"Name: {modal.name.value}_\n")
    elif isinstance(modal, RenameEntry):
        text.append(f"Name: {modal.name.value}_\n")
    elif isinstance(modal, ConfirmDelete):
        text.append("Enter or y to delete, Esc or n to keep\n")
    elif isinstance(modal, EditConnection):
        _render_fields(text, modal.fields, modal.focused)
        text.append("\nTab/Up/Down: field  Enter: save  Esc: cancel\n", style="dim")
    elif isinstance(modal, SearchEntry):
        _render_fields(text, modal.fields, modal.focused)
        if modal.replace:
            text.append("\nEnter: replace  Ctrl+A: replace all  Tab: field", style="dim")
        else:
            text.append("\nEnter: first match", style="dim")
        text.append("  Up/Down: matches  Esc: close\n", style="dim")

    if modal.error:
        text.append("\n" + modal.error, style="bold red")
    return text


class ModalView(ModalScreen):
    """Shows the top of the controller's modal stack; keys still go to the controller."""

    DEFAULT_CSS = """
    ModalView {
        align: center middle;
    }

    #modal-body {
        width: 64;
        height: auto;
        border: thick $accent;
        background: $panel;
        padding: 1 2;
    }
    """

    def __init__(self, content: Text, **kwargs) -> None:
        super().__init__(**kwargs)
        self._body = Static(content, id="modal-body")

    def compose(self) -> ComposeResult:
        yield self._body

    def show(self, content: Text) -> None:
        self._body.update(content)


class SqliApp(App):
    """
    sqli interactive workspace.

    Connections and saved queries on the left, the query editor and its
    results on the right.
    """

    CSS = """
    Screen {
        background: $surface;
    }

    #workspace {
        height: 1fr;
    }

    #sidebar {
        width: 34;
        height: 100%;
    }

    #main {
        width: 1fr;
        height: 100%;
    }

    .pane {
        border: round $primary-background;
        padding: 0 1;
    }

    .pane.focused {
        border: round $accent;
    }

    .pane.editing {
        border: double $success;
    }

    #connections-pane {
        height: 10;
    }

    #collections-pane {
        height: 1fr;
    }

    #editor-pane {
        height: 1fr;
        padding: 0;
    }

    #results-pane {
        height: 1fr;
        padding: 0;
    }

    ResultsViewer {
        height: 1fr;
    }

    /* Fixed height so an error never reflows the panes */
    #results-error {
        height: 3;
        color: $error;
        padding: 0 1;
    }

    #status-bar {
        height: 1;
        background: $boost;
        padding: 0 1;
    }

    #status-bar.error {
        color: $error;
        text-style: bold;
    }
    """

    BINDINGS = [
        Binding("escape", "press('escape')", "Back", priority=True),
        Binding("tab", "press('tab')", "Next pane", show=False, priority=True),
        Binding("shift+tab", "press('shift+tab')", "Prev pane", show=False, priority=True),
        Binding("ctrl+space,ctrl+@,f9", "press('ctrl+space')", "Run", priority=True),
        Binding("ctrl+x", "press('ctrl+x')", "Cancel", priority=True),
        Binding("ctrl+f", "press('ctrl+f')", "Find", priority=True),
        Binding("ctrl+r", "press('ctrl+r')", "Replace", priority=True),
        Binding("f3", "press('f3')", "Next match", show=False, priority=True),
        Binding("shift+f3", "press('shift+f3')", "Previous match", show=False, priority=True),
        Binding("ctrl+s", "press('ctrl+s')", "Save", priority=True),
        Binding("ctrl+n", "press('ctrl+n')", "New", priority=True),
        Binding("ctrl+e", "press('ctrl+e')", "Edit", priority=True),
        Binding("f5", "press('f5')", "Reload", show=False, priority=True),
        Binding("ctrl+c", "press('ctrl+c')", "Quit", priority=True),
    ]

    def __init__(self, controller: Optional[SessionController] = None, **kwargs):
        super().__init__(**kwargs)
        self.controller = controller or SessionController()
        self._shown_result: Optional[QueryResult] = None
        self._modal_view: Optional[ModalView] = None
        self._shown_match: Optional[Tuple[int, str, str]] = None

    @property
    def state(self) -> AppState:
        return self.controller.state

    def compose(self) -> ComposeResult:
        yield Header()

        with Horizontal(id="workspace"):
            with Vertical(id="sidebar"):
                yield Static(id="connections-pane", classes="pane")
                yield Static(id="collections-pane", classes="pane")
            with Vertical(id="main"):
                with Vertical(id="editor-pane", classes="pane"):
                    yield TextArea(id="editor")
                with Vertical(id="results-pane", classes="pane"):
                    yield ResultsViewer(id="results-viewer")
                    yield Static(id="results-error")

        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        self._workspace = self.screen
        self.title = "sqli"
        self.sub_title = "Tab: panes | Enter: edit | Esc: back | Ctrl+Space/F9: run | Ctrl+F: find"
        self._widget("#connections-pane").border_title = "Connections"
        self._widget("#collections-pane").border_title = "Collections"
        self._widget("#results-pane").border_title = "Results"
        self._widget("#editor", TextArea).can_focus = False
        self.set_interval(POLL_INTERVAL, self._poll)
        self.refresh_view()

    def _widget(self, selector, expect_type=None):
        """Look up a widget on the workspace screen, even while a modal is shown."""
        if expect_type is None:
            return self._workspace.query_one(selector)
        return self._workspace.query_one(selector, expect_type)

    # Input

    def forward(self, event) -> None:
        self.controller.handle(event)
        if self.state.should_quit:
            self.exit()
            return
        self.refresh_view()

    def action_press(self, key: str) -> None:
        editor = self._widget("#editor", TextArea)
        if key == "tab" and editor.has_focus:
            editor.insert(" " * editor.indent_width)
            return
        self.forward(KeyPress(key))

    def on_key(self, event: Key) -> None:
        if self._widget("#editor", TextArea).has_focus:
            return
        event.stop()
        event.prevent_default()
        self.forward(KeyPress(event.key, event.character))

    def on_text_area_changed(self, event: TextArea.Changed) -> None:
        self.controller.handle(BufferEdited(event.text_area.text))
        self._widget("#editor-pane").border_title = self.state.buffer.title

    def _poll(self) -> None:
        was_running = self.state.running
        result = self.controller.poll_completion()
        if result is not None:
            if not result.ok:
                self.log.error(f"query failed: {result.error}")
            self.refresh_view()
        elif was_running:
            self._widget(StatusBar).update_status(self.state)

    # Rendering

    def refresh_view(self) -> None:
        state = self.state

        for pane, pane_id in PANE_IDS.items():
            widget = self._widget(f"#{pane_id}")
            widget.set_class(state.focus is pane, "focused")
            widget.set_class(state.focus is pane and state.mode is Mode.EDIT, "editing")

        connections = self._widget("#connections-pane", Static)
        connections.update(render_connections(state, connections.content_size.height))
        collections = self._widget("#collections-pane", Static)
        collections.update(render_collections(state, collections.content_size.height))

        content = render_modal(state)
        if content is None and self._modal_view is not None:
            self._modal_view = None
            self.pop_screen()
        elif content is not None and self._modal_view is None:
            self._modal_view = ModalView(content)
            self.push_screen(self._modal_view)
        elif content is not None:
            self._modal_view.show(content)

        self._refresh_editor()
        self._refresh_results()

        self._widget(StatusBar).update_status(state)

    def _refresh_editor(self) -> None:
        state = self.state
        editor = self._widget("#editor", TextArea)
        if editor.text != state.buffer.text:
            editor.load_text(state.buffer.text)
        self._widget("#editor-pane").border_title = state.buffer.title

        self._show_match(editor)

        editing = state.focus is Pane.EDITOR and state.mode is Mode.EDIT and not state.modals
        editor.can_focus = editing
        if editing and not editor.has_focus:
            editor.focus()
        elif not editing and editor.has_focus:
            self._workspace.set_focus(None)

    def _show_match(self, editor: TextArea) -> None:
        """Select the current search match in the editor once per new match."""
        search = self.state.search
        if search.match is None:
            self._shown_match = None
            return
        key = (search.match, search.pattern, editor.text)
        if key == self._shown_match:
            return
        self._shown_match = key
        start = location(editor.text, search.match)
        end = location(editor.text, search.match + len(search.pattern))
        editor.selection = Selection(start, end)

    def _refresh_results(self) -> None:
        state = self.state
        viewer = self._widget(ResultsViewer)
        error = self._widget("#results-error", Static)
        result = state.last_result

        if result is not self._shown_result:
            self._shown_result = result
            viewer.show(result)
            if result is None:
                error.update("")
            elif result.ok:
                error.update(Text(f"{result.row_count} rows in {result.elapsed:.3f}s", style="dim"))
            else:
                error.update(Text(f"{result.error.kind.value} error: {result.error}"))

        if viewer.row_count:
            viewer.move_cursor(row=min(state.result_cursor, viewer.row_count - 1))


def launch_tui(settings: Optional[Settings] = None) -> None:
    """
    Launch the interactive workspace.

    Args:
        settings: Directory locations; resolved from the environment when omitted
    """
    app = SqliApp(controller=SessionController(settings))
    app.run()


if __name__ == "__main__":
    launch_tui()
