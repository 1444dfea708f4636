"""
Tests for modal dialogs and the modal stack
"""

import pytest

from sqli.core.collections import CollectionScope, EntryKind
from sqli.core.profiles import ConnectionProfile
from sqli.tui.events import (
    CreateEntryRequested,
    DeleteRequested,
    FindRequested,
    KeyPress,
    ProfileDeleteRequested,
    ProfileSaveRequested,
    RenameRequested,
    ReplaceRequested,
)
from sqli.tui.modals import (
    PROFILE_FIELDS,
    ConfirmDelete,
    CreateEntry,
    EditConnection,
    ModalStack,
    RenameEntry,
    SearchEntry,
    TextField,
)


def type_text(stack, text):
    for char in text:
        stack.handle_key(KeyPress(char, char))


@pytest.fixture
def stack():
    return ModalStack()


class TestTextField:
    def test_typing_and_backspace(self):
        field = TextField("Name")
        for char in "abc":
            field.handle(KeyPress(char, char))
        field.handle(KeyPress("backspace"))

        assert field.value == "ab"

    def test_clear_line(self):
        field = TextField("Name", "something")
        field.handle(KeyPress("ctrl+u"))

        assert field.value == ""

    def test_ignores_non_printable(self):
        field = TextField("Name")

        assert field.handle(KeyPress("f5")) is False
        assert field.handle(KeyPress("ctrl+a", "\x01")) is False
        assert field.value == ""

    def test_secret_display(self):
        assert TextField("Password", "hunter2", secret=True).display() == "*******"


class TestModalStack:
    """Test stack discipline and key routing"""

    def test_push_pop_order(self, stack):
        first = CreateEntry(parent=0)
        second = ConfirmDelete(label="x", entry=1)
        stack.push(first)
        stack.push(second)

        assert len(stack) == 2
        assert stack.top is second
        assert stack.pop() is second
        assert stack.top is first

    def test_push_rejects_non_modal(self, stack):
        with pytest.raises(TypeError):
            stack.push("not a modal")

    def test_pop_empty(self, stack):
        assert stack.pop() is None
        assert not stack

    def test_escape_dismisses_without_effect(self, stack):
        stack.push(CreateEntry(parent=0))

        assert stack.handle_key(KeyPress("escape")) == []
        assert not stack

    def test_escape_only_pops_top(self, stack):
        stack.push(CreateEntry(parent=0))
        stack.push(ConfirmDelete(label="x", entry=1))
        stack.handle_key(KeyPress("escape"))

        assert isinstance(stack.top, CreateEntry)

    def test_empty_stack_ignores_keys(self, stack):
        assert stack.handle_key(KeyPress("enter")) == []


class TestCreateEntry:
    """Test the new file/folder dialog"""

    def test_confirm_file(self, stack):
        stack.push(CreateEntry(parent=0, scope=CollectionScope.LOCAL))
        type_text(stack, "a")

        effects = stack.handle_key(KeyPress("enter"))

        assert effects == [CreateEntryRequested(parent=0, name="a", kind=EntryKind.FILE, scope=CollectionScope.LOCAL)]
        assert not stack

    def test_tab_toggles_kind(self, stack):
        modal = CreateEntry(parent=0)
        stack.push(modal)
        stack.handle_key(KeyPress("tab"))

        assert modal.kind is EntryKind.FOLDER
        assert modal.title == "New folder"

    def test_scope_toggle_only_at_top_level(self, stack):
        top = CreateEntry(parent=0, scope=CollectionScope.LOCAL)
        nested = CreateEntry(parent=3)
        stack.push(nested)
        stack.handle_key(KeyPress("ctrl+t"))
        stack.pop()
        stack.push(top)
        stack.handle_key(KeyPress("ctrl+t"))

        assert nested.scope is None
        assert top.scope is CollectionScope.USER

    @pytest.mark.parametrize("name", ["", "   ", "a/b", ".."])
    def test_invalid_name_keeps_modal_open(self, stack, name):
        modal = CreateEntry(parent=0, scope=CollectionScope.LOCAL)
        modal.name.value = name
        stack.push(modal)

        assert stack.handle_key(KeyPress("enter")) == []
        assert stack.top is modal
        assert modal.error

    def test_typing_clears_error(self, stack):
        modal = CreateEntry(parent=0, scope=CollectionScope.LOCAL)
        stack.push(modal)
        stack.handle_key(KeyPress("enter"))
        type_text(stack, "x")

        assert modal.error == ""


class TestRenameEntry:
    def test_prefilled_and_confirm(self, stack):
        modal = RenameEntry(target=4, current_name="old.sql")
        stack.push(modal)
        stack.handle_key(KeyPress("ctrl+u"))
        type_text(stack, "new")

        assert modal.title == "Rename old.sql"
        assert stack.handle_key(KeyPress("enter")) == [RenameRequested(target=4, new_name="new")]


class TestConfirmDelete:
    @pytest.mark.parametrize("key", ["enter", "y", "Y"])
    def test_confirm_entry(self, stack, key):
        stack.push(ConfirmDelete(label="b.sql (local)", entry=7))

        assert stack.handle_key(KeyPress(key, key)) == [DeleteRequested(7)]
        assert not stack

    def test_confirm_profile(self, stack):
        stack.push(ConfirmDelete(label="connection 'prod'", profile="prod"))

        assert stack.handle_key(KeyPress("enter")) == [ProfileDeleteRequested("prod")]

    @pytest.mark.parametrize("key", ["n", "N", "escape"])
    def test_decline(self, stack, key):
        stack.push(ConfirmDelete(label="x", entry=7))

        assert stack.handle_key(KeyPress(key, key)) == []
        assert not stack

    def test_other_keys_ignored(self, stack):
        stack.push(ConfirmDelete(label="x", entry=7))
        stack.handle_key(KeyPress("q", "q"))

        assert stack


class TestEditConnection:
    """Test the connection editor"""

    def fill(self, modal, **values):
        for name, value in values.items():
            modal.fields[PROFILE_FIELDS.index(name)].value = value

    def test_new_profile(self, stack):
        modal = EditConnection()
        self.fill(modal, name="local", host="localhost", port="5432", database="app", user="me")
        stack.push(modal)

        [effect] = stack.handle_key(KeyPress("enter"))

        assert isinstance(effect, ProfileSaveRequested)
        assert effect.original_name is None
        assert effect.profile.to_url() == "postgresql://me@localhost:5432/app"

    def test_field_cycling(self, stack):
        modal = EditConnection()
        stack.push(modal)
        stack.handle_key(KeyPress("tab"))
        stack.handle_key(KeyPress("tab"))
        stack.handle_key(KeyPress("shift+tab"))
        type_text(stack, "sqlite://")

        assert modal.focused == 1
        assert modal.value("url") == "sqlite://"

    def test_up_wraps(self, stack):
        modal = EditConnection()
        stack.push(modal)
        stack.handle_key(KeyPress("up"))

        assert modal.focused == len(PROFILE_FIELDS) - 1

    @pytest.mark.parametrize(
        "values, message",
        [
            ({"url": "sqlite://"}, "Name must not be empty"),
            ({"name": "x"}, "Either a URL or a host/database is required"),
            ({"name": "x", "host": "h", "port": "abc"}, "Invalid port"),
        ],
    )
    def test_invalid(self, stack, values, message):
        modal = EditConnection()
        self.fill(modal, **values)
        stack.push(modal)

        assert stack.handle_key(KeyPress("enter")) == []
        assert message in modal.error
        assert stack.top is modal

    def test_edit_keeps_tls_fields(self, stack):
        original = ConnectionProfile(name="secure", host="h", database="d", server_ca="/certs/ca.pem")
        modal = EditConnection(original=original)
        self.fill(modal, database="other")
        stack.push(modal)

        [effect] = stack.handle_key(KeyPress("enter"))

        assert effect.original_name == "secure"
        assert effect.profile.database == "other"
        assert effect.profile.server_ca == "/certs/ca.pem"

    def test_password_is_masked(self):
        modal = EditConnection(original=ConnectionProfile(name="p", host="h", password="pw"))

        assert modal.fields[PROFILE_FIELDS.index("password")].display() == "**"
        assert modal.title == "Edit connection p"


class TestSearchEntry:
    """Test the find and replace dialog"""

    def test_find_confirms_from_start(self, stack):
        stack.push(SearchEntry())
        type_text(stack, "users")

        assert stack.handle_key(KeyPress("enter")) == [FindRequested(pattern="users", from_start=True)]
        assert not stack

    def test_arrows_step_without_closing(self, stack):
        modal = SearchEntry()
        stack.push(modal)
        type_text(stack, "id")

        assert stack.handle_key(KeyPress("down")) == [FindRequested(pattern="id", forward=True)]
        assert stack.handle_key(KeyPress("up")) == [FindRequested(pattern="id", forward=False)]
        assert stack.top is modal

    def test_empty_pattern(self, stack):
        modal = SearchEntry()
        stack.push(modal)

        assert stack.handle_key(KeyPress("down")) == []
        assert stack.handle_key(KeyPress("enter")) == []
        assert modal.error == "Nothing to search for"

    def test_replace_fields(self, stack):
        modal = SearchEntry(replace=True)
        stack.push(modal)
        type_text(stack, "old")
        stack.handle_key(KeyPress("tab"))
        type_text(stack, "new")

        assert modal.title == "Replace"
        assert stack.handle_key(KeyPress("enter")) == [ReplaceRequested(pattern="old", replacement="new")]

    def test_replace_all(self, stack):
        modal = SearchEntry(replace=True, pattern=TextField("Find", "a"))
        stack.push(modal)

        assert stack.handle_key(KeyPress("ctrl+a")) == [ReplaceRequested(pattern="a", replacement="", every=True)]
        assert not stack

    def test_tab_ignored_in_find_mode(self, stack):
        modal = SearchEntry()
        stack.push(modal)
        stack.handle_key(KeyPress("tab"))

        assert modal.focused == 0
        assert len(modal.fields) == 1
