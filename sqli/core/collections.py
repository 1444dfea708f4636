"""
Collections of saved SQL files

Two directory trees hold saved queries:

- USER scope:  ``<config-dir>/collections/<name>/**``, shared across projects
- LOCAL scope: ``<cwd>/sqli/<name>/**``, meant to live in source control

Each scope is scanned into a ``CollectionTree`` and the two trees are merged
under one logical root for display. The tree is an arena: nodes live in a flat
list and refer to their parent and children by index, so a selection is just
an index. Mutations rescan only the directory they touched.
"""

from __future__ import annotations

import dataclasses
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple

from sqli.core.errors import FileSystemError

SQL_SUFFIX = ".sql"

# Tombstones tolerated before the arena is renumbered
COMPACT_SLACK = 64


class CollectionScope(Enum):
    """Where a collection lives."""

    USER = "user"
    LOCAL = "local"

    def __str__(self) -> str:
        return self.value


class EntryKind(Enum):
    ROOT = "root"
    FOLDER = "folder"
    FILE = "file"


@dataclass
class CollectionEntry:
    """A node of the collection tree."""

    index: int
    name: str
    path: Path
    scope: Optional[CollectionScope]
    kind: EntryKind
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)
    content: Optional[str] = None

    @property
    def is_folder(self) -> bool:
        return self.kind in (EntryKind.ROOT, EntryKind.FOLDER)

    @property
    def is_file(self) -> bool:
        return self.kind is EntryKind.FILE


def _sort_key(entry: CollectionEntry) -> Tuple[bool, str, int]:
    scope_rank = 0 if entry.scope is CollectionScope.USER else 1
    return (not entry.is_folder, entry.name, scope_rank)


Snapshot = Tuple[int, Dict[int, CollectionEntry]]


class CollectionTree:
    """Arena-backed tree of collection entries."""

    def __init__(self) -> None:
        self._nodes: List[Optional[CollectionEntry]] = []
        self.root: Optional[int] = None

    def add(
        self,
        name: str,
        path: Path,
        scope: Optional[CollectionScope],
        kind: EntryKind,
        parent: Optional[int] = None,
    ) -> int:
        index = len(self._nodes)
        self._nodes.append(
            CollectionEntry(index=index, name=name, path=path, scope=scope, kind=kind, parent=parent)
        )
        if parent is not None:
            self[parent].children.append(index)
        elif kind is EntryKind.ROOT:
            self.root = index
        return index

    def __getitem__(self, index: int) -> CollectionEntry:
        if index < 0 or index >= len(self._nodes) or self._nodes[index] is None:
            raise KeyError(f"No collection entry at index {index}")
        return self._nodes[index]

    def __contains__(self, index: object) -> bool:
        return isinstance(index, int) and 0 <= index < len(self._nodes) and self._nodes[index] is not None

    def __len__(self) -> int:
        """Number of live entries, not counting the root."""
        return sum(1 for node in self._nodes if node is not None and node.kind is not EntryKind.ROOT)

    def is_empty(self) -> bool:
        return len(self) == 0

    def children(self, index: int) -> List[CollectionEntry]:
        return [self[i] for i in self[index].children]

    def top_level(self) -> List[CollectionEntry]:
        if self.root is None:
            return []
        return self.children(self.root)

    def walk(self, index: Optional[int] = None) -> Iterator[CollectionEntry]:
        """Depth-first iteration below ``index`` (the root by default)."""
        start = self.root if index is None else index
        if start is None:
            return
        for child in self[start].children:
            entry = self[child]
            yield entry
            yield from self.walk(child)

    def find(self, path: Path, scope: CollectionScope) -> Optional[int]:
        target = Path(path)
        for entry in self.walk():
            if entry.scope is scope and entry.path == target:
                return entry.index
        return None

    def label(self, index: int) -> str:
        """Display label; top-level entries carry their scope."""
        entry = self[index]
        if entry.parent is not None and entry.parent == self.root and entry.scope is not None:
            return f"{entry.name} ({entry.scope})"
        return entry.name

    def visible(self, expanded: Set[int]) -> List[Tuple[int, int]]:
        """Flatten the tree into ``(index, depth)`` rows, descending only into expanded folders."""
        rows: List[Tuple[int, int]] = []

        def visit(index: int, depth: int) -> None:
            for child in self[index].children:
                rows.append((child, depth))
                if child in expanded and self[child].is_folder:
                    visit(child, depth + 1)

        if self.root is not None:
            visit(self.root, 0)
        return rows

    def sort_children(self, index: int) -> None:
        entry = self[index]
        entry.children.sort(key=lambda i: _sort_key(self[i]))

    def detach(self, index: int) -> None:
        """Drop a node and its subtree; their indices stay unused until ``compact``."""
        entry = self[index]
        for child in list(entry.children):
            self.detach(child)
        if entry.parent is not None and entry.parent in self:
            siblings = self[entry.parent].children
            if index in siblings:
                siblings.remove(index)
        self._nodes[index] = None

    @property
    def tombstones(self) -> int:
        return sum(1 for node in self._nodes if node is None)

    def compact(self) -> Dict[int, int]:
        """Drop detached slots and renumber the live nodes; returns old index -> new index."""
        live = [node for node in self._nodes if node is not None]
        mapping = {node.index: position for position, node in enumerate(live)}
        for node in live:
            node.index = mapping[node.index]
            node.parent = mapping[node.parent] if node.parent is not None else None
            node.children = [mapping[child] for child in node.children]
        self._nodes = live
        if self.root is not None:
            self.root = mapping[self.root]
        return mapping

    def graft(self, source: "CollectionTree", index: int, parent: int) -> int:
        """Copy ``source[index]`` and its subtree under ``parent``; returns the new index."""
        entry = source[index]
        new_index = self.add(entry.name, entry.path, entry.scope, entry.kind, parent)
        self[new_index].content = entry.content
        for child in entry.children:
            self.graft(source, child, new_index)
        return new_index

    def snapshot(self, index: int) -> Snapshot:
        """Remember the subtree below ``index`` so a failed rescan of it can be undone."""
        saved = {}
        stack = [index]
        while stack:
            entry = self[stack.pop()]
            saved[entry.index] = dataclasses.replace(entry, children=list(entry.children))
            stack.extend(entry.children)
        return len(self._nodes), saved

    def restore(self, snapshot: Snapshot) -> None:
        # Rescans only append, so everything past the old length is new
        size, saved = snapshot
        del self._nodes[size:]
        for index, entry in saved.items():
            self._nodes[index] = entry


def _validate_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise FileSystemError("Name must not be empty")
    if name in (".", "..") or "/" in name or "\\" in name or os.sep in name:
        raise FileSystemError(f"Invalid name '{name}': must be a single path component")
    if name.startswith("."):
        raise FileSystemError(f"Invalid name '{name}': names starting with '.' are hidden")
    return name


def sql_file_name(name: str) -> str:
    """Only ``*.sql`` files are listed, so any other name gets the suffix appended."""
    if Path(name).suffix.lower() == SQL_SUFFIX:
        return name
    return name + SQL_SUFFIX


def _restrict_permissions(path: Path) -> None:
    if os.name == "posix":
        os.chmod(path, 0o700 if path.is_dir() else 0o600)


class CollectionManager:
    """
    Scans, merges and mutates the User and Local collection directories.

    ``tree`` is the merged display tree. Every mutation performs the file
    system change, then rescans only the affected directory. If anything
    fails the tree is restored to its previous state and a
    ``FileSystemError`` is raised.

    With ``strict=False`` a failed initial scan leaves an empty tree and the
    error in ``load_error`` instead of raising; ``refresh`` tries again.
    """

    def __init__(self, user_root: Path, local_root: Path, strict: bool = True):
        self.roots: Dict[CollectionScope, Path] = {
            CollectionScope.USER: Path(user_root).absolute(),
            CollectionScope.LOCAL: Path(local_root).absolute(),
        }
        self.tree = self.merge(CollectionTree(), CollectionTree())
        self.load_error: Optional[FileSystemError] = None
        try:
            self.refresh()
        except FileSystemError as e:
            if strict:
                raise
            self.load_error = e

    def scan(self, scope: CollectionScope) -> CollectionTree:
        """Build the tree of one scope; an absent root directory gives an empty tree."""
        try:
            return self._scan_tree(scope)
        except OSError as e:
            raise FileSystemError(f"Cannot scan {self.roots[scope]}: {e}") from e

    def _scan_tree(self, scope: CollectionScope) -> CollectionTree:
        tree = CollectionTree()
        root_path = self.roots[scope]
        if not root_path.is_dir():
            return tree
        root = tree.add(scope.value, root_path, scope, EntryKind.ROOT)
        self._populate(tree, root)
        return tree

    @staticmethod
    def merge(user_tree: CollectionTree, local_tree: CollectionTree) -> CollectionTree:
        """Combine both scopes under one logical root; same-named entries stay separate."""
        merged = CollectionTree()
        root = merged.add("collections", Path(), None, EntryKind.ROOT)
        for source in (user_tree, local_tree):
            for entry in source.top_level():
                merged.graft(source, entry.index, root)
        merged.sort_children(root)
        return merged

    def refresh(self) -> CollectionTree:
        """Full rescan of both scopes into a fresh, tombstone-free tree."""
        self.tree = self.merge(self.scan(CollectionScope.USER), self.scan(CollectionScope.LOCAL))
        self.load_error = None
        return self.tree

    def create(
        self,
        parent: Optional[int],
        name: str,
        kind: EntryKind,
        scope: Optional[CollectionScope] = None,
    ) -> int:
        """
        Create a file or folder.

        Args:
            parent: Index of the folder to create in; the root (or None) means top level
            name: New entry name; file names not ending in ``.sql`` get it appended
            kind: EntryKind.FILE or EntryKind.FOLDER
            scope: Required when creating at top level

        Returns:
            Index of the new entry in ``self.tree``
        """
        if kind is EntryKind.ROOT:
            raise FileSystemError("Cannot create a root entry")

        tree = self.tree
        parent_index = tree.root if parent is None else parent
        parent_entry = tree[parent_index]
        if parent_entry.is_file:
            parent_index = parent_entry.parent
            parent_entry = tree[parent_index]

        if parent_entry.kind is EntryKind.ROOT:
            if scope is None:
                raise FileSystemError("A scope is required to create a top-level entry")
            directory = self.roots[scope]
        else:
            scope = parent_entry.scope
            directory = parent_entry.path

        name = _validate_name(name)
        if kind is EntryKind.FILE:
            name = sql_file_name(name)
        target = directory / name
        if target.exists():
            raise FileSystemError(f"'{name}' already exists")

        snapshot = tree.snapshot(parent_index)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            if kind is EntryKind.FOLDER:
                target.mkdir()
            else:
                with open(target, "x", encoding="utf-8"):
                    pass
            _restrict_permissions(target)
            self._rescan(parent_index, scope)
        except OSError as e:
            tree.restore(snapshot)
            raise FileSystemError(f"Cannot create {target}: {e}") from e

        created = tree.find(target, scope)
        if created is None:
            tree.restore(snapshot)
            self._remove(target)
            raise FileSystemError(f"Created {target} but it is not visible in the collection")
        return self._settle(created)

    def rename(self, index: int, new_name: str) -> int:
        """Rename an entry in place; returns its index after the rescan."""
        tree = self.tree
        entry = tree[index]
        if entry.kind is EntryKind.ROOT:
            raise FileSystemError("Cannot rename a collection root")

        new_name = _validate_name(new_name)
        if entry.is_file:
            new_name = sql_file_name(new_name)
        if new_name == entry.name:
            return index

        source = entry.path
        target = source.with_name(new_name)
        if target.exists():
            raise FileSystemError(f"'{new_name}' already exists")

        scope = entry.scope
        snapshot = tree.snapshot(entry.parent)
        try:
            source.rename(target)
            _restrict_permissions(target)
            self._rescan(entry.parent, scope)
        except OSError as e:
            tree.restore(snapshot)
            raise FileSystemError(f"Cannot rename {source.name} to {new_name}: {e}") from e

        renamed = tree.find(target, scope)
        if renamed is None:
            tree.restore(snapshot)
            target.rename(source)
            raise FileSystemError(f"Renamed {target} but it is not visible in the collection")
        return self._settle(renamed)

    def delete(self, index: int) -> None:
        """Remove a file, or a folder with everything in it."""
        tree = self.tree
        entry = tree[index]
        if entry.kind is EntryKind.ROOT:
            raise FileSystemError("Cannot delete a collection root")

        snapshot = tree.snapshot(entry.parent)
        try:
            self._remove(entry.path)
            self._rescan(entry.parent, entry.scope)
        except OSError as e:
            tree.restore(snapshot)
            raise FileSystemError(f"Cannot delete {entry.path}: {e}") from e
        self._settle(tree.root)

    @staticmethod
    def _remove(path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()

    def _settle(self, index: int) -> int:
        """Renumber the arena once detached slots pile up; returns ``index``'s new number."""
        tree = self.tree
        if tree.tombstones <= len(tree) + COMPACT_SLACK:
            return index
        return tree.compact()[index]

    def load(self, index: int) -> str:
        """Read a file's text, keeping it on the node once opened."""
        entry = self.tree[index]
        if not entry.is_file:
            raise FileSystemError(f"'{entry.name}' is not a file")
        try:
            entry.content = entry.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise FileSystemError(f"Cannot read {entry.path}: {e}") from e
        return entry.content

    def save(self, index: int, text: str) -> None:
        entry = self.tree[index]
        if not entry.is_file:
            raise FileSystemError("Cannot save content to a folder")
        try:
            entry.path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise FileSystemError(f"Cannot write {entry.path}: {e}") from e
        entry.content = text

    def _populate(self, tree: CollectionTree, index: int) -> None:
        entry = tree[index]
        for child in entry.path.iterdir():
            if child.name.startswith("."):
                continue
            if child.is_dir():
                child_index = tree.add(child.name, child, entry.scope, EntryKind.FOLDER, index)
                # Symlinked directories are listed but not followed
                if not child.is_symlink():
                    self._populate(tree, child_index)
            elif child.is_file() and child.suffix.lower() == SQL_SUFFIX:
                tree.add(child.name, child, entry.scope, EntryKind.FILE, index)
        tree.sort_children(index)

    def _rescan(self, index: int, scope: CollectionScope) -> None:
        """Rebuild the children of one directory node from disk."""
        tree = self.tree
        entry = tree[index]

        if entry.kind is EntryKind.ROOT:
            # Top level of the merged tree: only this scope's entries are replaced
            for child in tree.children(index):
                if child.scope is scope:
                    tree.detach(child.index)
            scanned = self._scan_tree(scope)
            for child in scanned.top_level():
                tree.graft(scanned, child.index, index)
            tree.sort_children(index)
            return

        for child in list(entry.children):
            tree.detach(child)
        self._populate(tree, index)
