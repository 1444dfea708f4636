"""Core building blocks shared by the CLI and the TUI."""

from sqli.core.collections import CollectionManager, CollectionScope, CollectionTree, EntryKind
from sqli.core.config import Settings
from sqli.core.executor import QueryEngine, QueryHandle
from sqli.core.profiles import ConnectionProfile, ProfileStore
from sqli.core.types import QueryRequest, QueryResult

__all__ = [
    "CollectionManager",
    "CollectionScope",
    "CollectionTree",
    "ConnectionProfile",
    "EntryKind",
    "ProfileStore",
    "QueryEngine",
    "QueryHandle",
    "QueryRequest",
    "QueryResult",
    "Settings",
]
