"""
Storage layer for the action graph.

Provides pluggable backends for persisting actions and edges, with an
in-memory implementation for development and SQLite for persistence.
"""

from actiongraph.storage.engine import ActionStore, InMemoryActionStore
from actiongraph.storage.sqlite import SQLiteActionStore

__all__ = [
    "ActionStore",
    "InMemoryActionStore",
    "SQLiteActionStore",
]
