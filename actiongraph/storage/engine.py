"""
Storage engine for the action graph.

This module provides the storage abstraction layer, enabling pluggable
backends while keeping one set of semantics:

- Actions are rows keyed by id; edges are rows keyed by (src, dst, kind)
- Deleting an action cascades every edge that references it
- Field edits bump a version counter used for optimistic concurrency
- Multi-row changes can be grouped with ``transaction()``

Design Philosophy:
    Storage is separated from structure. The store knows how to persist
    and retrieve actions and edges, and enforces referential integrity,
    but it does not know about parents, cycles or workability. Those
    rules live in the graph layer, which consults the store before
    every commit.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from threading import RLock
from typing import Any, Iterable, Iterator, Optional

from actiongraph.core.errors import (
    DuplicateEdgeError,
    DuplicateParentError,
    NotFoundError,
    VersionConflictError,
)
from actiongraph.core.models import (
    Action,
    ActionCreate,
    ActionEdge,
    ActionUpdate,
    EdgeKind,
    parse_derived,
    parse_edge_kind,
    utcnow,
)


class ActionStore(ABC):
    """
    Abstract base class for action storage backends.

    Implementations:
        - InMemoryActionStore: Development and testing
        - SQLiteActionStore: Single-node persistence

    Every single-row operation is atomic on its own. Callers that need
    several operations to land together wrap them in ``transaction()``.
    """

    # =========================================================================
    # Actions
    # =========================================================================

    @abstractmethod
    def get(self, action_id: str) -> Optional[Action]:
        """
        Retrieve an action by ID.

        Returns:
            Action if found, None otherwise
        """
        pass

    @abstractmethod
    def get_many(self, action_ids: Iterable[str]) -> dict[str, Action]:
        """Retrieve several actions at once. Missing ids are simply absent."""
        pass

    @abstractmethod
    def list(
        self,
        done: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Action]:
        """
        List actions ordered by creation time.

        Args:
            done: Filter by completion flag (None = all)
            limit: Maximum results
            offset: Number of results to skip
        """
        pass

    @abstractmethod
    def count(self, done: Optional[bool] = None) -> int:
        """Count actions, optionally filtered by completion flag."""
        pass

    @abstractmethod
    def create(self, fields: ActionCreate) -> Action:
        """Insert a new action with no edges."""
        pass

    @abstractmethod
    def update(
        self,
        action_id: str,
        fields: ActionUpdate,
        expected_version: Optional[int] = None,
    ) -> Action:
        """
        Apply a partial edit and bump the version.

        Raises:
            NotFoundError: If the action does not exist
            VersionConflictError: If expected_version is given and stale
        """
        pass

    @abstractmethod
    def update_derived(self, action_id: str, fields: dict[str, Any]) -> Action:
        """
        Write collaborator-owned columns. Does not bump the version.

        Raises:
            NotFoundError: If the action does not exist
            ValidationError: If a field is not a derived column or has the
                wrong type
        """
        pass

    @abstractmethod
    def touch(self, action_id: str) -> None:
        """Refresh updated_at without changing the version."""
        pass

    @abstractmethod
    def delete(self, action_id: str) -> Optional[Action]:
        """
        Delete an action and every edge that references it.

        Returns:
            The deleted action, or None if it did not exist
        """
        pass

    # =========================================================================
    # Edges
    # =========================================================================

    @abstractmethod
    def list_edges(
        self,
        kind: Optional[EdgeKind] = None,
        src: Optional[str] = None,
        dst: Optional[str] = None,
    ) -> list[ActionEdge]:
        """List edges matching every given filter."""
        pass

    @abstractmethod
    def insert_edge(self, src: str, dst: str, kind: EdgeKind) -> ActionEdge:
        """
        Insert an edge.

        Raises:
            NotFoundError: If either endpoint does not exist
            DuplicateEdgeError: If the same (src, dst, kind) already exists
        """
        pass

    @abstractmethod
    def delete_edge(self, src: str, dst: str, kind: EdgeKind) -> Optional[ActionEdge]:
        """
        Delete an edge.

        Returns:
            The deleted edge, or None if it did not exist
        """
        pass

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @abstractmethod
    def transaction(self):
        """
        Context manager grouping several operations into one atomic unit.

        Nested use joins the outermost transaction. An exception escaping
        the outermost block rolls back everything done inside it.
        """
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove all actions and edges."""
        pass

    def close(self) -> None:
        """Release any resources held by the store."""
        pass

    def require(self, action_id: str, role: str = "Action") -> Action:
        """
        Retrieve an action, failing loudly if it is missing.

        Raises:
            NotFoundError: If the action does not exist
        """
        action = self.get(action_id)
        if action is None:
            raise NotFoundError(action_id, role=role)
        return action

    def __enter__(self) -> ActionStore:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class InMemoryActionStore(ActionStore):
    """
    In-memory store for development and testing.

    Data is lost when the process exits. Returned actions are copies, so
    callers can never mutate stored state by accident.

    Thread Safety:
        This implementation is thread-safe using a reentrant lock. A
        transaction holds the lock for its whole duration.
    """

    def __init__(self):
        """Initialize empty storage."""
        self._lock = RLock()
        self._actions: dict[str, Action] = {}
        # (src, dst, kind) -> edge, insertion ordered
        self._edges: dict[tuple[str, str, str], ActionEdge] = {}
        self._tx_depth = 0

    def _copy(self, action: Action) -> Action:
        return action.model_copy(deep=True)

    def get(self, action_id: str) -> Optional[Action]:
        with self._lock:
            action = self._actions.get(action_id)
            return self._copy(action) if action is not None else None

    def get_many(self, action_ids: Iterable[str]) -> dict[str, Action]:
        with self._lock:
            return {
                action_id: self._copy(self._actions[action_id])
                for action_id in set(action_ids)
                if action_id in self._actions
            }

    def list(
        self,
        done: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Action]:
        with self._lock:
            actions = [
                a for a in self._actions.values()
                if done is None or a.done == done
            ]
            actions.sort(key=lambda a: (a.created_at, a.id))
            end = None if limit is None else offset + limit
            return [self._copy(a) for a in actions[offset:end]]

    def count(self, done: Optional[bool] = None) -> int:
        with self._lock:
            return sum(1 for a in self._actions.values() if done is None or a.done == done)

    def create(self, fields: ActionCreate) -> Action:
        with self._lock:
            action = Action(**fields.model_dump())
            self._actions[action.id] = action
            return self._copy(action)

    def update(
        self,
        action_id: str,
        fields: ActionUpdate,
        expected_version: Optional[int] = None,
    ) -> Action:
        with self._lock:
            current = self._actions.get(action_id)
            if current is None:
                raise NotFoundError(action_id)
            if expected_version is not None and current.version != expected_version:
                raise VersionConflictError(action_id, expected_version, current.version)

            updated = current.model_copy(update={
                **fields.changes(),
                "version": current.version + 1,
                "updated_at": utcnow(),
            })
            self._actions[action_id] = updated
            return self._copy(updated)

    def update_derived(self, action_id: str, fields: dict[str, Any]) -> Action:
        fields = parse_derived(fields)
        with self._lock:
            current = self._actions.get(action_id)
            if current is None:
                raise NotFoundError(action_id)
            updated = current.model_copy(update=fields)
            self._actions[action_id] = updated
            return self._copy(updated)

    def touch(self, action_id: str) -> None:
        with self._lock:
            current = self._actions.get(action_id)
            if current is None:
                raise NotFoundError(action_id)
            self._actions[action_id] = current.model_copy(update={"updated_at": utcnow()})

    def delete(self, action_id: str) -> Optional[Action]:
        with self._lock:
            action = self._actions.pop(action_id, None)
            if action is None:
                return None
            # Cascade, as the SQL foreign keys do
            for key in [k for k in self._edges if k[0] == action_id or k[1] == action_id]:
                del self._edges[key]
            return action

    def list_edges(
        self,
        kind: Optional[EdgeKind] = None,
        src: Optional[str] = None,
        dst: Optional[str] = None,
    ) -> list[ActionEdge]:
        if kind is not None:
            kind = parse_edge_kind(kind)
        with self._lock:
            return [
                edge for edge in self._edges.values()
                if (kind is None or edge.kind == kind)
                and (src is None or edge.src == src)
                and (dst is None or edge.dst == dst)
            ]

    def insert_edge(self, src: str, dst: str, kind: EdgeKind) -> ActionEdge:
        kind = parse_edge_kind(kind)
        with self._lock:
            if src not in self._actions:
                raise NotFoundError(src)
            if dst not in self._actions:
                raise NotFoundError(dst)

            key = (src, dst, kind.value)
            if key in self._edges:
                raise DuplicateEdgeError(src, dst, kind.value)

            # Mirrors the partial unique index on the SQLite backend
            if kind == EdgeKind.FAMILY:
                for edge in self._edges.values():
                    if edge.kind == EdgeKind.FAMILY and edge.dst == dst:
                        raise DuplicateParentError(dst, edge.src)

            edge = ActionEdge(src=src, dst=dst, kind=kind)
            self._edges[key] = edge
            return edge

    def delete_edge(self, src: str, dst: str, kind: EdgeKind) -> Optional[ActionEdge]:
        with self._lock:
            return self._edges.pop((src, dst, parse_edge_kind(kind).value), None)

    @contextmanager
    def transaction(self) -> Iterator[InMemoryActionStore]:
        """Hold the lock and restore the pre-transaction state on failure."""
        with self._lock:
            outermost = self._tx_depth == 0
            if outermost:
                saved_actions = dict(self._actions)
                saved_edges = dict(self._edges)
            self._tx_depth += 1
            try:
                yield self
            except BaseException:
                if outermost:
                    self._actions = saved_actions
                    self._edges = saved_edges
                raise
            finally:
                self._tx_depth -= 1

    def clear(self) -> None:
        """Clear all data (for testing)."""
        with self._lock:
            self._actions.clear()
            self._edges.clear()
