"""
Prerequisite (depends_on) edge management.

A thin validated layer over the store: checks that both actions exist,
asks the invariant enforcer, then writes. Removing an edge that isn't
there is reported as NoDependencyFoundError, carrying both titles, so
callers can tell "no such relationship" apart from "no such action".
"""

from __future__ import annotations

import logging

from actiongraph.core.errors import NoDependencyFoundError
from actiongraph.core.models import Action, ActionEdge, EdgeKind, validate_action_id
from actiongraph.graph.invariants import GraphInvariantEnforcer
from actiongraph.storage.engine import ActionStore

logger = logging.getLogger(__name__)


class DependencyResolver:
    """
    Adds, removes and lists prerequisite edges.

    ``add_dependency(a, b)`` means "a depends on b": it stores the edge
    depends_on(b, a), so b must be done before a is workable.
    """

    def __init__(self, store: ActionStore, enforcer: GraphInvariantEnforcer):
        self._store = store
        self._enforcer = enforcer

    def _require_pair(self, action_id: str, depends_on_id: str) -> tuple[Action, Action]:
        validate_action_id(action_id)
        validate_action_id(depends_on_id, "depends_on_id")
        action = self._store.require(action_id)
        depends_on = self._store.require(depends_on_id, role="Dependency action")
        return action, depends_on

    def add_dependency(self, action_id: str, depends_on_id: str) -> ActionEdge:
        """
        Make ``action_id`` wait for ``depends_on_id``.

        Returns:
            The created edge

        Raises:
            NotFoundError: If either action does not exist
            SelfDependencyError: If both ids are the same
            DuplicateEdgeError: If the dependency already exists
            CycleDetectedError: If depends_on_id already (transitively) depends on action_id
        """
        with self._store.transaction():
            self._require_pair(action_id, depends_on_id)
            self._enforcer.validate_add_dependency_edge(depends_on_id, action_id)
            edge = self._store.insert_edge(depends_on_id, action_id, EdgeKind.DEPENDS_ON)

        logger.info(f"Action {action_id} now depends on {depends_on_id}")
        return edge

    def remove_dependency(self, action_id: str, depends_on_id: str) -> ActionEdge:
        """
        Drop the "action_id depends on depends_on_id" edge.

        Returns:
            The removed edge

        Raises:
            NotFoundError: If either action does not exist
            NoDependencyFoundError: If the edge does not exist; nothing is changed
        """
        with self._store.transaction():
            action, depends_on = self._require_pair(action_id, depends_on_id)
            removed = self._store.delete_edge(depends_on_id, action_id, EdgeKind.DEPENDS_ON)
            if removed is None:
                raise NoDependencyFoundError(
                    action_id,
                    depends_on_id,
                    action_title=action.title,
                    depends_on_title=depends_on.title,
                )

        logger.info(f"Action {action_id} no longer depends on {depends_on_id}")
        return removed

    def list_prerequisites(self, action_id: str) -> list[Action]:
        """Actions that must be done before ``action_id`` is workable."""
        self._store.require(action_id)
        edges = self._store.list_edges(kind=EdgeKind.DEPENDS_ON, dst=action_id)
        found = self._store.get_many(e.src for e in edges)
        return [found[e.src] for e in edges if e.src in found]

    def list_dependents(self, action_id: str) -> list[Action]:
        """Actions waiting on ``action_id``."""
        self._store.require(action_id)
        edges = self._store.list_edges(kind=EdgeKind.DEPENDS_ON, src=action_id)
        found = self._store.get_many(e.dst for e in edges)
        return [found[e.dst] for e in edges if e.dst in found]
