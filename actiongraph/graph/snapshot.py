"""
In-memory views of the action graph.

A GraphSnapshot is built from one bulk load of actions and edges and
answers structural questions (children, parent, prerequisites,
descendants, ancestors) without further store round-trips.

Each edge kind gets its own networkx DiGraph keyed by action id, so the
representation stays arena-style: ids in, ids out, no object graph.

Thread Safety:
    Snapshots are immutable after construction and can be shared freely.
    They are NOT kept in sync with the store; build a new one to see
    later writes.
"""

from __future__ import annotations

from collections import deque
from typing import Iterable, Optional

import networkx as nx

from actiongraph.core.models import Action, ActionEdge, EdgeKind


def build_graph(edges: Iterable[ActionEdge], kind: Optional[EdgeKind] = None) -> nx.DiGraph:
    """
    Build a directed adjacency graph from edge rows.

    Args:
        edges: Edge rows, typically from one ``list_edges`` call
        kind: Keep only edges of this kind (None = keep all)

    Returns:
        DiGraph with an arc src -> dst per edge
    """
    graph = nx.DiGraph()
    for edge in edges:
        if kind is not None and edge.kind != kind:
            continue
        graph.add_edge(edge.src, edge.dst)
    return graph


def bfs(graph: nx.DiGraph, start: str, direction: str = "downstream") -> list[str]:
    """
    Iterative breadth-first walk from ``start``.

    Args:
        graph: Adjacency graph
        start: Node to start from (not included in the result)
        direction: "downstream" follows successors, "upstream" predecessors

    Returns:
        Reached node ids in BFS order
    """
    if start not in graph:
        return []

    neighbors = graph.successors if direction == "downstream" else graph.predecessors

    visited: set[str] = {start}
    order: list[str] = []
    queue: deque[str] = deque([start])

    while queue:
        current = queue.popleft()
        for neighbor in neighbors(current):
            if neighbor in visited:
                continue
            visited.add(neighbor)
            order.append(neighbor)
            queue.append(neighbor)

    return order


def reaches(graph: nx.DiGraph, start: str, target: str, direction: str = "downstream") -> bool:
    """Check whether ``target`` is reachable from ``start`` (start itself excluded)."""
    if start not in graph or target not in graph:
        return False

    neighbors = graph.successors if direction == "downstream" else graph.predecessors

    visited: set[str] = {start}
    queue: deque[str] = deque([start])
    while queue:
        current = queue.popleft()
        for neighbor in neighbors(current):
            if neighbor == target:
                return True
            if neighbor not in visited:
                visited.add(neighbor)
                queue.append(neighbor)
    return False


class GraphSnapshot:
    """
    A consistent read of every action and edge.

    Attributes:
        actions: id -> Action
        family: DiGraph of family edges (parent -> child)
        dependencies: DiGraph of depends_on edges (prerequisite -> dependent)
    """

    def __init__(self, actions: Iterable[Action], edges: Iterable[ActionEdge]):
        self.actions: dict[str, Action] = {a.id: a for a in actions}
        self.edges: list[ActionEdge] = list(edges)

        self.family = nx.DiGraph()
        self.dependencies = nx.DiGraph()
        self.family.add_nodes_from(self.actions)
        self.dependencies.add_nodes_from(self.actions)

        for edge in self.edges:
            target = self.family if edge.kind == EdgeKind.FAMILY else self.dependencies
            target.add_edge(edge.src, edge.dst)

    @classmethod
    def load(cls, store) -> GraphSnapshot:
        """Build a snapshot with exactly two store calls."""
        return cls(store.list(), store.list_edges())

    def __contains__(self, action_id: str) -> bool:
        return action_id in self.actions

    def __len__(self) -> int:
        return len(self.actions)

    def _ordered(self, ids: Iterable[str]) -> list[str]:
        """Sort ids by creation time; ids without a loaded action go last."""
        def key(action_id: str):
            action = self.actions.get(action_id)
            if action is None:
                return (1, None, action_id)
            return (0, action.created_at, action_id)
        return sorted(ids, key=key)

    def is_done(self, action_id: str) -> bool:
        """Done flag of an action. Ids missing from the snapshot count as done."""
        action = self.actions.get(action_id)
        return action is None or action.done

    def children(self, action_id: str) -> list[str]:
        if action_id not in self.family:
            return []
        return self._ordered(self.family.successors(action_id))

    def parent(self, action_id: str) -> Optional[str]:
        if action_id not in self.family:
            return None
        parents = list(self.family.predecessors(action_id))
        return parents[0] if parents else None

    def prerequisites(self, action_id: str) -> list[str]:
        if action_id not in self.dependencies:
            return []
        return self._ordered(self.dependencies.predecessors(action_id))

    def dependents(self, action_id: str) -> list[str]:
        if action_id not in self.dependencies:
            return []
        return self._ordered(self.dependencies.successors(action_id))

    def roots(self) -> list[str]:
        """Actions with no family parent, in creation order."""
        return self._ordered(a for a in self.actions if self.family.in_degree(a) == 0)

    def descendants(self, action_id: str) -> list[str]:
        """All transitive family descendants, breadth-first."""
        return bfs(self.family, action_id, direction="downstream")

    def ancestors(self, action_id: str) -> list[str]:
        """
        Family ancestors from the root down to the direct parent.

        Stops early if the walk revisits an action, so a corrupted graph
        can't loop forever.
        """
        chain: list[str] = []
        seen = {action_id}
        current = self.parent(action_id)
        while current is not None and current not in seen:
            chain.append(current)
            seen.add(current)
            current = self.parent(current)
        chain.reverse()
        return chain
