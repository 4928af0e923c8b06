"""
Structural invariants of the action graph.

Every mutating path asks the GraphInvariantEnforcer before the store
commits an edge. The rules:

1. Single parent: at most one incoming family edge per action
2. Containment acyclicity: no action is its own family ancestor
3. Dependency acyclicity: no action is its own transitive prerequisite

Cycle checks load the edges of one kind in a single call, build an
adjacency map and walk it breadth-first from the target. That keeps each
check O(edges) with one round-trip, however deep the graph is.

``verify()`` audits a whole stored graph against the same rules, for
data that predates the enforcer or was written around it.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

import networkx as nx
from pydantic import BaseModel, Field

from actiongraph.core.errors import (
    CycleDetectedError,
    DuplicateEdgeError,
    DuplicateParentError,
    SelfDependencyError,
)
from actiongraph.core.models import EdgeKind
from actiongraph.graph.snapshot import build_graph, reaches
from actiongraph.storage.engine import ActionStore

logger = logging.getLogger(__name__)


class InvariantSeverity(str, Enum):
    """Severity levels for invariant violations."""

    ERROR = "error"  # A hard invariant is broken
    WARNING = "warning"  # A convention is not followed


class InvariantViolation(BaseModel):
    """A specific invariant violation."""

    invariant: str = Field(..., description="Name of the invariant")
    severity: InvariantSeverity
    message: str
    action_ids: list[str] = Field(default_factory=list, description="Actions involved")

    model_config = {"extra": "forbid"}


class InvariantReport(BaseModel):
    """Result of auditing a stored graph."""

    valid: bool = Field(..., description="True when no ERROR-level violation was found")
    violations: list[InvariantViolation] = Field(default_factory=list)
    action_count: int = 0
    family_edge_count: int = 0
    dependency_edge_count: int = 0

    model_config = {"extra": "forbid"}

    @property
    def errors(self) -> list[InvariantViolation]:
        return [v for v in self.violations if v.severity == InvariantSeverity.ERROR]

    @property
    def warnings(self) -> list[InvariantViolation]:
        return [v for v in self.violations if v.severity == InvariantSeverity.WARNING]


class GraphInvariantEnforcer:
    """
    Validates edge mutations against the structural invariants.

    Validation is read-only: callers perform the insert themselves once
    a check passes, ideally inside the same store transaction.

    Example:
        ```python
        enforcer = GraphInvariantEnforcer(store)
        enforcer.validate_add_family_edge(parent_id, child_id)
        store.insert_edge(parent_id, child_id, EdgeKind.FAMILY)
        ```
    """

    def __init__(self, store: ActionStore):
        self._store = store

    def _title(self, action_id: str) -> str:
        action = self._store.get(action_id)
        return f"'{action.title}'" if action is not None else action_id

    def validate_add_family_edge(self, parent_id: str, child_id: str) -> None:
        """
        Check that family(parent, child) may be added.

        Raises:
            DuplicateParentError: If child already has a parent
            CycleDetectedError: If parent is child or already inside child's subtree
        """
        if parent_id == child_id:
            raise CycleDetectedError(
                parent_id, child_id, EdgeKind.FAMILY.value,
                message=f"{self._title(child_id)} cannot be its own parent",
            )

        family_edges = self._store.list_edges(kind=EdgeKind.FAMILY)

        for edge in family_edges:
            if edge.dst == child_id:
                raise DuplicateParentError(
                    child_id, edge.src,
                    message=(
                        f"{self._title(child_id)} already has parent "
                        f"{self._title(edge.src)}; remove it before assigning a new one"
                    ),
                )

        # Walk up from the proposed parent; meeting the child means the
        # parent already sits inside the child's subtree
        graph = build_graph(family_edges)
        if reaches(graph, parent_id, child_id, direction="upstream"):
            raise CycleDetectedError(
                parent_id, child_id, EdgeKind.FAMILY.value,
                message=(
                    f"Cannot make {self._title(parent_id)} the parent of "
                    f"{self._title(child_id)}: it is already a descendant of it"
                ),
            )

    def validate_add_dependency_edge(self, before_id: str, after_id: str) -> None:
        """
        Check that depends_on(before, after) may be added.

        Raises:
            SelfDependencyError: If before and after are the same action
            DuplicateEdgeError: If the edge already exists
            CycleDetectedError: If after is already a transitive prerequisite of before
        """
        if before_id == after_id:
            raise SelfDependencyError(
                after_id, message=f"{self._title(after_id)} cannot depend on itself"
            )

        dependency_edges = self._store.list_edges(kind=EdgeKind.DEPENDS_ON)

        for edge in dependency_edges:
            if edge.src == before_id and edge.dst == after_id:
                raise DuplicateEdgeError(
                    before_id, after_id, EdgeKind.DEPENDS_ON.value,
                    message=(
                        f"{self._title(after_id)} already depends on {self._title(before_id)}"
                    ),
                )

        # Walk the prerequisites of `before`; finding `after` closes a loop
        graph = build_graph(dependency_edges)
        if reaches(graph, before_id, after_id, direction="upstream"):
            raise CycleDetectedError(
                before_id, after_id, EdgeKind.DEPENDS_ON.value,
                message=(
                    f"Cannot make {self._title(after_id)} depend on {self._title(before_id)}: "
                    f"{self._title(before_id)} already depends on it"
                ),
            )

    def verify(self, check_mirrors: bool = False) -> InvariantReport:
        """
        Audit every stored action and edge.

        Args:
            check_mirrors: Also report family edges lacking the
                depends_on(child, parent) mirror, as warnings

        Returns:
            InvariantReport listing every violation found
        """
        actions = self._store.list()
        edges = self._store.list_edges()
        violations: list[InvariantViolation] = []

        family = build_graph(edges, EdgeKind.FAMILY)
        dependencies = build_graph(edges, EdgeKind.DEPENDS_ON)

        for node in family.nodes:
            parents = sorted(family.predecessors(node))
            if len(parents) > 1:
                violations.append(InvariantViolation(
                    invariant="single_parent",
                    severity=InvariantSeverity.ERROR,
                    message=f"Action {node} has {len(parents)} parents",
                    action_ids=[node, *parents],
                ))

        for invariant, graph in (
            ("family_acyclic", family),
            ("dependency_acyclic", dependencies),
        ):
            for cycle in nx.simple_cycles(graph):
                violations.append(InvariantViolation(
                    invariant=invariant,
                    severity=InvariantSeverity.ERROR,
                    message=f"Cycle through {' -> '.join(cycle)}",
                    action_ids=list(cycle),
                ))

        if check_mirrors:
            for parent_id, child_id in family.edges:
                if not dependencies.has_edge(child_id, parent_id):
                    violations.append(InvariantViolation(
                        invariant="family_mirror",
                        severity=InvariantSeverity.WARNING,
                        message=f"Family edge {parent_id} -> {child_id} has no mirror dependency",
                        action_ids=[parent_id, child_id],
                    ))

        report = InvariantReport(
            valid=not any(v.severity == InvariantSeverity.ERROR for v in violations),
            violations=violations,
            action_count=len(actions),
            family_edge_count=family.number_of_edges(),
            dependency_edge_count=dependencies.number_of_edges(),
        )
        if not report.valid:
            logger.warning(f"Graph audit found {len(report.errors)} invariant violations")
        return report


def find_parent(store: ActionStore, child_id: str) -> Optional[str]:
    """Return the family parent of an action, if any."""
    edges = store.list_edges(kind=EdgeKind.FAMILY, dst=child_id)
    return edges[0].src if edges else None
