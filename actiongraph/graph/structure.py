"""
Structural mutations of the family tree.

This module owns every operation that rewires containment:

- delete_action: remove an action under one of three child policies
  (orphan, delete_recursive, reparent)
- move_action: give an action a new parent, or make it a root
- attach / detach: the validated primitives the others are built from
- repair_family_dependencies: backfill the depends_on(child, parent)
  mirror edges for existing family edges

Every multi-row operation runs inside a single store transaction, so a
rejected step (unknown parent, cycle) leaves the graph exactly as it was.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel, Field

from actiongraph.core.errors import ActionGraphError, ValidationError
from actiongraph.core.models import (
    ActionEdge,
    DeletePolicy,
    EdgeKind,
    parse_delete_policy,
    validate_action_id,
)
from actiongraph.graph.invariants import GraphInvariantEnforcer, find_parent
from actiongraph.graph.snapshot import bfs, build_graph
from actiongraph.storage.engine import ActionStore

logger = logging.getLogger(__name__)


class DeleteResult(BaseModel):
    """Outcome of a delete_action call."""

    removed_ids: list[str] = Field(default_factory=list, description="Every action removed")
    policy: DeletePolicy
    children_count: int = Field(default=0, description="Direct children of the deleted action")
    new_parent_id: Optional[str] = None


class RepairReport(BaseModel):
    """Outcome of a mirror-dependency repair pass."""

    inserted: list[ActionEdge] = Field(default_factory=list)
    skipped: list[ActionEdge] = Field(
        default_factory=list,
        description="Mirrors that would have closed a dependency cycle"
    )


class StructuralMutationService:
    """
    Restructures the family tree while keeping the invariants intact.

    Args:
        store: Backing store
        enforcer: Invariant checks consulted before every edge insert
        mirror_family_dependencies: When True, every family(parent, child)
            added here is paired with depends_on(child, parent), and
            removed together with it
    """

    def __init__(
        self,
        store: ActionStore,
        enforcer: GraphInvariantEnforcer,
        mirror_family_dependencies: bool = False,
    ):
        self._store = store
        self._enforcer = enforcer
        self._mirror = mirror_family_dependencies

    @property
    def mirror_family_dependencies(self) -> bool:
        return self._mirror

    # =========================================================================
    # Primitives
    # =========================================================================

    def attach(self, parent_id: str, child_id: str) -> ActionEdge:
        """
        Add a validated family(parent, child) edge.

        Raises:
            DuplicateParentError: If child already has a parent
            CycleDetectedError: If the edge would close a family loop, or
                its mirror would close a dependency loop
        """
        with self._store.transaction():
            self._enforcer.validate_add_family_edge(parent_id, child_id)
            edge = self._store.insert_edge(parent_id, child_id, EdgeKind.FAMILY)

            if self._mirror:
                existing = self._store.list_edges(
                    kind=EdgeKind.DEPENDS_ON, src=child_id, dst=parent_id
                )
                if not existing:
                    self._enforcer.validate_add_dependency_edge(child_id, parent_id)
                    self._store.insert_edge(child_id, parent_id, EdgeKind.DEPENDS_ON)
        return edge

    def detach(self, child_id: str) -> Optional[ActionEdge]:
        """
        Remove the family edge above ``child_id``, if there is one.

        Returns:
            The removed edge, or None if the action was already a root
        """
        with self._store.transaction():
            parent_id = find_parent(self._store, child_id)
            if parent_id is None:
                return None
            edge = self._store.delete_edge(parent_id, child_id, EdgeKind.FAMILY)
            if self._mirror:
                self._store.delete_edge(child_id, parent_id, EdgeKind.DEPENDS_ON)
        return edge

    def descendants(self, action_id: str) -> list[str]:
        """
        Every transitive family descendant of an action, breadth-first.

        One bulk load of family edges, then an in-memory walk.
        """
        graph = build_graph(self._store.list_edges(kind=EdgeKind.FAMILY))
        return bfs(graph, action_id, direction="downstream")

    # =========================================================================
    # Operations
    # =========================================================================

    def delete_action(
        self,
        action_id: str,
        policy: DeletePolicy = DeletePolicy.ORPHAN,
        new_parent_id: Optional[str] = None,
    ) -> DeleteResult:
        """
        Delete an action and deal with its children.

        Args:
            action_id: Action to delete
            policy: ORPHAN leaves children as roots, DELETE_RECURSIVE removes
                the whole subtree, REPARENT moves children under new_parent_id
            new_parent_id: Required for REPARENT

        Returns:
            DeleteResult with every removed id

        Raises:
            NotFoundError: If the action or the new parent does not exist
            ValidationError: If the policy is unknown or REPARENT is missing a
                usable new_parent_id
            CycleDetectedError: If reparenting would put a child under its own descendant
        """
        policy = parse_delete_policy(policy)
        validate_action_id(action_id)

        if policy == DeletePolicy.REPARENT:
            if new_parent_id is None:
                raise ValidationError(
                    "new_parent_id is required when child handling is 'reparent'",
                    field="new_parent_id",
                )
            validate_action_id(new_parent_id, "new_parent_id")
            if new_parent_id == action_id:
                raise ValidationError(
                    "An action cannot be reparented onto itself", field="new_parent_id"
                )

        with self._store.transaction():
            self._store.require(action_id)
            if policy == DeletePolicy.REPARENT:
                self._store.require(new_parent_id, role="New parent action")

            child_ids = [
                e.dst for e in self._store.list_edges(kind=EdgeKind.FAMILY, src=action_id)
            ]
            removed: list[str] = [action_id]

            if policy == DeletePolicy.DELETE_RECURSIVE:
                subtree = self.descendants(action_id)
                for descendant_id in subtree:
                    self._store.delete(descendant_id)
                removed.extend(subtree)

            elif policy == DeletePolicy.REPARENT:
                for child_id in child_ids:
                    if child_id == new_parent_id:
                        # Promoted child becomes a root once its parent is gone
                        continue
                    self.detach(child_id)
                    self.attach(new_parent_id, child_id)

            # Cascades the action's own family and dependency edges
            self._store.delete(action_id)

        logger.info(
            f"Deleted action {action_id} ({policy.value}); "
            f"{len(removed)} removed, {len(child_ids)} direct children"
        )
        return DeleteResult(
            removed_ids=removed,
            policy=policy,
            children_count=len(child_ids),
            new_parent_id=new_parent_id if policy == DeletePolicy.REPARENT else None,
        )

    def move_action(self, action_id: str, new_parent_id: Optional[str]) -> None:
        """
        Move an action under a new parent, or to the root when new_parent_id is None.

        Raises:
            NotFoundError: If either action does not exist
            CycleDetectedError: If new_parent_id is the action or one of its descendants
        """
        validate_action_id(action_id)
        if new_parent_id is not None:
            validate_action_id(new_parent_id, "new_parent_id")

        with self._store.transaction():
            self._store.require(action_id)
            if new_parent_id is not None:
                self._store.require(new_parent_id, role="New parent action")

            current_parent = find_parent(self._store, action_id)
            if current_parent == new_parent_id:
                return

            self.detach(action_id)
            if new_parent_id is not None:
                self.attach(new_parent_id, action_id)
            self._store.touch(action_id)

        logger.info(f"Moved action {action_id} from {current_parent} to {new_parent_id}")

    def repair_family_dependencies(self) -> RepairReport:
        """
        Add the depends_on(child, parent) mirror for every family edge lacking one.

        Mirrors that would close a dependency cycle are skipped and
        reported rather than inserted. Safe to run repeatedly.
        """
        report = RepairReport()
        family_edges = self._store.list_edges(kind=EdgeKind.FAMILY)

        with self._store.transaction():
            for family_edge in family_edges:
                parent_id, child_id = family_edge.src, family_edge.dst
                if self._store.list_edges(kind=EdgeKind.DEPENDS_ON, src=child_id, dst=parent_id):
                    continue
                mirror = ActionEdge(src=child_id, dst=parent_id, kind=EdgeKind.DEPENDS_ON)
                try:
                    self._enforcer.validate_add_dependency_edge(child_id, parent_id)
                except ActionGraphError as e:
                    logger.warning(f"Skipping mirror {child_id} -> {parent_id}: {e}")
                    report.skipped.append(mirror)
                    continue
                report.inserted.append(
                    self._store.insert_edge(child_id, parent_id, EdgeKind.DEPENDS_ON)
                )

        logger.info(
            f"Mirror repair inserted {len(report.inserted)} dependencies, "
            f"skipped {len(report.skipped)}"
        )
        return report


__all__ = [
    "DeleteResult",
    "RepairReport",
    "StructuralMutationService",
]
