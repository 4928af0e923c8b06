"""
Query engine for the action graph.

Read-only views over the store: single actions, paged lists, the edges
around an action, its ancestor chain, and the composite resources (tree,
detail, dependency overview, breadcrumb path) consumed by UI and summary
collaborators.

Composite views load one GraphSnapshot (two store calls) and assemble
everything in memory.
"""

from __future__ import annotations

import logging
from typing import Optional

from actiongraph.core.errors import NotFoundError, ValidationError
from actiongraph.core.models import Action, ActionEdge, EdgeKind, validate_action_id
from actiongraph.graph.snapshot import GraphSnapshot
from actiongraph.query.resources import (
    ActionDetail,
    ActionNode,
    ActionPath,
    ActionSummary,
    ActionTree,
    DependencyMapping,
    DependencyRef,
    PathSegment,
)
from actiongraph.storage.engine import ActionStore

logger = logging.getLogger(__name__)


class ActionQueryEngine:
    """
    Read-side entry point for the action graph.

    Usage:
        ```python
        engine = ActionQueryEngine(store)

        # Basic queries
        action = engine.get_action("01J...")
        open_actions = engine.list_actions(done=False, limit=20)

        # Structure
        chain = engine.get_ancestor_chain(action.id)
        tree = engine.get_tree(include_completed=False)
        path = engine.build_path(action.id)
        ```
    """

    def __init__(self, store: ActionStore):
        """
        Initialize the query engine.

        Args:
            store: Storage backend
        """
        self._store = store

    def _snapshot(self) -> GraphSnapshot:
        return GraphSnapshot.load(self._store)

    @staticmethod
    def _require_in(snapshot: GraphSnapshot, action_id: str, role: str = "Action") -> Action:
        action = snapshot.actions.get(action_id)
        if action is None:
            raise NotFoundError(action_id, role=role)
        return action

    # =========================================================================
    # Basic Queries
    # =========================================================================

    def get_action(self, action_id: str) -> Action:
        """
        Get an action by ID.

        Raises:
            NotFoundError: If the action does not exist
        """
        validate_action_id(action_id)
        return self._store.require(action_id)

    def list_actions(
        self,
        done: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Action]:
        """
        List actions oldest first.

        Args:
            done: Filter by completion (None = both)
            limit: Maximum number of results (None = all)
            offset: Number of results to skip
        """
        if limit is not None and limit < 0:
            raise ValidationError("limit must not be negative", field="limit")
        if offset < 0:
            raise ValidationError("offset must not be negative", field="offset")
        return self._store.list(done=done, limit=limit, offset=offset)

    def count_actions(self, done: Optional[bool] = None) -> int:
        return self._store.count(done=done)

    def list_family_edges(self, action_id: str) -> list[ActionEdge]:
        """Family edges where the action is the parent or the child."""
        validate_action_id(action_id)
        self._store.require(action_id)
        as_parent = self._store.list_edges(kind=EdgeKind.FAMILY, src=action_id)
        as_child = self._store.list_edges(kind=EdgeKind.FAMILY, dst=action_id)
        return as_child + as_parent

    def list_dependency_edges(self, action_id: str) -> list[ActionEdge]:
        """Dependency edges where the action is the prerequisite or the dependent."""
        validate_action_id(action_id)
        self._store.require(action_id)
        incoming = self._store.list_edges(kind=EdgeKind.DEPENDS_ON, dst=action_id)
        outgoing = self._store.list_edges(kind=EdgeKind.DEPENDS_ON, src=action_id)
        return incoming + outgoing

    def get_ancestor_chain(self, action_id: str) -> list[Action]:
        """
        Ancestors of an action, from the root down to its direct parent.

        The action itself is not included; a root has an empty chain.
        """
        validate_action_id(action_id)
        snapshot = self._snapshot()
        self._require_in(snapshot, action_id)
        return [snapshot.actions[a] for a in snapshot.ancestors(action_id)]

    # =========================================================================
    # Composite Views
    # =========================================================================

    def get_action_detail(self, action_id: str) -> ActionDetail:
        """One action with its parent chain, children, prerequisites and dependents."""
        validate_action_id(action_id)
        snapshot = self._snapshot()
        action = self._require_in(snapshot, action_id)

        def summaries(ids: list[str]) -> list[ActionSummary]:
            return [
                ActionSummary.from_action(snapshot.actions[i])
                for i in ids
                if i in snapshot.actions
            ]

        return ActionDetail(
            action=ActionSummary.from_action(action),
            parent_id=snapshot.parent(action_id),
            parent_chain=summaries(snapshot.ancestors(action_id)),
            children=summaries(snapshot.children(action_id)),
            dependencies=summaries(snapshot.prerequisites(action_id)),
            dependents=summaries(snapshot.dependents(action_id)),
        )

    def get_tree(
        self,
        include_completed: bool = False,
        root_id: Optional[str] = None,
    ) -> ActionTree:
        """
        Build the nested action tree.

        Args:
            include_completed: Keep done actions. When False a done action
                is left out together with its subtree.
            root_id: Scope the tree to this action's subtree. The root
                itself is always included.

        Raises:
            NotFoundError: If root_id does not exist
        """
        snapshot = self._snapshot()

        def node(action_id: str, seen: set[str]) -> ActionNode:
            action = snapshot.actions[action_id]
            seen.add(action_id)
            children = []
            for child_id in snapshot.children(action_id):
                # Guards against a corrupted family cycle
                if child_id in seen or child_id not in snapshot.actions:
                    continue
                if not include_completed and snapshot.is_done(child_id):
                    continue
                children.append(node(child_id, seen))
            return ActionNode(
                id=action.id,
                title=action.title,
                done=action.done,
                created_at=action.created_at,
                children=children,
                dependencies=snapshot.prerequisites(action_id),
            )

        if root_id is not None:
            validate_action_id(root_id, "root_id")
            self._require_in(snapshot, root_id)
            return ActionTree(root_actions=[node(root_id, set())])

        roots = [
            r for r in snapshot.roots()
            if include_completed or not snapshot.is_done(r)
        ]
        tree = ActionTree(root_actions=[node(r, set()) for r in roots])
        logger.debug(f"Built tree with {len(tree.root_actions)} roots from {len(snapshot)} actions")
        return tree

    def get_dependency_overview(self, include_completed: bool = False) -> list[DependencyMapping]:
        """
        Prerequisites and dependents of every action that has either.

        Args:
            include_completed: Keep mappings for done actions. Referenced
                actions are always listed, with their done flag.
        """
        snapshot = self._snapshot()

        def refs(ids: list[str]) -> list[DependencyRef]:
            out = []
            for i in ids:
                a = snapshot.actions.get(i)
                if a is not None:
                    out.append(DependencyRef(id=a.id, title=a.title, done=a.done))
            return out

        mappings: list[DependencyMapping] = []
        for action in sorted(snapshot.actions.values(), key=lambda a: (a.created_at, a.id)):
            if action.done and not include_completed:
                continue
            depends_on = refs(snapshot.prerequisites(action.id))
            dependents = refs(snapshot.dependents(action.id))
            if not depends_on and not dependents:
                continue
            mappings.append(
                DependencyMapping(
                    action_id=action.id,
                    action_title=action.title,
                    action_done=action.done,
                    depends_on=depends_on,
                    dependents=dependents,
                )
            )
        return mappings

    def build_path(
        self,
        action_id: str,
        separator: str = " > ",
        include_current: bool = True,
    ) -> ActionPath:
        """
        Breadcrumb from the root down to an action.

        Example:
            ``"Product > Marketing > Launch Ads"``
        """
        validate_action_id(action_id)
        snapshot = self._snapshot()
        action = self._require_in(snapshot, action_id)

        ids = snapshot.ancestors(action_id)
        if include_current:
            ids.append(action.id)

        segments = [PathSegment(id=i, title=snapshot.actions[i].title) for i in ids]
        return ActionPath(
            segments=segments,
            breadcrumb=separator.join(s.title for s in segments),
        )
