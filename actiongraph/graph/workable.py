"""
Workable action computation.

An action is workable when it is not done, every prerequisite is done,
and it is either a leaf or every one of its children is done. An action
with open children is never itself workable: its decomposition is the
active unit of work.

The computer bulk-loads every action and every edge (two store calls),
builds the dependency map (action -> prerequisites) and the children map
(parent -> children) and evaluates the rule for each open action. That
is O(A + E) with a fixed number of round-trips, where evaluating each
action with its own queries would cost a round-trip per hop.

The snapshot is read without locking. Results are advisory: a concurrent
write may make them stale by the time they are shown.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from typing import Optional

from pydantic import BaseModel, Field

from actiongraph.core.models import Action, EdgeKind
from actiongraph.graph.snapshot import GraphSnapshot
from actiongraph.storage.engine import ActionStore

logger = logging.getLogger(__name__)


class BlockedAction(BaseModel):
    id: str
    title: str


class BlockingDependency(BaseModel):
    """An incomplete prerequisite and the incomplete actions waiting on it."""

    blocking_action_id: str
    blocking_action_title: str
    blocked_actions: list[BlockedAction] = Field(default_factory=list)

    @property
    def block_count(self) -> int:
        return len(self.blocked_actions)


class WorkableActionComputer:
    """
    Derives the set of actions ready to work on.

    Example:
        ```python
        computer = WorkableActionComputer(store)
        for action in computer.compute():
            print(action.title)
        ```
    """

    def __init__(self, store: ActionStore):
        self._store = store

    def _load(self) -> tuple[list[Action], dict[str, Action], dict, dict]:
        start = time.perf_counter()
        actions = self._store.list()
        edges = self._store.list_edges()

        action_map = {a.id: a for a in actions}
        dependency_map: dict[str, list[str]] = defaultdict(list)
        children_map: dict[str, list[str]] = defaultdict(list)
        for edge in edges:
            if edge.kind == EdgeKind.DEPENDS_ON:
                dependency_map[edge.dst].append(edge.src)
            else:
                children_map[edge.src].append(edge.dst)

        logger.debug(
            f"Loaded {len(actions)} actions and {len(edges)} edges "
            f"in {(time.perf_counter() - start) * 1000:.1f}ms"
        )
        return actions, action_map, dependency_map, children_map

    @staticmethod
    def _done(action_map: dict[str, Action], action_id: str) -> bool:
        # A prerequisite deleted between the two reads does not block
        action = action_map.get(action_id)
        return action is None or action.done

    def compute(self, limit: Optional[int] = None) -> list[Action]:
        """
        Return every workable action, oldest first.

        Args:
            limit: Stop after this many results (None = all)
        """
        actions, action_map, dependency_map, children_map = self._load()

        workable: list[Action] = []
        for action in actions:
            if action.done:
                continue
            if not all(self._done(action_map, p) for p in dependency_map.get(action.id, ())):
                continue
            if not all(self._done(action_map, c) for c in children_map.get(action.id, ())):
                continue
            workable.append(action)
            if limit is not None and len(workable) >= limit:
                break

        logger.debug(f"Found {len(workable)} workable actions among {len(actions)}")
        return workable

    def compute_ids(self) -> list[str]:
        """Return the ids of every workable action, oldest first."""
        return [a.id for a in self.compute()]

    def next_action(self) -> Optional[Action]:
        """
        Pick the single next thing to do.

        Walks open actions in creation order. An action is eligible when
        its own prerequisites and those of every ancestor are done. From
        the first eligible action, descend into its first eligible open
        child, and so on; the deepest action reached whose children are
        all done is returned.
        """
        snapshot = GraphSnapshot.load(self._store)

        def prerequisites_met(action_id: str) -> bool:
            return all(snapshot.is_done(p) for p in snapshot.prerequisites(action_id))

        def eligible(action_id: str) -> bool:
            if not prerequisites_met(action_id):
                return False
            return all(prerequisites_met(a) for a in snapshot.ancestors(action_id))

        def descend(action_id: str) -> tuple[Optional[str], bool]:
            """Return (found action, all children done) for the subtree at action_id."""
            all_done = True
            for child_id in snapshot.children(action_id):
                if snapshot.is_done(child_id):
                    continue
                all_done = False
                if not eligible(child_id):
                    continue
                found, child_all_done = descend(child_id)
                if found is not None:
                    return found, False
                if child_all_done:
                    return child_id, False
                # First eligible open child is blocked further down
                return None, False
            return None, all_done

        open_actions = [a for a in snapshot.actions.values() if not a.done]
        open_actions.sort(key=lambda a: (a.created_at, a.id))

        for action in open_actions:
            if not eligible(action.id):
                continue
            found, all_done = descend(action.id)
            if found is not None:
                return snapshot.actions[found]
            if all_done:
                return action

        return None

    def blocking_dependencies(self) -> list[BlockingDependency]:
        """
        List incomplete prerequisites that hold up incomplete actions.

        Returns:
            One entry per blocking action, most-blocking first
        """
        actions, action_map, dependency_map, _ = self._load()

        blocking: dict[str, BlockingDependency] = {}
        for action in actions:
            if action.done:
                continue
            for prerequisite_id in dependency_map.get(action.id, ()):
                prerequisite = action_map.get(prerequisite_id)
                if prerequisite is None or prerequisite.done:
                    continue
                entry = blocking.get(prerequisite_id)
                if entry is None:
                    entry = BlockingDependency(
                        blocking_action_id=prerequisite_id,
                        blocking_action_title=prerequisite.title,
                    )
                    blocking[prerequisite_id] = entry
                entry.blocked_actions.append(BlockedAction(id=action.id, title=action.title))

        return sorted(
            blocking.values(),
            key=lambda b: (-b.block_count, b.blocking_action_title, b.blocking_action_id),
        )
