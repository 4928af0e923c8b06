"""
Main client interface for the action graph engine.

ActionGraph is the one object applications hold. It owns the wiring
between the store and the graph services, and exposes every operation
as a plain method call.

Usage:
    ```python
    from actiongraph import ActionGraph, DeletePolicy

    with ActionGraph.from_env() as graph:
        product = graph.create_action("Product")
        marketing = graph.create_action("Marketing", parent_id=product.id)
        ads = graph.create_action("Launch Ads", parent_id=marketing.id)

        # What can I do right now?
        for action in graph.compute_workable():
            print(action.title)

        # Breadcrumb
        print(graph.build_path(ads.id).breadcrumb)

        graph.delete_action(marketing.id, policy=DeletePolicy.DELETE_RECURSIVE)
    ```
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional

from actiongraph.core.config import EngineConfig
from actiongraph.core.errors import ValidationError
from actiongraph.core.models import (
    Action,
    ActionEdge,
    DeletePolicy,
    parse_create,
    parse_update,
    validate_action_id,
)
from actiongraph.graph.dependencies import DependencyResolver
from actiongraph.graph.invariants import GraphInvariantEnforcer, InvariantReport
from actiongraph.graph.structure import DeleteResult, RepairReport, StructuralMutationService
from actiongraph.graph.workable import BlockingDependency, WorkableActionComputer
from actiongraph.query.engine import ActionQueryEngine
from actiongraph.query.resources import ActionDetail, ActionPath, ActionTree, DependencyMapping
from actiongraph.runtime.backfill import BackfillReport, BackfillRunner
from actiongraph.storage.engine import ActionStore, InMemoryActionStore

logger = logging.getLogger(__name__)


class ActionGraph:
    """
    The action graph engine.

    Holds a store and the services built on it:
    - Creating, editing and completing actions
    - Restructuring the family tree (move, delete with child policies)
    - Managing prerequisites
    - Workability (workable set, next action, blocking report)
    - Read views (tree, detail, dependency overview, breadcrumbs)
    - Maintenance (invariant audit, mirror repair, derived-field backfill)

    Thread Safety:
        Operations are thread-safe with both bundled stores. Each
        mutating call commits atomically; read views are snapshots and
        may be stale by the time they are used.
    """

    def __init__(
        self,
        store: Optional[ActionStore] = None,
        config: Optional[EngineConfig] = None,
    ):
        """
        Initialize the engine.

        Args:
            store: Storage backend (default: a fresh InMemoryActionStore)
            config: Engine settings (default: EngineConfig())
        """
        self._config = config or EngineConfig()
        self._store = store if store is not None else InMemoryActionStore()

        self._enforcer = GraphInvariantEnforcer(self._store)
        self._workable = WorkableActionComputer(self._store)
        self._structure = StructuralMutationService(
            self._store,
            self._enforcer,
            mirror_family_dependencies=self._config.mirror_family_dependencies,
        )
        self._dependencies = DependencyResolver(self._store, self._enforcer)
        self._query = ActionQueryEngine(self._store)

    @classmethod
    def from_config(cls, config: EngineConfig) -> ActionGraph:
        """Open the store the config points at and build an engine on it."""
        config.apply_logging()
        return cls(config.open_store(), config)

    @classmethod
    def from_env(cls) -> ActionGraph:
        """Build an engine from ACTIONGRAPH_* environment variables."""
        return cls.from_config(EngineConfig.from_env())

    @property
    def store(self) -> ActionStore:
        return self._store

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def query(self) -> ActionQueryEngine:
        """Direct access to the read-side engine."""
        return self._query

    def close(self) -> None:
        self._store.close()

    def __enter__(self) -> ActionGraph:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # =========================================================================
    # Actions
    # =========================================================================

    def create_action(
        self,
        title: str,
        description: Optional[str] = None,
        vision: Optional[str] = None,
        parent_id: Optional[str] = None,
        depends_on_ids: Optional[Iterable[str]] = None,
    ) -> Action:
        """
        Create an action, optionally placed under a parent and with prerequisites.

        The action, its family edge and its dependency edges are written
        together: if any part is rejected, nothing is created.

        Args:
            title: Non-blank title
            description: Optional free text
            vision: Optional description of the finished state
            parent_id: Parent to place the action under
            depends_on_ids: Actions that must be done first (duplicates ignored)

        Returns:
            The created action

        Raises:
            ValidationError: If a field or id is malformed
            NotFoundError: If the parent or a prerequisite does not exist
        """
        fields = parse_create(title, description, vision)
        if parent_id is not None:
            validate_action_id(parent_id, "parent_id")
        if isinstance(depends_on_ids, str):
            raise ValidationError(
                "depends_on_ids must be a list of ids, not a single string",
                field="depends_on_ids",
            )

        prerequisites: list[str] = []
        for dep_id in depends_on_ids or ():
            validate_action_id(dep_id, "depends_on_ids")
            if dep_id not in prerequisites:
                prerequisites.append(dep_id)

        with self._store.transaction():
            if parent_id is not None:
                self._store.require(parent_id, role="Parent action")
            for dep_id in prerequisites:
                self._store.require(dep_id, role="Dependency action")

            action = self._store.create(fields)
            if parent_id is not None:
                self._structure.attach(parent_id, action.id)
            for dep_id in prerequisites:
                self._dependencies.add_dependency(action.id, dep_id)

        logger.info(
            f"Created action {action.id} '{action.title}'"
            + (f" under {parent_id}" if parent_id else "")
        )
        return self._store.require(action.id)

    def get_action(self, action_id: str) -> Action:
        return self._query.get_action(action_id)

    def list_actions(
        self,
        done: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Action]:
        return self._query.list_actions(done=done, limit=limit, offset=offset)

    def update_action(
        self,
        action_id: str,
        fields: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Action:
        """
        Edit title, description, vision and/or done.

        Args:
            action_id: Action to edit
            fields: Subset of {title, description, vision, done}
            expected_version: Fail instead of overwriting if the stored
                version has moved on

        Raises:
            ValidationError: If fields is empty or malformed
            NotFoundError: If the action does not exist
            VersionConflictError: If expected_version is stale
        """
        validate_action_id(action_id)
        changes = parse_update(fields)
        action = self._store.update(action_id, changes, expected_version=expected_version)
        logger.debug(f"Updated action {action_id} to version {action.version}")
        return action

    def complete_action(self, action_id: str, expected_version: Optional[int] = None) -> Action:
        """Mark an action done."""
        return self.update_action(action_id, {"done": True}, expected_version)

    def uncomplete_action(self, action_id: str, expected_version: Optional[int] = None) -> Action:
        """Reopen a done action."""
        return self.update_action(action_id, {"done": False}, expected_version)

    # =========================================================================
    # Structure
    # =========================================================================

    def delete_action(
        self,
        action_id: str,
        policy: DeletePolicy = DeletePolicy.ORPHAN,
        new_parent_id: Optional[str] = None,
    ) -> DeleteResult:
        """See StructuralMutationService.delete_action."""
        return self._structure.delete_action(action_id, policy, new_parent_id)

    def move_action(self, action_id: str, new_parent_id: Optional[str]) -> None:
        """Move an action under new_parent_id, or make it a root with None."""
        self._structure.move_action(action_id, new_parent_id)

    def add_dependency(self, action_id: str, depends_on_id: str) -> ActionEdge:
        """Make action_id wait for depends_on_id."""
        return self._dependencies.add_dependency(action_id, depends_on_id)

    def remove_dependency(self, action_id: str, depends_on_id: str) -> ActionEdge:
        return self._dependencies.remove_dependency(action_id, depends_on_id)

    def list_family_edges(self, action_id: str) -> list[ActionEdge]:
        return self._query.list_family_edges(action_id)

    def list_dependency_edges(self, action_id: str) -> list[ActionEdge]:
        return self._query.list_dependency_edges(action_id)

    def get_ancestor_chain(self, action_id: str) -> list[Action]:
        return self._query.get_ancestor_chain(action_id)

    # =========================================================================
    # Workability
    # =========================================================================

    def compute_workable(self, limit: Optional[int] = None) -> list[Action]:
        """Every open action whose prerequisites and children are all done."""
        return self._workable.compute(limit=limit)

    def next_action(self) -> Optional[Action]:
        return self._workable.next_action()

    def blocking_dependencies(self) -> list[BlockingDependency]:
        return self._workable.blocking_dependencies()

    # =========================================================================
    # Views
    # =========================================================================

    def get_action_detail(self, action_id: str) -> ActionDetail:
        return self._query.get_action_detail(action_id)

    def get_tree(self, include_completed: bool = False, root_id: Optional[str] = None) -> ActionTree:
        return self._query.get_tree(include_completed=include_completed, root_id=root_id)

    def get_dependency_overview(self, include_completed: bool = False) -> list[DependencyMapping]:
        return self._query.get_dependency_overview(include_completed=include_completed)

    def build_path(
        self,
        action_id: str,
        separator: str = " > ",
        include_current: bool = True,
    ) -> ActionPath:
        return self._query.build_path(action_id, separator=separator, include_current=include_current)

    # =========================================================================
    # Maintenance
    # =========================================================================

    def verify_invariants(self) -> InvariantReport:
        """Audit the stored graph. Mirror gaps are reported when mirroring is on."""
        return self._enforcer.verify(check_mirrors=self._config.mirror_family_dependencies)

    def repair_family_dependencies(self) -> RepairReport:
        return self._structure.repair_family_dependencies()

    def backfill(
        self,
        field: str,
        generate: Callable[[Action], Any],
        include_completed: bool = True,
        limit: Optional[int] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> BackfillReport:
        """
        Fill a collaborator-owned field for every action missing it.

        Batch size and pause come from the engine config.
        """
        kwargs = {} if sleep is None else {"sleep": sleep}
        runner = BackfillRunner(
            self._store,
            batch_size=self._config.backfill_batch_size,
            delay_seconds=self._config.backfill_delay,
            **kwargs,
        )
        return runner.run(field, generate, include_completed=include_completed, limit=limit)
