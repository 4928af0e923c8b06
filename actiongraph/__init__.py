"""
ActionGraph - a persistent planning graph of actions.

Actions are arranged two ways at once:
- Family: a forest, each action with at most one parent
- Dependencies: a DAG of "must be done before" relations

The engine keeps both structures valid on every write and answers the
question that matters most: what can be worked on right now?
"""
from actiongraph.core.models import Action, ActionEdge, DeletePolicy, EdgeKind
from actiongraph.core.config import EngineConfig
from actiongraph.core.errors import (
    ActionGraphError,
    CycleDetectedError,
    DuplicateEdgeError,
    DuplicateParentError,
    NoDependencyFoundError,
    NotFoundError,
    SelfDependencyError,
    ValidationError,
    VersionConflictError,
)
from actiongraph.storage.engine import ActionStore, InMemoryActionStore
from actiongraph.storage.sqlite import SQLiteActionStore
from actiongraph.graph.invariants import InvariantReport
from actiongraph.graph.structure import DeleteResult, RepairReport
from actiongraph.graph.workable import BlockingDependency
from actiongraph.query.engine import ActionQueryEngine
from actiongraph.runtime.backfill import BackfillReport, BackfillRunner
from actiongraph.interface.client import ActionGraph

__version__ = "0.1.0"

__all__ = [
    # Models
    "Action",
    "ActionEdge",
    "DeletePolicy",
    "EdgeKind",
    "EngineConfig",
    # Errors
    "ActionGraphError",
    "CycleDetectedError",
    "DuplicateEdgeError",
    "DuplicateParentError",
    "NoDependencyFoundError",
    "NotFoundError",
    "SelfDependencyError",
    "ValidationError",
    "VersionConflictError",
    # Storage
    "ActionStore",
    "InMemoryActionStore",
    "SQLiteActionStore",
    # Results
    "InvariantReport",
    "DeleteResult",
    "RepairReport",
    "BlockingDependency",
    "BackfillReport",
    # Engine
    "ActionQueryEngine",
    "BackfillRunner",
    "ActionGraph",
]
