"""
Graph layer: invariants, workability and structural mutations.

Everything here reads and writes through an ActionStore and builds its
in-memory views from bulk loads of edge rows.
"""

from actiongraph.graph.snapshot import GraphSnapshot, bfs, build_graph, reaches
from actiongraph.graph.invariants import (
    GraphInvariantEnforcer,
    InvariantReport,
    InvariantSeverity,
    InvariantViolation,
)
from actiongraph.graph.workable import BlockingDependency, WorkableActionComputer
from actiongraph.graph.structure import DeleteResult, RepairReport, StructuralMutationService
from actiongraph.graph.dependencies import DependencyResolver

__all__ = [
    "GraphSnapshot",
    "bfs",
    "build_graph",
    "reaches",
    "GraphInvariantEnforcer",
    "InvariantReport",
    "InvariantSeverity",
    "InvariantViolation",
    "BlockingDependency",
    "WorkableActionComputer",
    "DeleteResult",
    "RepairReport",
    "StructuralMutationService",
    "DependencyResolver",
]
