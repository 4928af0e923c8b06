"""
Query layer for the action graph.

Read-only views: lists, ancestor chains, the nested tree, per-action
detail, the dependency overview and breadcrumb paths.
"""

from actiongraph.query.engine import ActionQueryEngine
from actiongraph.query.resources import (
    ActionDetail,
    ActionNode,
    ActionPath,
    ActionTree,
    DependencyMapping,
)

__all__ = [
    "ActionQueryEngine",
    "ActionDetail",
    "ActionNode",
    "ActionPath",
    "ActionTree",
    "DependencyMapping",
]
