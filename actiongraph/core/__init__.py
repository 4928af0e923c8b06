"""
Core domain models for the action graph.

- Action: a unit of intended work, arranged in a family tree
- ActionEdge: a family (containment) or depends_on (ordering) relation
- EngineConfig: settings, from code or the environment
"""

from actiongraph.core.models import (
    Action,
    ActionCreate,
    ActionEdge,
    ActionUpdate,
    DeletePolicy,
    EdgeKind,
)
from actiongraph.core.config import EngineConfig

__all__ = [
    "Action",
    "ActionCreate",
    "ActionEdge",
    "ActionUpdate",
    "DeletePolicy",
    "EdgeKind",
    "EngineConfig",
]
