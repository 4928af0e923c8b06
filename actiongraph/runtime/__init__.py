"""
Runtime layer for the action graph.

Provides maintenance jobs that run alongside the engine:
- Batched backfill of collaborator-owned fields
"""

from actiongraph.runtime.backfill import BackfillReport, BackfillRunner

__all__ = [
    "BackfillReport",
    "BackfillRunner",
]
