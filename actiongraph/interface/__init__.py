"""
Interface layer for the action graph.

Provides the client object applications hold.
"""

from actiongraph.interface.client import ActionGraph

__all__ = [
    "ActionGraph",
]
