"""
Read models returned by the query engine.

These are the shapes the UI and summary collaborators consume: a nested
tree, a per-action detail view with its ancestor chain, a dependency
overview, and a breadcrumb path.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from actiongraph.core.models import Action


class ActionSummary(BaseModel):
    """The content fields of an action, without collaborator columns."""

    id: str
    title: str
    description: Optional[str] = None
    vision: Optional[str] = None
    done: bool = False
    version: int = 1
    created_at: datetime
    updated_at: datetime

    model_config = {"extra": "forbid"}

    @classmethod
    def from_action(cls, action: Action) -> ActionSummary:
        return cls(
            id=action.id,
            title=action.title,
            description=action.description,
            vision=action.vision,
            done=action.done,
            version=action.version,
            created_at=action.created_at,
            updated_at=action.updated_at,
        )


class ActionNode(BaseModel):
    """A node in the nested action tree."""

    id: str
    title: str
    done: bool
    created_at: datetime
    children: list[ActionNode] = Field(default_factory=list)
    dependencies: list[str] = Field(
        default_factory=list,
        description="IDs of this action's prerequisites"
    )


class ActionTree(BaseModel):
    """Every root action with its nested subtree."""

    root_actions: list[ActionNode] = Field(default_factory=list)


class ActionDetail(BaseModel):
    """One action with its immediate neighbourhood."""

    action: ActionSummary
    parent_id: Optional[str] = None
    parent_chain: list[ActionSummary] = Field(
        default_factory=list,
        description="Ancestors from the root down to the direct parent"
    )
    children: list[ActionSummary] = Field(default_factory=list)
    dependencies: list[ActionSummary] = Field(
        default_factory=list,
        description="Actions this one waits on"
    )
    dependents: list[ActionSummary] = Field(
        default_factory=list,
        description="Actions waiting on this one"
    )


class DependencyRef(BaseModel):
    id: str
    title: str
    done: bool


class DependencyMapping(BaseModel):
    """Prerequisites and dependents of a single action."""

    action_id: str
    action_title: str
    action_done: bool
    depends_on: list[DependencyRef] = Field(default_factory=list)
    dependents: list[DependencyRef] = Field(default_factory=list)


class PathSegment(BaseModel):
    id: str
    title: str


class ActionPath(BaseModel):
    """A root-to-action breadcrumb."""

    segments: list[PathSegment] = Field(default_factory=list)
    breadcrumb: str = Field(default="", description='e.g. "Product > Marketing > Launch Ads"')

    @property
    def titles(self) -> list[str]:
        return [s.title for s in self.segments]
