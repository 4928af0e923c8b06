"""
Core data models for the action graph.

This module defines the records the engine stores and passes around:

- Action: A unit of work with content fields, a completion flag and a
  version counter for optimistic concurrency
- ActionEdge: A directed (src, dst, kind) relationship between two actions
- ActionCreate / ActionUpdate: Validated payloads for the write paths

Design Philosophy:
    Relationships live in edge rows keyed by opaque ids, never as object
    references on the Action itself. Every in-memory view of the graph is
    rebuilt from those rows, so there are no back-pointers to keep in sync.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from threading import Lock
from typing import Any, Optional

import ulid
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from actiongraph.core.errors import ValidationError


class EdgeKind(str, Enum):
    """Kinds of relationships between actions."""

    FAMILY = "family"  # src contains dst
    DEPENDS_ON = "depends_on"  # src must be done before dst is workable


class DeletePolicy(str, Enum):
    """What happens to the children of a deleted action."""

    ORPHAN = "orphan"
    DELETE_RECURSIVE = "delete_recursive"
    REPARENT = "reparent"


# Columns written by external collaborators (embeddings, AI summaries).
# The engine stores and returns them but never reads their contents.
DERIVED_FIELDS = (
    "embedding_vector",
    "node_summary",
    "subtree_summary",
    "family_context_summary",
    "family_vision_summary",
)

EDITABLE_FIELDS = ("title", "description", "vision", "done")


def generate_id() -> str:
    """Generate a unique, sortable ID using ULID."""
    return str(ulid.new())


_clock_lock = Lock()
_last_timestamp: Optional[datetime] = None


def utcnow() -> datetime:
    """
    Current UTC time, strictly increasing within the process.

    Actions are ordered by creation time; two creations in the same
    clock tick still get distinct, ordered timestamps.
    """
    global _last_timestamp
    with _clock_lock:
        now = datetime.now(timezone.utc)
        if _last_timestamp is not None and now <= _last_timestamp:
            now = _last_timestamp + timedelta(microseconds=1)
        _last_timestamp = now
        return now


def validate_action_id(value: Any, role: str = "action_id") -> str:
    """
    Check that an identifier is usable as an action id.

    Ids are opaque, so the only requirements are: a string, not blank,
    no surrounding whitespace.

    Raises:
        ValidationError: If the value is not a usable id
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{role} must be a non-empty string", field=role)
    if value != value.strip():
        raise ValidationError(f"{role} must not contain surrounding whitespace", field=role)
    return value


def _clean_title(v: str) -> str:
    if not v or not v.strip():
        raise ValueError("title cannot be empty")
    return v.strip()


class Action(BaseModel):
    """
    A unit of work.

    Every action has:
    - A unique ID (ULID for sortability)
    - A required title and optional description / vision text
    - A done flag
    - A version number, incremented on every field edit
    - Creation and update timestamps

    The derived fields at the bottom belong to collaborators that generate
    embeddings and summaries. They round-trip through the store untouched.
    """

    id: str = Field(default_factory=generate_id, description="Unique action identifier")
    title: str = Field(..., description="Short human-readable title")
    description: Optional[str] = Field(
        default=None,
        description="Detailed instructions or context for performing the action"
    )
    vision: Optional[str] = Field(
        default=None,
        description="The state of the world once the action is complete"
    )
    done: bool = Field(default=False, description="Completion flag")
    version: int = Field(default=1, description="Version number for optimistic concurrency")

    created_at: datetime = Field(default_factory=utcnow, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=utcnow, description="Last modification timestamp")

    # Collaborator-owned
    embedding_vector: Optional[list[float]] = Field(default=None, description="Semantic embedding")
    node_summary: Optional[str] = Field(default=None)
    subtree_summary: Optional[str] = Field(default=None)
    family_context_summary: Optional[str] = Field(default=None)
    family_vision_summary: Optional[str] = Field(default=None)

    model_config = {"extra": "forbid"}

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Ensure title is not empty."""
        return _clean_title(v)


class ActionEdge(BaseModel):
    """
    A directed edge between two actions.

    - FAMILY (parent, child): parent contains child
    - DEPENDS_ON (before, after): before must be done before after is workable

    The triple (src, dst, kind) is the edge's identity.
    """

    src: str = Field(..., description="Source action ID")
    dst: str = Field(..., description="Destination action ID")
    kind: EdgeKind = Field(..., description="Type of relationship")
    created_at: datetime = Field(default_factory=utcnow, description="When this edge was created")

    model_config = {"frozen": True, "extra": "forbid"}

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.src, self.dst, self.kind.value)


class ActionCreate(BaseModel):
    """Content fields accepted when creating an action."""

    title: str
    description: Optional[str] = None
    vision: Optional[str] = None

    model_config = {"extra": "forbid"}

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _clean_title(v)


class ActionUpdate(BaseModel):
    """
    A partial edit of an action's editable fields.

    Only fields explicitly present in the input are applied, so passing
    ``description=None`` clears the description while omitting it leaves
    it alone.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    vision: Optional[str] = None
    done: Optional[bool] = None

    model_config = {"extra": "forbid"}

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("title cannot be cleared")
        return _clean_title(v)

    @field_validator("done")
    @classmethod
    def validate_done(cls, v: Optional[bool]) -> bool:
        if v is None:
            raise ValueError("done cannot be null")
        return v

    def changes(self) -> dict[str, Any]:
        """Return only the fields the caller actually supplied."""
        return self.model_dump(exclude_unset=True)


class DerivedFields(BaseModel):
    """Typed payload for the collaborator-owned columns."""

    embedding_vector: Optional[list[float]] = None
    node_summary: Optional[str] = None
    subtree_summary: Optional[str] = None
    family_context_summary: Optional[str] = None
    family_vision_summary: Optional[str] = None

    model_config = {"extra": "forbid"}


def _first_error(exc: PydanticValidationError) -> tuple[str, Optional[str]]:
    err = exc.errors()[0]
    loc = err.get("loc") or ()
    field = str(loc[0]) if loc else None
    msg = err.get("msg", "invalid value")
    return (f"{field}: {msg}" if field else msg), field


def parse_create(
    title: Any,
    description: Optional[str] = None,
    vision: Optional[str] = None,
) -> ActionCreate:
    """
    Validate creation fields.

    Raises:
        ValidationError: If any field is malformed
    """
    try:
        return ActionCreate(title=title, description=description, vision=vision)
    except PydanticValidationError as e:
        message, field = _first_error(e)
        raise ValidationError(message, field=field) from e


def parse_update(fields: dict[str, Any]) -> ActionUpdate:
    """
    Validate a partial update.

    Raises:
        ValidationError: If the mapping is empty, names an unknown or
            collaborator-owned field, or carries a malformed value
    """
    if not fields:
        raise ValidationError(
            "At least one field (title, description, vision, or done) must be provided"
        )
    for name in fields:
        if name in DERIVED_FIELDS:
            raise ValidationError(f"{name} is managed by an external collaborator", field=name)
    try:
        return ActionUpdate(**fields)
    except PydanticValidationError as e:
        message, field = _first_error(e)
        raise ValidationError(message, field=field) from e


def parse_derived(fields: dict[str, Any]) -> dict[str, Any]:
    """
    Validate a write to the collaborator-owned columns.

    Returns:
        The supplied fields, coerced to their column types

    Raises:
        ValidationError: If a field is not a derived column or its value
            has the wrong type
    """
    for name in fields:
        if name not in DERIVED_FIELDS:
            raise ValidationError(f"{name} is not a derived field", field=name)
    try:
        return DerivedFields(**fields).model_dump(exclude_unset=True)
    except PydanticValidationError as e:
        message, field = _first_error(e)
        raise ValidationError(message, field=field) from e


def parse_edge_kind(kind: Any) -> EdgeKind:
    try:
        return EdgeKind(kind)
    except ValueError as e:
        raise ValidationError(f"{kind!r} is not a valid edge kind", field="kind") from e


def parse_delete_policy(policy: Any) -> DeletePolicy:
    try:
        return DeletePolicy(policy)
    except ValueError as e:
        raise ValidationError(f"{policy!r} is not a valid delete policy", field="policy") from e
