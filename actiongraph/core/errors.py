"""
Error taxonomy for the action graph engine.

Every condition here is detected synchronously, before the store commits,
and is propagated unchanged to the calling layer. None of them are retried
internally. Storage and connectivity failures are not wrapped: they surface as
whatever the backend raised.

Messages are deterministic and use action titles where the raiser had them,
so the calling layer can show them to users verbatim.
"""

from __future__ import annotations

from typing import Optional


class ActionGraphError(Exception):
    """Base class for all engine errors."""


class NotFoundError(ActionGraphError):
    """
    Raised when a referenced action or edge does not exist.

    Attributes:
        action_id: The id that could not be resolved
        role: What the id was supposed to be (action, parent, dependency...)
    """

    def __init__(self, action_id: str, role: str = "Action", message: Optional[str] = None):
        self.action_id = action_id
        self.role = role
        super().__init__(message or f"{role} with ID {action_id} not found")


class ValidationError(ActionGraphError):
    """
    Raised for malformed identifiers or field values.

    Attributes:
        field: Name of the offending field, when known
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class DuplicateParentError(ActionGraphError):
    """Raised when a family edge would give an action a second parent."""

    def __init__(self, child_id: str, existing_parent_id: str, message: Optional[str] = None):
        self.child_id = child_id
        self.existing_parent_id = existing_parent_id
        super().__init__(
            message or f"Action {child_id} already has parent {existing_parent_id}"
        )


class CycleDetectedError(ActionGraphError):
    """
    Raised when an edge would close a cycle.

    Attributes:
        src: Source of the rejected edge
        dst: Destination of the rejected edge
        kind: Edge kind ("family" or "depends_on")
    """

    def __init__(self, src: str, dst: str, kind: str, message: Optional[str] = None):
        self.src = src
        self.dst = dst
        self.kind = kind
        super().__init__(message or f"Adding {kind} edge {src} -> {dst} would create a cycle")


class SelfDependencyError(ActionGraphError):
    """Raised when an action is made to depend on itself."""

    def __init__(self, action_id: str, message: Optional[str] = None):
        self.action_id = action_id
        super().__init__(message or f"Action {action_id} cannot depend on itself")


class DuplicateEdgeError(ActionGraphError):
    """Raised when an identical (src, dst, kind) edge already exists."""

    def __init__(self, src: str, dst: str, kind: str, message: Optional[str] = None):
        self.src = src
        self.dst = dst
        self.kind = kind
        super().__init__(message or f"Edge {src} -> {dst} ({kind}) already exists")


class NoDependencyFoundError(ActionGraphError):
    """
    Raised when removing a dependency edge that does not exist.

    Distinct from NotFoundError: both actions exist, only the
    relationship between them is missing.
    """

    def __init__(
        self,
        action_id: str,
        depends_on_id: str,
        action_title: Optional[str] = None,
        depends_on_title: Optional[str] = None,
    ):
        self.action_id = action_id
        self.depends_on_id = depends_on_id
        self.action_title = action_title
        self.depends_on_title = depends_on_title
        super().__init__(
            f"No dependency found: {action_title or action_id} "
            f"does not depend on {depends_on_title or depends_on_id}"
        )


class VersionConflictError(ActionGraphError):
    """
    Raised when an optimistic update carries a stale version.

    Callers should re-read the action and retry with ``actual_version``.
    """

    def __init__(self, action_id: str, expected_version: int, actual_version: int):
        self.action_id = action_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on action {action_id}: "
            f"expected {expected_version}, found {actual_version}"
        )


__all__ = [
    "ActionGraphError",
    "NotFoundError",
    "ValidationError",
    "DuplicateParentError",
    "CycleDetectedError",
    "SelfDependencyError",
    "DuplicateEdgeError",
    "NoDependencyFoundError",
    "VersionConflictError",
]
