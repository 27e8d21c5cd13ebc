"""Exception hierarchy for the planner.

Everything raised on purpose inherits from ``BarnacleError`` so adapters can
catch the whole family at their boundary.  ``PlannerError`` subclasses are
user input problems: their message is safe to hand back to the caller as a
structured ``{"error": ...}`` result.
"""

from __future__ import annotations


class BarnacleError(Exception):
    """Base exception for all planner failures."""


class PlannerError(BarnacleError):
    """A request the caller can fix (missing field, unknown id, ...)."""


class MissingFieldError(PlannerError):
    """Raised when a required identifier or payload field is absent."""

    def __init__(self, field: str) -> None:
        super().__init__(f"{field} required")
        self.field = field


class InvalidIdentifierError(PlannerError):
    """Raised when an identifier cannot be mapped to a record file."""

    def __init__(self, project_id: str) -> None:
        super().__init__(f"Invalid project id {project_id!r}")
        self.project_id = project_id


class ProjectNotFoundError(PlannerError):
    """Raised when an operation references a record that does not exist."""

    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project '{project_id}' not found")
        self.project_id = project_id


class ProjectExistsError(PlannerError):
    """Raised by create when the identifier is already taken."""

    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project '{project_id}' already exists")
        self.project_id = project_id


class InvalidPayloadError(PlannerError):
    """Raised when a create/update payload does not match the record schema."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Invalid data: {detail}")
        self.detail = detail


class StorageError(BarnacleError):
    """Raised when the record store cannot complete a write."""
