"""Error taxonomy shared by every service.

Each error carries the HTTP status and machine readable code the API layer
reports; services never build transport responses themselves.
"""

from __future__ import annotations

from typing import Any


class AppError(RuntimeError):
    """Base class for expected, user-facing failures."""

    status_code: int = 500
    code: str = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str, *, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class InvalidAssigneeError(ValidationError):
    """Raised when assignee ids do not resolve to known people."""

    code = "INVALID_ASSIGNEE"

    def __init__(self, person_ids: list[str]) -> None:
        joined = ", ".join(person_ids)
        super().__init__(f"Person {joined} not found", details={"assigneeIds": list(person_ids)})
        self.person_ids = list(person_ids)


class InvalidLocationError(ValidationError):
    code = "INVALID_LOCATION"


class ConflictingAssigneeInputError(ConflictError):
    """Raised when both assignee ids and inline assignee snapshots are supplied."""

    code = "CONFLICTING_ASSIGNEE_INPUT"
