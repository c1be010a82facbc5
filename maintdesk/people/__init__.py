"""Reporters and assignees."""

from .directory import PersonDirectory
from .models import Department, Person, PersonRole, digits_only
from .repository import PersonRepository
from .service import BulkCreateResult, DuplicateEmailError, PersonNotFoundError, PersonService

__all__ = [
    "BulkCreateResult",
    "Department",
    "DuplicateEmailError",
    "Person",
    "PersonDirectory",
    "PersonNotFoundError",
    "PersonRepository",
    "PersonRole",
    "PersonService",
    "digits_only",
]
