from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

_NON_DIGITS = re.compile(r"\D")


def digits_only(value: str | None) -> str:
    return _NON_DIGITS.sub("", value or "")


class Department(str, Enum):
    """Which directory a person belongs to."""

    MAINTENANCE = "MAINTENANCE"
    LOCATION = "LOCATION"


class PersonRole(str, Enum):
    ADMIN = "admin"
    USER = "user"
    SUPERVISOR = "supervisor"
    TECHNICIAN = "technician"


@dataclass(slots=True, frozen=True)
class Person:
    """A reporter or assignee as stored in the person directory."""

    id: str
    first_name: str
    last_name: str
    role: PersonRole = PersonRole.USER
    email: str | None = None
    phone_number: str | None = None
    department: Department | None = None
    location_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Person":
        department = doc.get("department")
        return cls(
            id=str(doc["id"]),
            first_name=str(doc.get("firstName") or ""),
            last_name=str(doc.get("lastName") or ""),
            role=PersonRole(str(doc.get("role") or PersonRole.USER.value).lower()),
            email=doc.get("email"),
            phone_number=doc.get("phoneNumber"),
            department=Department(department) if department else None,
            location_id=doc.get("locationId"),
            created_at=doc.get("createdAt"),
            updated_at=doc.get("updatedAt"),
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "role": self.role.value,
            "email": self.email,
            "phoneNumber": self.phone_number,
            "department": self.department.value if self.department else None,
            "locationId": self.location_id,
        }
        if self.created_at:
            doc["createdAt"] = self.created_at
        if self.updated_at:
            doc["updatedAt"] = self.updated_at
        return doc
