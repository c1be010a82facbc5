from __future__ import annotations

from typing import Any, Mapping, Protocol

from .models import Department, Person


class PersonDirectory(Protocol):
    """Lookups the ticket core needs from wherever people are kept."""

    async def find_by_id(self, person_id: str) -> Person | None:
        ...

    async def find_by_email(self, email: str) -> Person | None:
        ...

    async def find_by_phone(self, phone: str, *, department: Department | None = None) -> Person | None:
        ...

    async def create(self, data: Mapping[str, Any]) -> Person:
        ...
