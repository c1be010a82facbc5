from __future__ import annotations

import uuid
from typing import Any, Mapping

from maintdesk.storage.documents import DocumentPage, DocumentRepository

from .models import Department, Person, PersonRole, digits_only


def normalize_person_fields(data: Mapping[str, Any]) -> dict[str, Any]:
    """Trim names, lower-case email and strip phone punctuation."""

    fields: dict[str, Any] = {}
    for key in ("firstName", "lastName"):
        if key in data and data[key] is not None:
            fields[key] = " ".join(str(data[key]).split())
    if "email" in data:
        fields["email"] = str(data["email"]).strip().lower() if data["email"] else None
    if "phoneNumber" in data:
        fields["phoneNumber"] = digits_only(data["phoneNumber"]) or None
    if "role" in data and data["role"] is not None:
        fields["role"] = PersonRole(str(data["role"]).lower()).value
    if "department" in data:
        fields["department"] = Department(data["department"]).value if data["department"] else None
    if "locationId" in data:
        fields["locationId"] = data["locationId"] or None
    return fields


class PersonRepository:
    """Person directory backed by the ``persons`` document collection."""

    def __init__(self, store: DocumentRepository) -> None:
        self._store = store

    async def create(self, data: Mapping[str, Any]) -> Person:
        doc = {
            "id": str(data.get("id") or uuid.uuid4()),
            "type": "person",
            "role": PersonRole.USER.value,
            "email": None,
            "phoneNumber": None,
            "department": None,
            "locationId": None,
        }
        doc.update(normalize_person_fields(data))
        created = await self._store.create(doc)
        return Person.from_document(created)

    async def find_by_id(self, person_id: str) -> Person | None:
        doc = await self._store.get(person_id)
        return Person.from_document(doc) if doc else None

    async def find_by_email(self, email: str) -> Person | None:
        if not email:
            return None
        page = await self._store.query({"type": "person", "email": email.strip().lower()}, page_size=1)
        return Person.from_document(page.items[0]) if page.items else None

    async def find_by_phone(self, phone: str, *, department: Department | None = None) -> Person | None:
        cleaned = digits_only(phone)
        if not cleaned:
            return None
        query: dict[str, Any] = {"type": "person", "phoneNumber": cleaned}
        if department is not None:
            query["department"] = department.value
        page = await self._store.query(query, page_size=1)
        return Person.from_document(page.items[0]) if page.items else None

    async def update(self, person_id: str, data: Mapping[str, Any]) -> Person | None:
        fields = normalize_person_fields(data)
        if not fields:
            return await self.find_by_id(person_id)
        doc = await self._store.patch(person_id, fields)
        return Person.from_document(doc) if doc else None

    async def delete(self, person_id: str) -> bool:
        return await self._store.delete(person_id)

    async def list(
        self,
        *,
        role: PersonRole | None = None,
        department: Department | None = None,
        page_size: int = 20,
        continuation_token: str | None = None,
    ) -> tuple[list[Person], str | None]:
        query: dict[str, Any] = {"type": "person"}
        if role is not None:
            query["role"] = role.value
        if department is not None:
            query["department"] = department.value
        page: DocumentPage = await self._store.query(
            query,
            sort=("lastName", "asc"),
            page_size=page_size,
            continuation_token=continuation_token,
        )
        return [Person.from_document(doc) for doc in page.items], page.continuation_token
