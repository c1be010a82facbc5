from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from maintdesk.core.concurrency import gather_in_chunks
from maintdesk.core.errors import AppError, ConflictError, NotFoundError

from .models import Department, Person, PersonRole
from .repository import PersonRepository, normalize_person_fields

logger = logging.getLogger(__name__)


class PersonNotFoundError(NotFoundError):
    """Raised when a person id does not exist."""


class DuplicateEmailError(ConflictError):
    code = "DUPLICATE_EMAIL"


@dataclass(slots=True)
class BulkFailure:
    item: Mapping[str, Any]
    error: AppError


@dataclass(slots=True)
class BulkCreateResult:
    succeeded: list[Person] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)


class PersonService:
    """CRUD for people with unique email addresses."""

    def __init__(self, repository: PersonRepository, *, concurrency: int = 4) -> None:
        self._repository = repository
        self._concurrency = concurrency

    async def create(self, data: Mapping[str, Any]) -> Person:
        email = data.get("email")
        if email and await self._repository.find_by_email(str(email)) is not None:
            raise DuplicateEmailError(f"A person with email {email} already exists", details={"email": email})
        person = await self._repository.create(data)
        logger.info("Created person %s", person.id)
        return person

    async def get(self, person_id: str) -> Person:
        person = await self._repository.find_by_id(person_id)
        if person is None:
            raise PersonNotFoundError(f"Person with id {person_id} not found")
        return person

    async def update(self, person_id: str, data: Mapping[str, Any]) -> Person:
        email = data.get("email")
        if email:
            holder = await self._repository.find_by_email(str(email))
            if holder is not None and holder.id != person_id:
                raise DuplicateEmailError(f"A person with email {email} already exists", details={"email": email})
        updated = await self._repository.update(person_id, data)
        if updated is None:
            raise PersonNotFoundError(f"Person with id {person_id} not found")
        return updated

    async def delete(self, person_id: str) -> None:
        await self.get(person_id)
        await self._repository.delete(person_id)

    async def list(
        self,
        *,
        role: PersonRole | None = None,
        department: Department | None = None,
        page_size: int = 20,
        continuation_token: str | None = None,
    ) -> tuple[list[Person], str | None]:
        return await self._repository.list(
            role=role,
            department=department,
            page_size=page_size,
            continuation_token=continuation_token,
        )

    async def ensure_by_email(self, data: Mapping[str, Any]) -> Person:
        """Return the person owning ``data['email']``, creating them if needed."""

        email = data.get("email")
        if email:
            found = await self._repository.find_by_email(str(email))
            if found is not None:
                return found
        return await self._repository.create(data)

    async def upsert_by_email(self, data: Mapping[str, Any]) -> Person:
        email = data.get("email")
        if not email:
            return await self._repository.create(data)
        found = await self._repository.find_by_email(str(email))
        if found is None:
            return await self._repository.create(data)
        updated = await self._repository.update(found.id, data)
        return updated or found

    async def bulk_create(self, items: Sequence[Mapping[str, Any]]) -> BulkCreateResult:
        async def attempt(item: Mapping[str, Any]) -> Person | BulkFailure:
            try:
                return await self.create(item)
            except AppError as exc:
                return BulkFailure(item=item, error=exc)

        result = BulkCreateResult()
        pending: list[Mapping[str, Any]] = []
        seen_emails: set[str] = set()
        # repeats of an email inside the batch never reach the store
        for item in items:
            email = normalize_person_fields({"email": item.get("email")}).get("email")
            if email and email in seen_emails:
                result.failed.append(
                    BulkFailure(
                        item=item,
                        error=DuplicateEmailError(
                            f"A person with email {email} appears more than once in the batch",
                            details={"email": email},
                        ),
                    )
                )
                continue
            if email:
                seen_emails.add(email)
            pending.append(item)

        for outcome in await gather_in_chunks(pending, attempt, limit=self._concurrency):
            if isinstance(outcome, BulkFailure):
                result.failed.append(outcome)
            else:
                result.succeeded.append(outcome)
        if result.failed:
            logger.warning("Bulk person create: %d of %d failed", len(result.failed), len(items))
        return result
