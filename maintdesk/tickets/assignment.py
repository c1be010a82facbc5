from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Generic, Iterable, Mapping, TypeVar

from maintdesk.core.errors import (
    ConflictingAssigneeInputError,
    InvalidAssigneeError,
    InvalidLocationError,
    ValidationError,
)
from maintdesk.locations.directory import LocationDirectory
from maintdesk.locations.models import LocationRef
from maintdesk.people.directory import PersonDirectory
from maintdesk.people.models import Person

from .models import Reference

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class Change(Generic[T]):
    """A resolved new value for a field; ``None`` inside means "clear it"."""

    value: T


def _supplied(patch: Mapping[str, Any], *keys: str) -> bool:
    return any(key in patch for key in keys)


def _has_value(patch: Mapping[str, Any], *keys: str) -> bool:
    return any(patch.get(key) not in (None, [], ()) for key in keys)


def _as_person(value: Person | Mapping[str, Any]) -> Person:
    if isinstance(value, Person):
        return value
    if not value.get("id"):
        raise ValidationError("Inline person snapshots require an id", details={"person": dict(value)})
    return Person.from_document(value)


def _as_location(value: LocationRef | Mapping[str, Any]) -> LocationRef:
    if isinstance(value, LocationRef):
        return value
    if not value.get("id"):
        raise ValidationError("Inline location snapshots require an id", details={"location": dict(value)})
    return LocationRef.from_document(value)


def _unique(ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(str(person_id) for person_id in ids if person_id))


class TicketAssignmentResolver:
    """Resolve people and location references in a ticket patch.

    Patches reference entities either by id (``assignee_ids``/``assignee_id``,
    ``reporter_id``, ``location_id`` + ``location_type_id``) or inline
    (``assignees``/``assignee``, ``reporter``, ``location``). Ids are looked up
    and replaced by fresh snapshots; every lookup happens before anything is
    written, and any failure rejects the whole patch.
    """

    def __init__(self, people: PersonDirectory, locations: LocationDirectory) -> None:
        self._people = people
        self._locations = locations

    async def resolve(self, patch: Mapping[str, Any]) -> dict[str, Any]:
        """Return ticket field changes (``assignees``, ``reporter``, ``location``)."""

        changes: dict[str, Any] = {}
        assignees = await self.resolve_assignees(patch)
        if assignees is not None:
            changes["assignees"] = assignees.value
        reporter = await self.resolve_reporter(patch)
        if reporter is not None:
            changes["reporter"] = reporter.value
        location = await self.resolve_location(patch)
        if location is not None:
            changes["location"] = location.value
        return changes

    async def resolve_assignees(self, patch: Mapping[str, Any]) -> Change[list[Reference[Person]]] | None:
        by_id = _supplied(patch, "assignee_ids", "assignee_id")
        inline = _supplied(patch, "assignees", "assignee")
        if _has_value(patch, "assignee_ids", "assignee_id") and _has_value(patch, "assignees", "assignee"):
            raise ConflictingAssigneeInputError(
                "Provide either assignee ids or inline assignees, not both",
                details={"fields": ["assigneeIds", "assignees"]},
            )

        if by_id and _has_value(patch, "assignee_ids", "assignee_id"):
            ids = list(patch.get("assignee_ids") or []) if "assignee_ids" in patch else [patch["assignee_id"]]
            return Change(await self._lookup_people(_unique(ids)))
        if inline and _has_value(patch, "assignees", "assignee"):
            values = list(patch.get("assignees") or []) if "assignees" in patch else [patch["assignee"]]
            refs: dict[str, Reference[Person]] = {}
            for value in values:
                person = _as_person(value)
                refs.setdefault(person.id, Reference.of(person))
            return Change(list(refs.values()))
        if by_id or inline:
            return Change([])
        return None

    async def resolve_reporter(self, patch: Mapping[str, Any]) -> Change[Reference[Person] | None] | None:
        if patch.get("reporter_id") and patch.get("reporter"):
            inline_id = _as_person(patch["reporter"]).id
            if inline_id != patch["reporter_id"]:
                raise ValidationError(
                    "reporter_id does not match the inline reporter",
                    details={"reporterId": patch["reporter_id"], "reporter": inline_id},
                )
        if patch.get("reporter_id"):
            people = await self._lookup_people([str(patch["reporter_id"])])
            return Change(people[0])
        if patch.get("reporter"):
            return Change(Reference.of(_as_person(patch["reporter"])))
        if _supplied(patch, "reporter_id", "reporter"):
            return Change(None)
        return None

    async def resolve_location(self, patch: Mapping[str, Any]) -> Change[Reference[LocationRef] | None] | None:
        location_id = patch.get("location_id")
        if location_id:
            location_type_id = patch.get("location_type_id")
            location = await self._locations.find_by_id(location_type_id, str(location_id))
            if location is None:
                raise InvalidLocationError(
                    f"Location {location_id} not found",
                    details={"locationId": location_id, "locationTypeId": location_type_id},
                )
            return Change(Reference.of(location))
        if patch.get("location"):
            return Change(Reference.of(_as_location(patch["location"])))
        if _supplied(patch, "location_id", "location"):
            return Change(None)
        return None

    async def _lookup_people(self, person_ids: list[str]) -> list[Reference[Person]]:
        found = await asyncio.gather(*(self._people.find_by_id(person_id) for person_id in person_ids))
        missing = [person_id for person_id, person in zip(person_ids, found) if person is None]
        if missing:
            raise InvalidAssigneeError(missing)
        return [Reference.of(person) for person in found if person is not None]
