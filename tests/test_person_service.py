from __future__ import annotations

import asyncio

import pytest

from maintdesk.people.models import Department, PersonRole
from maintdesk.people.repository import PersonRepository
from maintdesk.people.service import DuplicateEmailError, PersonNotFoundError, PersonService

from tests.fakes import FakeDocumentStore


class YieldingDocumentStore(FakeDocumentStore):
    async def query(self, *args, **kwargs):
        page = await super().query(*args, **kwargs)
        await asyncio.sleep(0)
        return page


@pytest.fixture
def service(person_repository) -> PersonService:
    return PersonService(person_repository)


@pytest.mark.asyncio
async def test_create_normalizes_fields(service):
    person = await service.create(
        {
            "firstName": "  Ana  Maria ",
            "lastName": "Diaz",
            "email": " Ana@Central.COM ",
            "phoneNumber": "(305) 555-0101",
            "role": "TECHNICIAN",
            "department": "MAINTENANCE",
        }
    )

    assert person.first_name == "Ana Maria"
    assert person.email == "ana@central.com"
    assert person.phone_number == "3055550101"
    assert person.role == PersonRole.TECHNICIAN
    assert person.department == Department.MAINTENANCE
    assert person.created_at is not None


@pytest.mark.asyncio
async def test_duplicate_email_is_a_conflict(service):
    await service.create({"firstName": "Ana", "lastName": "Diaz", "email": "ana@central.com"})

    with pytest.raises(DuplicateEmailError) as excinfo:
        await service.create({"firstName": "Other", "lastName": "Person", "email": "ANA@central.com"})

    assert excinfo.value.status_code == 409


@pytest.mark.asyncio
async def test_update_rejects_email_owned_by_someone_else(service):
    await service.create({"id": "p-1", "firstName": "Ana", "lastName": "Diaz", "email": "ana@central.com"})
    await service.create({"id": "p-2", "firstName": "Luis", "lastName": "Mora", "email": "luis@central.com"})

    with pytest.raises(DuplicateEmailError):
        await service.update("p-2", {"email": "ana@central.com"})
    updated = await service.update("p-1", {"email": "ana@central.com", "lastName": "Diaz Ruiz"})

    assert updated.last_name == "Diaz Ruiz"


@pytest.mark.asyncio
async def test_missing_person(service):
    with pytest.raises(PersonNotFoundError):
        await service.get("nope")
    with pytest.raises(PersonNotFoundError):
        await service.delete("nope")


@pytest.mark.asyncio
async def test_ensure_by_email_returns_existing(service):
    existing = await service.create({"firstName": "Ana", "lastName": "Diaz", "email": "ana@central.com"})

    found = await service.ensure_by_email({"firstName": "Someone", "lastName": "Else", "email": "ana@central.com"})
    created = await service.ensure_by_email({"firstName": "New", "lastName": "Hire", "email": "new@central.com"})

    assert found.id == existing.id
    assert found.first_name == "Ana"
    assert created.id != existing.id


@pytest.mark.asyncio
async def test_upsert_by_email_updates_in_place(service):
    existing = await service.create({"firstName": "Ana", "lastName": "Diaz", "email": "ana@central.com"})

    upserted = await service.upsert_by_email({"email": "ana@central.com", "phoneNumber": "305-555-0199"})

    assert upserted.id == existing.id
    assert upserted.phone_number == "3055550199"


@pytest.mark.asyncio
async def test_bulk_create_keeps_going_after_failures(service):
    await service.create({"firstName": "Ana", "lastName": "Diaz", "email": "ana@central.com"})

    result = await service.bulk_create(
        [
            {"firstName": "Luis", "lastName": "Mora", "email": "luis@central.com"},
            {"firstName": "Ana", "lastName": "Copy", "email": "ana@central.com"},
            {"firstName": "Rosa", "lastName": "Vega"},
        ]
    )

    assert [person.first_name for person in result.succeeded] == ["Luis", "Rosa"]
    assert len(result.failed) == 1
    assert result.failed[0].item["lastName"] == "Copy"
    assert isinstance(result.failed[0].error, DuplicateEmailError)


@pytest.mark.asyncio
async def test_list_filters_by_department(service):
    await service.create({"firstName": "Ana", "lastName": "Diaz", "department": "MAINTENANCE"})
    await service.create({"firstName": "Rosa", "lastName": "Vega", "department": "LOCATION"})

    people, token = await service.list(department=Department.LOCATION)

    assert [person.first_name for person in people] == ["Rosa"]
    assert token is None


@pytest.mark.asyncio
async def test_bulk_create_rejects_repeated_email_within_batch():
    service = PersonService(PersonRepository(YieldingDocumentStore()))

    result = await service.bulk_create(
        [
            {"firstName": "Ana", "lastName": "Diaz", "email": "dup@x.com"},
            {"firstName": "Ana", "lastName": "Twin", "email": " DUP@x.com "},
            {"firstName": "Luis", "lastName": "Mora", "email": "luis@x.com"},
        ]
    )

    assert [person.last_name for person in result.succeeded] == ["Diaz", "Mora"]
    assert len(result.failed) == 1
    assert result.failed[0].item["lastName"] == "Twin"
    assert isinstance(result.failed[0].error, DuplicateEmailError)
    people, _ = await service.list()
    assert sorted(person.email for person in people) == ["dup@x.com", "luis@x.com"]
