from __future__ import annotations

import logging
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from maintdesk.core.errors import ValidationError
from maintdesk.locations.models import LocationRef
from maintdesk.people.models import Department
from maintdesk.tickets.factory import TicketFactory
from maintdesk.tickets.models import (
    NoteType,
    TicketCategory,
    TicketPriority,
    TicketSource,
    TicketStatus,
)

from tests.fakes import make_attachment, make_person

NOW = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)


def _factory(people, locations) -> TicketFactory:
    ids = iter(f"t-{index}" for index in range(100))
    return TicketFactory(people, locations, id_factory=lambda: next(ids), clock=lambda: NOW)


@pytest.mark.asyncio
async def test_brigade_caller_becomes_reporter(person_repository, locations):
    await person_repository.create(
        {
            "id": "tech-1",
            "firstName": "Salvador",
            "lastName": "Tapia",
            "phoneNumber": "(786) 651-6455",
            "department": "MAINTENANCE",
        }
    )

    ticket = await _factory(person_repository, locations).create_from_caller_text(
        None, "AC not cooling", "TAPIA SALVADON, (786) 651-6455"
    )

    assert ticket.reporter is not None
    assert ticket.reporter.id == "tech-1"
    assert ticket.title == "Salvador Tapia"
    assert ticket.phone_number == "7866516455"
    assert ticket.location is None
    assert ticket.source == TicketSource.PHONE_SYSTEM


@pytest.mark.asyncio
async def test_new_ticket_defaults(person_repository, locations):
    audio = make_attachment(id="audio-1", filename="voice.m4a", content_type="audio/m4a")

    ticket = await _factory(person_repository, locations).create_from_caller_text(
        audio, "Door stuck", "5638 Esteban Ulloa 5638"
    )

    assert ticket.id == "t-0"
    assert ticket.title == "Esteban Ulloa"
    assert ticket.phone_number == "5638"
    assert ticket.status == TicketStatus.NEW
    assert ticket.priority == TicketPriority.MEDIUM
    assert ticket.category is None
    assert ticket.notes == []
    assert ticket.attachments == []
    assert ticket.audio == audio
    assert ticket.resolved_at is None and ticket.closed_at is None
    assert ticket.created_at == ticket.updated_at == NOW


@pytest.mark.asyncio
async def test_location_staff_brings_their_location(person_repository, locations):
    await person_repository.create(
        {
            "id": "staff-1",
            "firstName": "Rosa",
            "lastName": "Vega",
            "phoneNumber": "3055559999",
            "department": "LOCATION",
            "locationId": "loc-002",
        }
    )

    ticket = await _factory(person_repository, locations).create_from_caller_text(None, "Leak", "3055559999 Rosa")

    assert ticket.reporter.id == "staff-1"
    assert ticket.location.id == "loc-002"


@pytest.mark.asyncio
async def test_unknown_caller_resolves_location_by_phone(person_repository, locations):
    ticket = await _factory(person_repository, locations).create_from_caller_text(
        None, "Lights out", "FRONT DESK (305) 555-0100"
    )

    assert ticket.reporter is None
    assert ticket.location.id == "loc-001"
    assert ticket.title == "Front Desk"
    assert ticket.phone_number == "3055550100"


@pytest.mark.asyncio
async def test_email_ticket_uses_domain_location(person_repository, locations):
    ticket = await _factory(person_repository, locations).create_from_email("Broken chair", "manager@norte.com")

    assert ticket.source == TicketSource.EMAIL
    assert ticket.title == "manager@norte.com"
    assert ticket.reporter is None
    assert ticket.location.id == "loc-002"


@pytest.mark.asyncio
async def test_email_ticket_finds_sender(person_repository, locations):
    await person_repository.create(
        {"id": "p-9", "firstName": "Lia", "lastName": "Soto", "email": "Lia@Central.com", "phoneNumber": "555"}
    )

    ticket = await _factory(person_repository, locations).create_from_email("Noise", "lia@central.com")

    assert ticket.reporter.id == "p-9"
    assert ticket.title == "Lia Soto"
    assert ticket.phone_number == "555"
    assert ticket.location.id == "loc-001"


@pytest.mark.asyncio
async def test_email_ticket_requires_sender(person_repository, locations):
    with pytest.raises(ValidationError):
        await _factory(person_repository, locations).create_from_email("Noise", "")


@pytest.mark.asyncio
async def test_explicit_reporter_and_location_win(person_repository, locations):
    await person_repository.create(
        {"id": "tech-1", "firstName": "A", "lastName": "B", "phoneNumber": "5638", "department": "MAINTENANCE"}
    )
    explicit = make_person("p-explicit", first_name="Explicit", last_name="Person", phone="111")
    location = await locations.find_by_id(None, "loc-002")

    ticket = await _factory(person_repository, locations).create_from_caller_text(
        None, "x", "5638 Someone 5638", reporter=explicit, location=location
    )

    assert ticket.reporter.id == "p-explicit"
    assert ticket.location.id == "loc-002"
    assert ticket.title == "Explicit Person"
    assert ticket.phone_number == "111"


@pytest.mark.asyncio
async def test_lookup_failures_do_not_block_creation(locations, caplog):
    people = AsyncMock()
    people.find_by_phone = AsyncMock(side_effect=ConnectionError("directory down"))

    with caplog.at_level(logging.WARNING):
        ticket = await _factory(people, locations).create_from_caller_text(
            None, "Lights out", "FRONT DESK (305) 555-0100"
        )

    assert ticket.reporter is None
    assert ticket.location.id == "loc-001"
    assert "lookup failed" in caplog.text


def test_emergency_and_corrective_builders(person_repository, locations):
    factory = _factory(person_repository, locations)
    location = LocationRef(id="loc-001", name="Central")
    reporter = make_person(department=Department.MAINTENANCE)

    emergency = factory.create_emergency("Flood", "Water everywhere", location)
    corrective = factory.create_corrective("Fix lock", "Back door", reporter, location)

    assert emergency.priority == TicketPriority.HIGH
    assert emergency.category == TicketCategory.EMERGENCY
    assert emergency.location.id == "loc-001"
    assert corrective.category == TicketCategory.CORRECTIVE
    assert corrective.reporter.id == reporter.id


def test_preventive_builder_dedupes_assignees(person_repository, locations):
    factory = _factory(person_repository, locations)
    first = make_person("p-1")
    second = make_person("p-2")

    ticket = factory.create_preventive("Filters", "Monthly", [first, second, first])

    assert ticket.category == TicketCategory.PREVENTIVE
    assert [ref.id for ref in ticket.assignees] == ["p-1", "p-2"]


def test_template_builder_and_unknown_template(person_repository, locations):
    factory = _factory(person_repository, locations)

    ticket = factory.create_from_template("repair", description="Compressor")

    assert ticket.title == "Repair Task"
    assert ticket.description == "Compressor"
    assert ticket.priority == TicketPriority.HIGH
    assert ticket.category == TicketCategory.CORRECTIVE
    with pytest.raises(ValidationError):
        factory.template("cleaning")


def test_create_with_note(person_repository, locations):
    ticket = _factory(person_repository, locations).create_with_note(
        "Audit", "Quarterly", "Opened by audit", NoteType.GENERAL, created_by="u-1"
    )

    assert len(ticket.notes) == 1
    assert ticket.notes[0].created_by == "u-1"


def test_clone_resets_lifecycle(person_repository, locations):
    factory = _factory(person_repository, locations)
    original = factory.create_with_note("Audit", "Quarterly", "note")
    original.status = TicketStatus.DONE
    original.resolved_at = NOW

    clone = factory.clone(original, title="Audit again")

    assert clone.id != original.id
    assert clone.status == TicketStatus.NEW
    assert clone.resolved_at is None
    assert clone.notes == []
    assert clone.title == "Audit again"
    assert original.notes
