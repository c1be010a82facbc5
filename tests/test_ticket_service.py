from __future__ import annotations

import logging
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from maintdesk.core.errors import InvalidAssigneeError, ValidationError
from maintdesk.tickets import (
    NoteType,
    TicketAlreadyClosedError,
    TicketAssignmentResolver,
    TicketFactory,
    TicketNotFoundError,
    TicketRepository,
    TicketService,
    TicketSource,
    TicketStatus,
)
from maintdesk.tickets.state import InvalidTicketTransitionError

from tests.fakes import FakeDocumentStore, make_attachment


@pytest_asyncio.fixture
async def people(person_repository):
    await person_repository.create(
        {"id": "p-1", "firstName": "Lia", "lastName": "Soto", "email": "lia@central.com", "phoneNumber": "555"}
    )
    await person_repository.create({"id": "p-2", "firstName": "Ana", "lastName": "Diaz", "role": "technician"})
    return person_repository


@pytest.fixture
def ticket_store() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def service(ticket_store, people, locations, notifier) -> TicketService:
    return TicketService(
        TicketRepository(ticket_store),
        TicketFactory(people, locations),
        TicketAssignmentResolver(people, locations),
        notifier,
    )


@pytest.mark.asyncio
async def test_cancel_with_reason_appends_one_note_and_clears_resolution(service):
    ticket = await service.create({"title": "Leak", "description": "Kitchen"})
    await service.update(ticket.id, {"status": "OPEN", "resolved_at": "2024-05-01T00:00:00+00:00"})

    cancelled = await service.cancel(ticket.id, "duplicate", actor_id="u-1")

    assert cancelled.status == TicketStatus.CANCELLED
    assert cancelled.resolved_at is None
    assert cancelled.closed_at is None
    cancellation_notes = [note for note in cancelled.notes if note.type == NoteType.CANCELLATION]
    assert len(cancellation_notes) == 1
    assert cancellation_notes[0].content == "duplicate"
    assert cancellation_notes[0].created_by == "u-1"


@pytest.mark.asyncio
async def test_cancel_without_reason_adds_no_note(service):
    ticket = await service.create({"title": "Leak"})

    cancelled = await service.cancel(ticket.id)

    assert cancelled.status == TicketStatus.CANCELLED
    assert cancelled.notes == []


@pytest.mark.asyncio
async def test_cancel_closed_ticket_is_rejected(service):
    ticket = await service.create({"title": "Leak"})
    await service.change_status(ticket.id, TicketStatus.DONE)

    with pytest.raises(TicketAlreadyClosedError):
        await service.cancel(ticket.id, "late")


@pytest.mark.asyncio
async def test_done_stamps_resolution_and_reopen_clears_it(service):
    ticket = await service.create({"title": "Leak"})

    done = await service.change_status(ticket.id, TicketStatus.DONE)
    again = await service.change_status(ticket.id, TicketStatus.DONE)
    reopened = await service.change_status(ticket.id, TicketStatus.OPEN)

    assert done.resolved_at is not None
    assert done.resolved_at >= ticket.updated_at
    assert again.resolved_at == done.resolved_at
    assert reopened.status == TicketStatus.OPEN
    assert reopened.resolved_at is None
    assert reopened.closed_at is None


@pytest.mark.asyncio
async def test_invalid_transition_is_a_conflict(service, ticket_store):
    ticket = await service.create({"title": "Leak"})
    await service.change_status(ticket.id, TicketStatus.DONE)
    writes = len(ticket_store.patches)

    with pytest.raises(InvalidTicketTransitionError) as excinfo:
        await service.update(ticket.id, {"status": "CANCELLED"})

    assert excinfo.value.status_code == 409
    assert len(ticket_store.patches) == writes


@pytest.mark.asyncio
async def test_failed_assignment_leaves_ticket_untouched(service, ticket_store):
    ticket = await service.create({"title": "Leak"})

    with pytest.raises(InvalidAssigneeError):
        await service.update(ticket.id, {"title": "Renamed", "assignee_ids": ["p-2", "missing"]})

    assert ticket_store.patches == []
    assert (await service.get(ticket.id)).title == "Leak"


@pytest.mark.asyncio
async def test_assign_stores_ids_with_snapshots(service, ticket_store):
    ticket = await service.create({"title": "Leak"})

    updated = await service.assign(ticket.id, ["p-2", "p-1"])

    assert [ref.id for ref in updated.assignees] == ["p-2", "p-1"]
    assert updated.assignees[0].snapshot.full_name == "Ana Diaz"
    assert ticket_store.docs[ticket.id]["assigneeIds"] == ["p-2", "p-1"]


@pytest.mark.asyncio
async def test_update_dedupes_attachments(service, ticket_store):
    ticket = await service.create({"title": "Leak"})
    attachment = make_attachment()

    await service.update(ticket.id, {"attachments": [attachment, attachment.to_document()]})

    assert len(ticket_store.docs[ticket.id]["attachments"]) == 1


@pytest.mark.asyncio
async def test_notes_cannot_be_patched(service):
    ticket = await service.create({"title": "Leak"})

    with pytest.raises(ValidationError):
        await service.update(ticket.id, {"notes": []})


@pytest.mark.asyncio
async def test_add_note_appends(service):
    ticket = await service.create({"title": "Leak"})

    await service.add_note(ticket.id, "  checked valve  ", created_by="u-2")
    notes = await service.get_notes(ticket.id)

    assert [note.content for note in notes] == ["checked valve"]
    with pytest.raises(ValidationError):
        await service.add_note(ticket.id, "   ")


@pytest.mark.asyncio
async def test_get_missing_ticket(service):
    with pytest.raises(TicketNotFoundError):
        await service.get("nope")


@pytest.mark.asyncio
async def test_email_tickets_notify_on_create_and_close(service, notifier):
    ticket = await service.create_from_source(TicketSource.EMAIL, "Broken chair", email="lia@central.com")

    await service.change_status(ticket.id, TicketStatus.DONE)

    assert ticket.reporter.id == "p-1"
    assert [item.subject for item in notifier.sent] == ["New Ticket Created", "Ticket Done"]
    assert all(item.to == "lia@central.com" for item in notifier.sent)


@pytest.mark.asyncio
async def test_phone_tickets_fall_back_to_caller_email(service):
    ticket = await service.create_from_source(
        TicketSource.PHONE_SYSTEM, "Door jammed", from_text="Someone", email="lia@central.com"
    )

    assert ticket.source == TicketSource.PHONE_SYSTEM
    assert ticket.reporter.id == "p-1"
    assert ticket.location.id == "loc-001"


@pytest.mark.asyncio
async def test_web_tickets_do_not_notify(service, notifier):
    ticket = await service.create({"title": "Leak"})

    await service.change_status(ticket.id, TicketStatus.DONE)

    assert notifier.sent == []


@pytest.mark.asyncio
async def test_notification_failure_is_logged(ticket_store, people, locations, caplog):
    broken = AsyncMock()
    broken.send = AsyncMock(side_effect=RuntimeError("smtp down"))
    service = TicketService(
        TicketRepository(ticket_store),
        TicketFactory(people, locations),
        TicketAssignmentResolver(people, locations),
        broken,
    )

    with caplog.at_level(logging.WARNING):
        ticket = await service.create_from_source(TicketSource.EMAIL, "Noise", email="lia@central.com")

    assert ticket.id in ticket_store.docs
    assert "smtp down" in caplog.text


@pytest.mark.asyncio
async def test_delete_all_counts_removed_tickets(service, ticket_store):
    for index in range(5):
        await service.create({"title": f"Ticket {index}"})

    assert await service.delete_all() == 5
    assert ticket_store.docs == {}


@pytest.mark.asyncio
async def test_list_filters_by_status(service):
    first = await service.create({"title": "One"})
    await service.create({"title": "Two"})
    await service.change_status(first.id, TicketStatus.OPEN)

    tickets, token = await service.list(status=TicketStatus.OPEN)

    assert [ticket.id for ticket in tickets] == [first.id]
    assert token is None
