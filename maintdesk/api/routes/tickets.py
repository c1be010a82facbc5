from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field

from maintdesk.api.errors import ok
from maintdesk.attachments.models import AttachmentRef
from maintdesk.dependencies.services import TicketServiceDep
from maintdesk.tickets.models import (
    NoteType,
    SubcategoryName,
    Ticket,
    TicketCategory,
    TicketPriority,
    TicketSource,
    TicketStatus,
)

router = APIRouter(prefix="/tickets", tags=["tickets"])


class SubcategoryPayload(BaseModel):
    name: SubcategoryName
    display_name: str | None = Field(default=None, alias="displayName")

    model_config = ConfigDict(populate_by_name=True)


class TicketReferenceFields(BaseModel):
    """People and location, by id or as inline snapshots."""

    model_config = ConfigDict(extra="forbid")

    reporter_id: str | None = None
    reporter: dict[str, Any] | None = None
    assignee_id: str | None = None
    assignee_ids: list[str] | None = None
    assignees: list[dict[str, Any]] | None = None
    location_id: str | None = None
    location_type_id: str | None = None
    location: dict[str, Any] | None = None


class TicketCreateRequest(TicketReferenceFields):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    priority: TicketPriority | None = None
    category: TicketCategory | None = None
    subcategory: SubcategoryPayload | None = None
    phone_number: str | None = None


class TicketIntakeRequest(BaseModel):
    """A ticket arriving from the phone system, an email or the web form."""

    source: TicketSource
    description: str = Field(..., min_length=1)
    from_text: str | None = None
    email: str | None = None
    sender_name: str | None = None
    title: str | None = None
    audio: dict[str, Any] | None = None
    attachments: list[dict[str, Any]] = Field(default_factory=list)


class TicketUpdateRequest(TicketReferenceFields):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    priority: TicketPriority | None = None
    category: TicketCategory | None = None
    subcategory: SubcategoryPayload | None = None
    phone_number: str | None = None
    transcription: str | None = None
    attachments: list[dict[str, Any]] | None = None
    status: TicketStatus | None = None
    resolved_at: datetime | None = None
    closed_at: datetime | None = None


class TicketStatusChangeRequest(BaseModel):
    status: TicketStatus
    resolved_at: datetime | None = None
    closed_at: datetime | None = None


class TicketCancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=2000)
    actor_id: str | None = None
    actor_name: str | None = None


class TicketAssignRequest(BaseModel):
    assignee_ids: list[str]


class TicketNoteRequest(BaseModel):
    content: str = Field(..., min_length=1)
    type: NoteType = NoteType.GENERAL
    created_by: str | None = None
    created_by_name: str | None = None


class TicketTemplateRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    priority: TicketPriority | None = None


def _dump(ticket: Ticket) -> dict[str, Any]:
    return ticket.to_document()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_ticket(payload: TicketCreateRequest, service: TicketServiceDep) -> dict[str, Any]:
    ticket = await service.create(payload.model_dump(exclude_unset=True, by_alias=True))
    return ok(_dump(ticket))


@router.post("/intake", status_code=status.HTTP_201_CREATED)
async def intake_ticket(payload: TicketIntakeRequest, service: TicketServiceDep) -> dict[str, Any]:
    ticket = await service.create_from_source(
        payload.source,
        payload.description,
        audio=AttachmentRef.from_document(payload.audio) if payload.audio else None,
        from_text=payload.from_text,
        email=payload.email,
        sender_name=payload.sender_name,
        title=payload.title,
        attachments=[AttachmentRef.from_document(item) for item in payload.attachments],
    )
    return ok(_dump(ticket))


@router.post("/templates/{template_type}", status_code=status.HTTP_201_CREATED)
async def create_from_template(
    template_type: Literal["maintenance", "inspection", "repair"],
    payload: TicketTemplateRequest,
    service: TicketServiceDep,
) -> dict[str, Any]:
    ticket = await service.create_from_template(template_type, **payload.model_dump(exclude_none=True))
    return ok(_dump(ticket))


@router.get("")
async def list_tickets(
    service: TicketServiceDep,
    status_filter: TicketStatus | None = Query(default=None, alias="status"),
    priority: TicketPriority | None = None,
    category: TicketCategory | None = None,
    source: TicketSource | None = None,
    page_size: int = Query(default=20, ge=1, le=100, alias="pageSize"),
    continuation_token: str | None = Query(default=None, alias="continuationToken"),
) -> dict[str, Any]:
    tickets, token = await service.list(
        status=status_filter,
        priority=priority,
        category=category,
        source=source,
        page_size=page_size,
        continuation_token=continuation_token,
    )
    return ok([_dump(ticket) for ticket in tickets], continuationToken=token)


@router.delete("")
async def delete_all_tickets(service: TicketServiceDep) -> dict[str, Any]:
    return ok({"deleted": await service.delete_all()})


@router.get("/{ticket_id}")
async def get_ticket(ticket_id: str, service: TicketServiceDep) -> dict[str, Any]:
    return ok(_dump(await service.get(ticket_id)))


@router.patch("/{ticket_id}")
async def update_ticket(ticket_id: str, payload: TicketUpdateRequest, service: TicketServiceDep) -> dict[str, Any]:
    ticket = await service.update(ticket_id, payload.model_dump(exclude_unset=True, by_alias=True))
    return ok(_dump(ticket))


@router.post("/{ticket_id}/status")
async def change_status(
    ticket_id: str,
    payload: TicketStatusChangeRequest,
    service: TicketServiceDep,
) -> dict[str, Any]:
    ticket = await service.change_status(
        ticket_id,
        payload.status,
        resolved_at=payload.resolved_at,
        closed_at=payload.closed_at,
    )
    return ok(_dump(ticket))


@router.post("/{ticket_id}/cancel")
async def cancel_ticket(ticket_id: str, payload: TicketCancelRequest, service: TicketServiceDep) -> dict[str, Any]:
    ticket = await service.cancel(
        ticket_id,
        payload.reason,
        actor_id=payload.actor_id,
        actor_name=payload.actor_name,
    )
    return ok(_dump(ticket))


@router.post("/{ticket_id}/assign")
async def assign_ticket(ticket_id: str, payload: TicketAssignRequest, service: TicketServiceDep) -> dict[str, Any]:
    return ok(_dump(await service.assign(ticket_id, payload.assignee_ids)))


@router.post("/{ticket_id}/clone", status_code=status.HTTP_201_CREATED)
async def clone_ticket(ticket_id: str, service: TicketServiceDep) -> dict[str, Any]:
    return ok(_dump(await service.clone(ticket_id)))


@router.get("/{ticket_id}/notes")
async def get_notes(ticket_id: str, service: TicketServiceDep) -> dict[str, Any]:
    notes = await service.get_notes(ticket_id)
    return ok([note.to_document() for note in notes])


@router.post("/{ticket_id}/notes", status_code=status.HTTP_201_CREATED)
async def add_note(ticket_id: str, payload: TicketNoteRequest, service: TicketServiceDep) -> dict[str, Any]:
    ticket = await service.add_note(
        ticket_id,
        payload.content,
        payload.type,
        created_by=payload.created_by,
        created_by_name=payload.created_by_name,
    )
    return ok(_dump(ticket))


@router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ticket(ticket_id: str, service: TicketServiceDep) -> Response:
    await service.delete(ticket_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
