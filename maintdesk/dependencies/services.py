from __future__ import annotations

from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request

from maintdesk.attachments.service import AttachmentService
from maintdesk.categories.service import CategoryService
from maintdesk.people.service import PersonService
from maintdesk.tickets.service import TicketService


def _from_state(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{label} service is not configured")
    return service


async def get_ticket_service(request: Request) -> TicketService:
    return _from_state(request, "ticket_service", "Ticket")


async def get_attachment_service(request: Request) -> AttachmentService:
    return _from_state(request, "attachment_service", "Attachment")


async def get_person_service(request: Request) -> PersonService:
    return _from_state(request, "person_service", "Person")


async def get_category_service(request: Request) -> CategoryService:
    return _from_state(request, "category_service", "Category")


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
AttachmentServiceDep = Annotated[AttachmentService, Depends(get_attachment_service)]
PersonServiceDep = Annotated[PersonService, Depends(get_person_service)]
CategoryServiceDep = Annotated[CategoryService, Depends(get_category_service)]
