from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, Header, Query, Request, Response, status
from pydantic import BaseModel

from maintdesk.api.errors import ok
from maintdesk.dependencies.services import AttachmentServiceDep
from maintdesk.storage.files import content_disposition

router = APIRouter(tags=["attachments"])


class MigrateRequest(BaseModel):
    target_date: date | None = None


@router.get("/tickets/{ticket_id}/attachments")
async def list_attachments(
    ticket_id: str,
    service: AttachmentServiceDep,
    auto_migrate: bool = Query(default=True, alias="autoMigrate"),
) -> dict[str, Any]:
    attachments = await service.list(ticket_id, auto_migrate=auto_migrate)
    return ok([attachment.to_document() for attachment in attachments])


@router.post("/tickets/{ticket_id}/attachments", status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    ticket_id: str,
    request: Request,
    service: AttachmentServiceDep,
    filename: str = Query(..., min_length=1),
    content_type: str = Header(default="application/octet-stream"),
) -> dict[str, Any]:
    data = await request.body()
    attachment = await service.upload(ticket_id, filename, content_type, data)
    return ok(attachment.to_document())


@router.get("/tickets/{ticket_id}/attachments/{attachment_id}")
async def get_attachment(ticket_id: str, attachment_id: str, service: AttachmentServiceDep) -> dict[str, Any]:
    return ok((await service.get(ticket_id, attachment_id)).to_document())


@router.get("/tickets/{ticket_id}/attachments/{attachment_id}/download")
async def download_attachment(ticket_id: str, attachment_id: str, service: AttachmentServiceDep) -> Response:
    attachment, data = await service.download(ticket_id, attachment_id)
    return Response(
        content=data,
        media_type=attachment.content_type or "application/octet-stream",
        headers={"Content-Disposition": content_disposition(attachment.filename)},
    )


@router.delete("/tickets/{ticket_id}/attachments/{attachment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_attachment(ticket_id: str, attachment_id: str, service: AttachmentServiceDep) -> Response:
    await service.delete(ticket_id, attachment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/tickets/{ticket_id}/attachments/migrate")
async def migrate_ticket_attachments(
    ticket_id: str,
    payload: MigrateRequest,
    service: AttachmentServiceDep,
) -> dict[str, Any]:
    migrated = await service.migrate_ticket(ticket_id, payload.target_date)
    return ok({"ticketId": ticket_id, "migrated": migrated})


@router.post("/attachments/migrate-all")
async def migrate_all_attachments(payload: MigrateRequest, service: AttachmentServiceDep) -> dict[str, Any]:
    report = await service.migrate_all(payload.target_date)
    return ok(
        {
            "summary": {
                "totalTickets": report.total,
                "migratedTickets": report.migrated,
                "errorsCount": report.errors,
            },
            "results": [result.to_dict() for result in report.results],
        }
    )
