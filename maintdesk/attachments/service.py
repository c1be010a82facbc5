from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable

from maintdesk.core.errors import NotFoundError, ValidationError
from maintdesk.storage.files import FileStore
from maintdesk.tickets.models import Ticket
from maintdesk.tickets.repository import TicketRepository
from maintdesk.tickets.service import TicketNotFoundError

from .legacy import is_legacy
from .migrator import AttachmentMigrator
from .models import AttachmentRef, canonical_folder, dedupe_attachments

logger = logging.getLogger(__name__)

REPORT_RESULT_LIMIT = 50


class AttachmentNotFoundError(NotFoundError):
    code = "ATTACHMENT_NOT_FOUND"


@dataclass(slots=True)
class TicketMigrationResult:
    ticket_id: str
    migrated: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"ticketId": self.ticket_id, "migrated": self.migrated}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(slots=True)
class MigrationReport:
    """Summary of a sweep over every ticket with attachments."""

    total: int = 0
    migrated: int = 0
    errors: int = 0
    results: list[TicketMigrationResult] = field(default_factory=list)

    def record(self, result: TicketMigrationResult) -> None:
        self.total += 1
        if result.error is not None:
            self.errors += 1
        elif result.migrated:
            self.migrated += 1
        if len(self.results) < REPORT_RESULT_LIMIT:
            self.results.append(result)


class AttachmentService:
    """Upload, read and migrate the files attached to tickets."""

    def __init__(
        self,
        tickets: TicketRepository,
        files: FileStore,
        migrator: AttachmentMigrator,
        *,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._tickets = tickets
        self._files = files
        self._migrator = migrator
        self._id_factory = id_factory

    async def upload(self, ticket_id: str, filename: str, content_type: str, data: bytes) -> AttachmentRef:
        if not filename:
            raise ValidationError("Attachment filename is required", details={"field": "filename"})
        ticket = await self._get_ticket(ticket_id)

        attachment_id = self._id_factory()
        now = datetime.now(timezone.utc)
        upload_date = now.date().isoformat()
        folder_path = canonical_folder(upload_date)
        stored = await self._files.upload(
            data,
            filename,
            content_type,
            folder_path,
            metadata={"ticketId": ticket_id, "attachmentId": attachment_id, "originalFilename": filename},
        )
        attachment = AttachmentRef(
            id=attachment_id,
            filename=filename,
            content_type=content_type,
            size=stored.size,
            url=stored.url,
            uploaded_at=now.isoformat(),
            upload_date=upload_date,
            folder_path=folder_path,
        )
        await self._save(ticket_id, dedupe_attachments([*ticket.attachments, attachment]))
        logger.info("Uploaded %s to ticket %s", filename, ticket_id)
        return attachment

    async def delete(self, ticket_id: str, attachment_id: str) -> None:
        ticket = await self._get_ticket(ticket_id)
        attachment = _find(ticket.attachments, ticket_id, attachment_id)

        folder = attachment.folder_path
        if folder is None and attachment.upload_date:
            folder = canonical_folder(attachment.upload_date)
        if folder is not None:
            await self._files.delete(folder, attachment.filename)
        else:
            logger.warning(
                "Attachment %s of ticket %s has no stored folder; removing reference only", attachment_id, ticket_id
            )

        await self._save(ticket_id, [item for item in ticket.attachments if item.id != attachment_id])

    async def list(self, ticket_id: str, *, auto_migrate: bool = True) -> list[AttachmentRef]:
        """Return the ticket's attachments, migrating all of them first if any is legacy."""

        ticket = await self._get_ticket(ticket_id)
        if not ticket.attachments:
            return []
        if auto_migrate and any(is_legacy(attachment) for attachment in ticket.attachments):
            await self.migrate_ticket(ticket_id)
            ticket = await self._get_ticket(ticket_id)
        return list(ticket.attachments)

    async def get(self, ticket_id: str, attachment_id: str) -> AttachmentRef:
        return _find(await self.list(ticket_id), ticket_id, attachment_id)

    async def download(self, ticket_id: str, attachment_id: str) -> tuple[AttachmentRef, bytes]:
        attachment = await self.get(ticket_id, attachment_id)
        folder = attachment.folder_path or canonical_folder(attachment.upload_date or "")
        data = await self._files.download(folder, attachment.filename)
        if data is None:
            raise AttachmentNotFoundError(
                f"File for attachment {attachment_id} is missing from storage",
                details={"ticketId": ticket_id, "attachmentId": attachment_id},
            )
        return attachment, data

    async def migrate_ticket(self, ticket_id: str, target_date: str | date | None = None) -> bool:
        """Migrate every attachment of one ticket; returns whether anything changed."""

        ticket = await self._get_ticket(ticket_id)
        if not ticket.attachments:
            return False
        batch = await self._migrator.migrate_many(ticket_id, ticket.attachments, target_date)
        if not batch.changed:
            return False
        await self._save(ticket_id, batch.attachments)
        logger.info(
            "Ticket %s: migrated %d attachments, %d left in place",
            ticket_id,
            len(batch.migrated),
            len(batch.failed),
        )
        return True

    async def migrate_all(self, target_date: str | date | None = None) -> MigrationReport:
        report = MigrationReport()
        ticket_ids = [ticket.id async for ticket in self._tickets.iterate() if ticket.attachments]
        for ticket_id in ticket_ids:
            try:
                migrated = await self.migrate_ticket(ticket_id, target_date)
            except Exception as exc:
                logger.error("Error migrating ticket %s: %s", ticket_id, exc)
                report.record(TicketMigrationResult(ticket_id=ticket_id, migrated=False, error=str(exc)))
                continue
            report.record(TicketMigrationResult(ticket_id=ticket_id, migrated=migrated))
        logger.info(
            "Migration completed. Total tickets: %d, Migrated: %d, Errors: %d",
            report.total,
            report.migrated,
            report.errors,
        )
        return report

    async def _get_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._tickets.get(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket with ID {ticket_id} not found")
        return ticket

    async def _save(self, ticket_id: str, attachments: list[AttachmentRef]) -> None:
        if await self._tickets.patch(ticket_id, {"attachments": attachments}) is None:
            raise TicketNotFoundError(f"Ticket with ID {ticket_id} not found")


def _find(attachments: list[AttachmentRef], ticket_id: str, attachment_id: str) -> AttachmentRef:
    for attachment in attachments:
        if attachment.id == attachment_id:
            return attachment
    raise AttachmentNotFoundError(
        f"Attachment with ID {attachment_id} not found in ticket {ticket_id}",
        details={"ticketId": ticket_id, "attachmentId": attachment_id},
    )
