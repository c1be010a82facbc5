from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Sequence

from opentelemetry import trace

from maintdesk.attachments.models import AttachmentRef
from maintdesk.core.concurrency import gather_in_chunks
from maintdesk.core.errors import ConflictError, NotFoundError, ValidationError
from maintdesk.locations.models import LocationRef
from maintdesk.notifications import EmailNotification, NotificationDispatcher
from maintdesk.people.models import Person

from .assignment import TicketAssignmentResolver
from .factory import TicketFactory
from .models import (
    NoteType,
    Subcategory,
    Ticket,
    TicketCategory,
    TicketNote,
    TicketPriority,
    TicketSource,
    TicketStatus,
    ensure_optional_datetime,
    new_note,
)
from .repository import TicketRepository
from .state import TicketLifecycle

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class TicketNotFoundError(NotFoundError):
    """Raised when a ticket could not be located."""

    code = "TICKET_NOT_FOUND"


class TicketAlreadyClosedError(ConflictError):
    code = "TICKET_ALREADY_CLOSED"


_REFERENCE_FIELDS = frozenset(
    {
        "assignee_ids",
        "assignee_id",
        "assignees",
        "assignee",
        "reporter_id",
        "reporter",
        "location_id",
        "location_type_id",
        "location",
    }
)
_LIFECYCLE_FIELDS = frozenset({"status", "resolved_at", "closed_at"})
_PLAIN_FIELDS = frozenset({"title", "description", "phone_number", "transcription"})


def _coerce_field(name: str, value: Any) -> Any:
    if value is None:
        return None
    if name == "priority":
        return TicketPriority(value)
    if name == "category":
        return TicketCategory(value)
    if name == "subcategory":
        if isinstance(value, Subcategory):
            return value
        return Subcategory.make(value["name"], value.get("displayName") or value.get("display_name"))
    if name in ("attachments", "audio"):
        items = value if name == "attachments" else [value]
        refs = [item if isinstance(item, AttachmentRef) else AttachmentRef.from_document(item) for item in items]
        return refs if name == "attachments" else refs[0]
    return value


class TicketService:
    """High level orchestration for ticket lifecycle operations."""

    def __init__(
        self,
        repository: TicketRepository,
        factory: TicketFactory,
        resolver: TicketAssignmentResolver,
        notifier: NotificationDispatcher,
        *,
        lifecycle: TicketLifecycle | None = None,
        concurrency: int = 4,
    ) -> None:
        self._repository = repository
        self._factory = factory
        self._resolver = resolver
        self._notifier = notifier
        self._lifecycle = lifecycle or TicketLifecycle()
        self._concurrency = concurrency

    async def create_from_source(
        self,
        source: TicketSource,
        description: str,
        *,
        audio: AttachmentRef | None = None,
        from_text: str | None = None,
        email: str | None = None,
        sender_name: str | None = None,
        title: str | None = None,
        attachments: Sequence[AttachmentRef] = (),
    ) -> Ticket:
        if source == TicketSource.PHONE_SYSTEM:
            ticket = await self._factory.create_from_caller_text(
                audio, description, from_text, source, attachments, email=email
            )
        elif source == TicketSource.EMAIL:
            ticket = await self._factory.create_from_email(
                description,
                email or "",
                sender_name=sender_name,
                attachments=attachments,
            )
        elif source == TicketSource.WEB:
            ticket = self._factory.create_from_web(title or "Web Ticket", description, attachments=attachments)
        else:
            ticket = await self._factory.create_from_caller_text(
                audio,
                description,
                from_text or sender_name,
                source,
                attachments,
                email=email,
                title=title,
            )

        created = await self._repository.create(ticket)
        logger.info("Created ticket %s from %s", created.id, source.value)
        if source == TicketSource.EMAIL:
            await self._notify(
                email,
                EmailNotification(
                    to=email or "",
                    subject="New Ticket Created",
                    body=f"A new ticket has been created: {created.id}",
                ),
            )
        return created

    async def create(self, data: Mapping[str, Any]) -> Ticket:
        """Create a web ticket; people and location may be given by id or inline."""

        title = data.get("title")
        if not title:
            raise ValidationError("Ticket title is required", details={"field": "title"})
        resolved = await self._resolver.resolve(data)
        reporter = resolved.get("reporter")
        location = resolved.get("location")
        ticket = self._factory.create_from_web(
            str(title),
            str(data.get("description") or ""),
            reporter=reporter.snapshot if reporter else None,
            location=location.snapshot if location else None,
            priority=_coerce_field("priority", data.get("priority")),
            category=_coerce_field("category", data.get("category")),
            subcategory=_coerce_field("subcategory", data.get("subcategory")),
            attachments=_coerce_field("attachments", data.get("attachments")) or (),
        )
        if "assignees" in resolved:
            ticket.assignees = resolved["assignees"]
        if data.get("phone_number"):
            ticket.phone_number = data["phone_number"]
        return await self._repository.create(ticket)

    async def create_emergency(self, title: str, description: str, location: LocationRef, **kwargs: Any) -> Ticket:
        return await self._repository.create(self._factory.create_emergency(title, description, location, **kwargs))

    async def create_preventive(
        self, title: str, description: str, assignees: Sequence[Person], **kwargs: Any
    ) -> Ticket:
        return await self._repository.create(self._factory.create_preventive(title, description, assignees, **kwargs))

    async def create_corrective(
        self, title: str, description: str, reporter: Person, location: LocationRef, **kwargs: Any
    ) -> Ticket:
        return await self._repository.create(
            self._factory.create_corrective(title, description, reporter, location, **kwargs)
        )

    async def create_from_template(self, template_type: str, **overrides: Any) -> Ticket:
        return await self._repository.create(self._factory.create_from_template(template_type, **overrides))

    async def clone(self, ticket_id: str, **overrides: Any) -> Ticket:
        original = await self.get(ticket_id)
        return await self._repository.create(self._factory.clone(original, **overrides))

    async def get(self, ticket_id: str) -> Ticket:
        ticket = await self._repository.get(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket with ID {ticket_id} not found")
        return ticket

    async def list(
        self,
        *,
        status: TicketStatus | None = None,
        priority: TicketPriority | None = None,
        category: TicketCategory | None = None,
        source: TicketSource | None = None,
        sort: tuple[str, str] | None = None,
        page_size: int = 20,
        continuation_token: str | None = None,
    ) -> tuple[list[Ticket], str | None]:
        filters = {"status": status, "priority": priority, "category": category, "source": source}
        query = {key: value.value for key, value in filters.items() if value is not None}
        return await self._repository.list(
            query,
            sort=sort,
            page_size=page_size,
            continuation_token=continuation_token,
        )

    async def update(self, ticket_id: str, patch: Mapping[str, Any]) -> Ticket:
        """Apply ``patch`` (Ticket attribute names) as one write.

        Status changes go through the lifecycle, reference fields through the
        assignment resolver; any failure leaves the ticket untouched.
        """

        if "notes" in patch:
            raise ValidationError("Notes cannot be patched; add them one at a time", details={"field": "notes"})
        unknown = set(patch) - _REFERENCE_FIELDS - _LIFECYCLE_FIELDS - _PLAIN_FIELDS - {
            "priority",
            "category",
            "subcategory",
            "attachments",
            "audio",
        }
        if unknown:
            raise ValidationError("Unknown ticket fields", details={"fields": sorted(unknown)})

        current = await self.get(ticket_id)
        changes: dict[str, Any] = await self._resolver.resolve(patch)
        for name, value in patch.items():
            if name in _REFERENCE_FIELDS or name in _LIFECYCLE_FIELDS:
                continue
            changes[name] = _coerce_field(name, value)

        timestamps = {
            name: ensure_optional_datetime(patch[name]) for name in ("resolved_at", "closed_at") if name in patch
        }
        target: TicketStatus | None = None
        if patch.get("status") is not None:
            target = TicketStatus(patch["status"])
            self._lifecycle.assert_transition(current.status, target)
            previous_resolution = current.resolved_at if current.status == TicketStatus.DONE else None
            changes.update(self._lifecycle.derive_fields(target, timestamps, resolved_at=previous_resolution))
        else:
            changes.update(timestamps)

        if not changes:
            return current

        with tracer.start_as_current_span("tickets.update") as span:
            span.set_attribute("ticket.id", ticket_id)
            if target is not None:
                span.set_attribute("ticket.status.from", current.status.value)
                span.set_attribute("ticket.status.to", target.value)
            updated = await self._repository.patch(ticket_id, changes)
        if updated is None:
            raise TicketNotFoundError(f"Ticket with ID {ticket_id} not found")

        if target is not None and target != current.status:
            logger.info("Ticket %s moved %s -> %s", ticket_id, current.status.value, target.value)
            await self._notify_terminal(updated)
        return updated

    async def change_status(
        self,
        ticket_id: str,
        status: TicketStatus,
        *,
        resolved_at: datetime | None = None,
        closed_at: datetime | None = None,
    ) -> Ticket:
        patch: dict[str, Any] = {"status": status}
        if resolved_at is not None:
            patch["resolved_at"] = resolved_at
        if closed_at is not None:
            patch["closed_at"] = closed_at
        return await self.update(ticket_id, patch)

    async def cancel(
        self,
        ticket_id: str,
        reason: str | None = None,
        *,
        actor_id: str | None = None,
        actor_name: str | None = None,
    ) -> Ticket:
        current = await self.get(ticket_id)
        if self._lifecycle.is_terminal(current.status):
            raise TicketAlreadyClosedError(
                f"Ticket {ticket_id} is already {current.status.value}",
                details={"status": current.status.value},
            )
        self._lifecycle.assert_transition(current.status, TicketStatus.CANCELLED)

        changes = self._lifecycle.derive_fields(TicketStatus.CANCELLED, {})
        note = self._lifecycle.cancellation_note(
            reason,
            actor_id=actor_id,
            actor_name=actor_name,
            now=changes["updated_at"],
        )
        if note is not None:
            changes["notes"] = [*current.notes, note]

        updated = await self._repository.patch(ticket_id, changes)
        if updated is None:
            raise TicketNotFoundError(f"Ticket with ID {ticket_id} not found")
        logger.info("Ticket %s cancelled", ticket_id)
        await self._notify_terminal(updated)
        return updated

    async def add_note(
        self,
        ticket_id: str,
        content: str,
        note_type: NoteType = NoteType.GENERAL,
        *,
        created_by: str | None = None,
        created_by_name: str | None = None,
    ) -> Ticket:
        if not content or not content.strip():
            raise ValidationError("Note content is required", details={"field": "content"})
        current = await self.get(ticket_id)
        note = new_note(content.strip(), note_type, created_by=created_by, created_by_name=created_by_name)
        updated = await self._repository.patch(ticket_id, {"notes": [*current.notes, note]})
        if updated is None:
            raise TicketNotFoundError(f"Ticket with ID {ticket_id} not found")
        return updated

    async def get_notes(self, ticket_id: str) -> list[TicketNote]:
        return list((await self.get(ticket_id)).notes)

    async def assign(self, ticket_id: str, assignee_ids: Sequence[str]) -> Ticket:
        return await self.update(ticket_id, {"assignee_ids": list(assignee_ids)})

    async def delete(self, ticket_id: str) -> None:
        if not await self._repository.delete(ticket_id):
            raise TicketNotFoundError(f"Ticket with ID {ticket_id} not found")

    async def delete_all(self) -> int:
        ticket_ids = [ticket.id async for ticket in self._repository.iterate()]
        deleted = await gather_in_chunks(ticket_ids, self._repository.delete, limit=self._concurrency)
        count = sum(1 for ok in deleted if ok)
        logger.warning("Deleted %d tickets", count)
        return count

    async def _notify_terminal(self, ticket: Ticket) -> None:
        if ticket.source != TicketSource.EMAIL or not self._lifecycle.is_terminal(ticket.status):
            return
        recipient = ticket.reporter.snapshot.email if ticket.reporter else None
        await self._notify(
            recipient,
            EmailNotification(
                to=recipient or "",
                subject=f"Ticket {ticket.status.value.title()}",
                body=f"Your ticket {ticket.id} ({ticket.title}) is now {ticket.status.value}.",
            ),
        )

    async def _notify(self, recipient: str | None, notification: EmailNotification) -> None:
        if not recipient:
            logger.warning("No recipient for notification %r", notification.subject)
            return
        try:
            await self._notifier.send(notification)
        except Exception as exc:
            logger.warning("Notification %r to %s failed: %s", notification.subject, recipient, exc)
