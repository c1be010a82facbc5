from __future__ import annotations

import dataclasses
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Literal, Mapping, Sequence, TypeVar

from maintdesk.attachments.models import AttachmentRef, dedupe_attachments
from maintdesk.core.errors import ValidationError
from maintdesk.locations.directory import LocationDirectory, email_domain
from maintdesk.locations.models import LocationRef
from maintdesk.people.directory import PersonDirectory
from maintdesk.people.models import Department, Person

from .caller import UNKNOWN_CALLER, parse_caller
from .models import (
    NoteType,
    Reference,
    Subcategory,
    Ticket,
    TicketCategory,
    TicketPriority,
    TicketSource,
    new_note,
    utc_now,
)
from .state import TicketLifecycle

logger = logging.getLogger(__name__)

T = TypeVar("T")

TemplateType = Literal["maintenance", "inspection", "repair"]

TICKET_TEMPLATES: Mapping[str, Mapping[str, Any]] = {
    "maintenance": {
        "category": TicketCategory.PREVENTIVE,
        "priority": TicketPriority.MEDIUM,
        "title": "Maintenance Task",
        "description": "Scheduled maintenance task",
    },
    "inspection": {
        "category": TicketCategory.PREVENTIVE,
        "priority": TicketPriority.LOW,
        "title": "Inspection",
        "description": "Routine inspection task",
    },
    "repair": {
        "category": TicketCategory.CORRECTIVE,
        "priority": TicketPriority.HIGH,
        "title": "Repair Task",
        "description": "Equipment repair required",
    },
}


@dataclass(slots=True)
class AutoAssignment:
    """Reporter and location found by looking up the caller."""

    reporter: Person | None = None
    location: LocationRef | None = None


class TicketFactory:
    """Build new tickets, enriching them from the people and location directories."""

    def __init__(
        self,
        people: PersonDirectory,
        locations: LocationDirectory,
        *,
        lifecycle: TicketLifecycle | None = None,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._people = people
        self._locations = locations
        self._lifecycle = lifecycle or TicketLifecycle()
        self._id_factory = id_factory
        self._clock = clock

    async def create_from_caller_text(
        self,
        audio: AttachmentRef | None,
        description: str,
        from_text: str | None,
        source: TicketSource = TicketSource.PHONE_SYSTEM,
        attachments: Sequence[AttachmentRef] = (),
        *,
        email: str | None = None,
        reporter: Person | None = None,
        location: LocationRef | None = None,
        title: str | None = None,
        priority: TicketPriority | None = None,
        category: TicketCategory | None = None,
        subcategory: Subcategory | None = None,
    ) -> Ticket:
        """Create a ticket from a caller-id string such as ``"Name, (786) 651-6455"``.

        The parsed phone (or, failing that, ``email``) is looked up to find the
        reporter and location. Explicit ``reporter``/``location`` win over the
        lookup. A resolved reporter replaces the parsed name and phone.
        """

        caller = parse_caller(from_text)
        found = await self.auto_assign(caller.phone, email)
        final_reporter = reporter or found.reporter
        final_location = location or found.location

        parsed_name = caller.name
        if parsed_name == UNKNOWN_CALLER and email:
            parsed_name = email
        ticket_title = title or parsed_name
        phone_number = caller.phone
        if final_reporter is not None:
            if not title:
                ticket_title = final_reporter.full_name or ticket_title
            phone_number = final_reporter.phone_number or phone_number

        return self._build(
            title=ticket_title or UNKNOWN_CALLER,
            description=description,
            source=source,
            audio=audio,
            attachments=attachments,
            phone_number=phone_number,
            reporter=final_reporter,
            location=final_location,
            priority=priority,
            category=category,
            subcategory=subcategory,
        )

    async def create_from_email(
        self,
        description: str,
        sender_email: str,
        *,
        sender_name: str | None = None,
        attachments: Sequence[AttachmentRef] = (),
    ) -> Ticket:
        if not sender_email:
            raise ValidationError("Email tickets require the sender address", details={"field": "email"})
        return await self.create_from_caller_text(
            None,
            description,
            sender_name,
            TicketSource.EMAIL,
            attachments,
            email=sender_email,
        )

    def create_from_web(
        self,
        title: str,
        description: str,
        *,
        reporter: Person | None = None,
        location: LocationRef | None = None,
        priority: TicketPriority | None = None,
        category: TicketCategory | None = None,
        subcategory: Subcategory | None = None,
        attachments: Sequence[AttachmentRef] = (),
    ) -> Ticket:
        return self._build(
            title=title,
            description=description,
            source=TicketSource.WEB,
            attachments=attachments,
            phone_number=reporter.phone_number if reporter else None,
            reporter=reporter,
            location=location,
            priority=priority,
            category=category,
            subcategory=subcategory,
        )

    def create_emergency(
        self,
        title: str,
        description: str,
        location: LocationRef,
        *,
        reporter: Person | None = None,
        attachments: Sequence[AttachmentRef] = (),
    ) -> Ticket:
        return self._build(
            title=title,
            description=description,
            source=TicketSource.OTHER,
            attachments=attachments,
            reporter=reporter,
            location=location,
            priority=TicketPriority.HIGH,
            category=TicketCategory.EMERGENCY,
        )

    def create_preventive(
        self,
        title: str,
        description: str,
        assignees: Sequence[Person],
        *,
        location: LocationRef | None = None,
        priority: TicketPriority | None = None,
        subcategory: Subcategory | None = None,
        attachments: Sequence[AttachmentRef] = (),
    ) -> Ticket:
        ticket = self._build(
            title=title,
            description=description,
            source=TicketSource.OTHER,
            attachments=attachments,
            location=location,
            priority=priority,
            category=TicketCategory.PREVENTIVE,
            subcategory=subcategory,
        )
        unique = {person.id: person for person in assignees}
        ticket.assignees = [Reference.of(person) for person in unique.values()]
        return ticket

    def create_corrective(
        self,
        title: str,
        description: str,
        reporter: Person,
        location: LocationRef,
        *,
        priority: TicketPriority | None = None,
        subcategory: Subcategory | None = None,
        attachments: Sequence[AttachmentRef] = (),
    ) -> Ticket:
        return self._build(
            title=title,
            description=description,
            source=TicketSource.OTHER,
            attachments=attachments,
            reporter=reporter,
            location=location,
            priority=priority,
            category=TicketCategory.CORRECTIVE,
            subcategory=subcategory,
        )

    def create_from_template(
        self,
        template_type: TemplateType,
        *,
        title: str | None = None,
        description: str | None = None,
        reporter: Person | None = None,
        location: LocationRef | None = None,
        priority: TicketPriority | None = None,
        attachments: Sequence[AttachmentRef] = (),
    ) -> Ticket:
        template = self.template(template_type)
        return self._build(
            title=title or template["title"],
            description=description or template["description"],
            source=TicketSource.OTHER,
            attachments=attachments,
            reporter=reporter,
            location=location,
            priority=priority or template["priority"],
            category=template["category"],
        )

    @staticmethod
    def template(template_type: str) -> dict[str, Any]:
        try:
            return dict(TICKET_TEMPLATES[template_type])
        except KeyError:
            raise ValidationError(
                f"Unknown ticket template: {template_type}",
                details={"templateType": template_type, "allowed": sorted(TICKET_TEMPLATES)},
            ) from None

    def create_with_note(
        self,
        title: str,
        description: str,
        note_content: str,
        note_type: NoteType = NoteType.GENERAL,
        *,
        created_by: str | None = None,
        created_by_name: str | None = None,
        source: TicketSource = TicketSource.OTHER,
    ) -> Ticket:
        ticket = self._build(title=title, description=description, source=source)
        ticket.notes = [
            new_note(
                note_content,
                note_type,
                created_by=created_by,
                created_by_name=created_by_name,
                now=ticket.created_at,
            )
        ]
        return ticket

    def clone(self, ticket: Ticket, **overrides: Any) -> Ticket:
        """Copy ``ticket`` as a fresh, unresolved ticket with no notes."""

        now = self._clock()
        fields: dict[str, Any] = {
            "id": self._id_factory(),
            "created_at": now,
            "updated_at": now,
            "status": self._lifecycle.initial_state(),
            "resolved_at": None,
            "closed_at": None,
            "notes": [],
            "attachments": list(ticket.attachments),
            "assignees": list(ticket.assignees),
        }
        fields.update(overrides)
        return dataclasses.replace(ticket, **fields)

    async def auto_assign(self, phone: str | None, email: str | None) -> AutoAssignment:
        """Best-effort reporter/location lookup; lookup failures are logged and skipped."""

        found = AutoAssignment()
        if phone:
            found.reporter = await self._lookup(
                "maintenance person by phone",
                lambda: self._people.find_by_phone(phone, department=Department.MAINTENANCE),
            )
            if found.reporter is None:
                found.reporter = await self._lookup(
                    "location person by phone",
                    lambda: self._people.find_by_phone(phone, department=Department.LOCATION),
                )
            if found.reporter is not None:
                found.location = await self._location_of(found.reporter)
            else:
                found.location = await self._lookup("location by phone", lambda: self._locations.find_by_phone(phone))

        if found.reporter is None and email:
            found.reporter = await self._lookup("person by email", lambda: self._people.find_by_email(email))
            if found.reporter is not None:
                found.location = await self._location_of(found.reporter)

        if found.location is None and email:
            domain = email_domain(email)
            if domain:
                found.location = await self._lookup(
                    "location by email domain",
                    lambda: self._locations.find_by_email_domain(domain),
                )
        return found

    async def _location_of(self, person: Person) -> LocationRef | None:
        if person.department != Department.LOCATION or not person.location_id:
            return None
        location_id = person.location_id
        return await self._lookup("reporter location", lambda: self._locations.find_by_id(None, location_id))

    async def _lookup(self, what: str, call: Callable[[], Awaitable[T | None]]) -> T | None:
        try:
            return await call()
        except Exception as exc:
            logger.warning("Ticket auto-assignment: %s lookup failed: %s", what, exc)
            return None

    def _build(
        self,
        *,
        title: str,
        description: str,
        source: TicketSource,
        audio: AttachmentRef | None = None,
        attachments: Sequence[AttachmentRef] = (),
        phone_number: str | None = None,
        reporter: Person | None = None,
        location: LocationRef | None = None,
        priority: TicketPriority | None = None,
        category: TicketCategory | None = None,
        subcategory: Subcategory | None = None,
    ) -> Ticket:
        now = self._clock()
        return Ticket(
            id=self._id_factory(),
            title=title,
            description=description,
            status=self._lifecycle.initial_state(),
            priority=priority or TicketPriority.MEDIUM,
            source=source,
            created_at=now,
            updated_at=now,
            category=category,
            subcategory=subcategory,
            phone_number=phone_number,
            audio=audio,
            attachments=dedupe_attachments(list(attachments)),
            reporter=Reference.of(reporter) if reporter else None,
            location=Reference.of(location) if location else None,
        )
