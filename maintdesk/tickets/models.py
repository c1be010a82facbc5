from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Generic, Mapping, Sequence, TypeVar

from maintdesk.attachments.models import AttachmentRef, dedupe_attachments
from maintdesk.core.errors import ValidationError
from maintdesk.locations.models import LocationRef
from maintdesk.people.models import Person

logger = logging.getLogger(__name__)

S = TypeVar("S")


class TicketStatus(str, Enum):
    """Canonical states of the ticket lifecycle."""

    NEW = "NEW"
    OPEN = "OPEN"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class TicketPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TicketCategory(str, Enum):
    PREVENTIVE = "PREVENTIVE"
    CORRECTIVE = "CORRECTIVE"
    EMERGENCY = "EMERGENCY"
    DEFERRED = "DEFERRED"
    OTHER = "OTHER"


class SubcategoryName(str, Enum):
    PAINTING = "PAINTING"
    HVAC = "HVAC"
    GENERATOR = "GENERATOR"
    ELECTRICAL = "ELECTRICAL"
    LOCKS = "LOCKS"
    PLUMBING = "PLUMBING"
    FLOORING = "FLOORING"
    STRUCTURE = "STRUCTURE"
    DOORS = "DOORS"
    CORROSION = "CORROSION"
    FURNITURE = "FURNITURE"
    OTHER = "OTHER"


class TicketSource(str, Enum):
    PHONE_SYSTEM = "PHONE_SYSTEM"
    EMAIL = "EMAIL"
    WEB = "WEB"
    OTHER = "OTHER"


class NoteType(str, Enum):
    GENERAL = "general"
    CANCELLATION = "cancellation"
    STATUS_CHANGE = "status_change"
    ASSIGNMENT = "assignment"
    RESOLUTION = "resolution"


@dataclass(slots=True, frozen=True)
class Reference(Generic[S]):
    """An entity id stored together with its denormalised snapshot.

    Both halves are always present; a reference cannot be built from one alone.
    """

    id: str
    snapshot: S

    def __post_init__(self) -> None:
        if not self.id:
            raise ValidationError("Reference requires an id")
        if self.snapshot is None:
            raise ValidationError(f"Reference {self.id} requires a snapshot")
        snapshot_id = getattr(self.snapshot, "id", None)
        if snapshot_id is not None and snapshot_id != self.id:
            raise ValidationError(f"Reference id {self.id} does not match snapshot id {snapshot_id}")

    @classmethod
    def of(cls, snapshot: S) -> "Reference[S]":
        return cls(id=str(getattr(snapshot, "id")), snapshot=snapshot)


@dataclass(slots=True, frozen=True)
class Subcategory:
    name: SubcategoryName
    display_name: str

    @classmethod
    def make(cls, name: str | SubcategoryName, display_name: str | None = None) -> "Subcategory":
        member = SubcategoryName(name)
        return cls(name=member, display_name=(display_name or member.value).strip())

    def to_document(self) -> dict[str, str]:
        return {"name": self.name.value, "displayName": self.display_name}


@dataclass(slots=True, frozen=True)
class TicketNote:
    id: str
    content: str
    type: NoteType
    created_at: datetime
    created_by: str | None = None
    created_by_name: str | None = None

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "id": self.id,
            "content": self.content,
            "type": self.type.value,
            "createdAt": self.created_at.isoformat(),
        }
        if self.created_by:
            doc["createdBy"] = self.created_by
        if self.created_by_name:
            doc["createdByName"] = self.created_by_name
        return doc

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "TicketNote":
        return cls(
            id=str(doc.get("id") or uuid.uuid4()),
            content=str(doc.get("content") or ""),
            type=NoteType(doc.get("type") or NoteType.GENERAL.value),
            created_at=ensure_datetime(doc.get("createdAt")),
            created_by=doc.get("createdBy"),
            created_by_name=doc.get("createdByName"),
        )


def new_note(
    content: str,
    note_type: NoteType = NoteType.GENERAL,
    *,
    created_by: str | None = None,
    created_by_name: str | None = None,
    now: datetime | None = None,
) -> TicketNote:
    return TicketNote(
        id=str(uuid.uuid4()),
        content=content,
        type=note_type,
        created_at=now or utc_now(),
        created_by=created_by,
        created_by_name=created_by_name,
    )


@dataclass(slots=True)
class Ticket:
    """Maintenance request aggregate."""

    id: str
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    source: TicketSource
    created_at: datetime
    updated_at: datetime
    category: TicketCategory | None = None
    subcategory: Subcategory | None = None
    phone_number: str | None = None
    transcription: str | None = None
    audio: AttachmentRef | None = None
    attachments: list[AttachmentRef] = field(default_factory=list)
    notes: list[TicketNote] = field(default_factory=list)
    reporter: Reference[Person] | None = None
    assignees: list[Reference[Person]] = field(default_factory=list)
    location: Reference[LocationRef] | None = None
    resolved_at: datetime | None = None
    closed_at: datetime | None = None

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"id": self.id, "type": "ticket"}
        for name in _SERIALIZERS:
            doc.update(_SERIALIZERS[name](getattr(self, name)))
        doc["createdAt"] = self.created_at.isoformat()
        doc["updatedAt"] = self.updated_at.isoformat()
        return doc

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Ticket":
        subcategory = doc.get("subcategory")
        category = doc.get("category")
        audio = doc.get("audio")
        return cls(
            id=str(doc["id"]),
            title=str(doc.get("title") or ""),
            description=str(doc.get("description") or ""),
            status=TicketStatus(doc.get("status") or TicketStatus.NEW.value),
            priority=TicketPriority(doc.get("priority") or TicketPriority.MEDIUM.value),
            source=TicketSource(doc.get("source") or TicketSource.OTHER.value),
            created_at=ensure_datetime(doc.get("createdAt")),
            updated_at=ensure_datetime(doc.get("updatedAt")),
            category=TicketCategory(category) if category else None,
            subcategory=Subcategory.make(subcategory["name"], subcategory.get("displayName")) if subcategory else None,
            phone_number=doc.get("phoneNumber"),
            transcription=doc.get("transcription"),
            audio=AttachmentRef.from_document(audio) if audio else None,
            attachments=[AttachmentRef.from_document(item) for item in doc.get("attachments") or []],
            # older tickets were stored without notes
            notes=[TicketNote.from_document(item) for item in doc.get("notes") or []],
            reporter=_read_reference(doc, "reporterId", "reporter", Person.from_document),
            assignees=_read_assignees(doc),
            location=_read_reference(doc, "locationId", "location", LocationRef.from_document),
            resolved_at=ensure_optional_datetime(doc.get("resolvedAt")),
            closed_at=ensure_optional_datetime(doc.get("closedAt")),
        )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_datetime(value: Any) -> datetime:
    if value is None:
        return utc_now()
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def ensure_optional_datetime(value: Any) -> datetime | None:
    return None if value is None else ensure_datetime(value)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _enum_value(value: Enum | None) -> str | None:
    return value.value if value is not None else None


def _reference_fields(id_key: str, snapshot_key: str) -> Callable[[Reference[Any] | None], dict[str, Any]]:
    def serialize(ref: Reference[Any] | None) -> dict[str, Any]:
        if ref is None:
            return {id_key: None, snapshot_key: None}
        return {id_key: ref.id, snapshot_key: ref.snapshot.to_document()}

    return serialize


def _assignee_fields(refs: Sequence[Reference[Person]]) -> dict[str, Any]:
    return {
        "assigneeIds": [ref.id for ref in refs],
        "assignees": [ref.snapshot.to_document() for ref in refs],
    }


_SERIALIZERS: dict[str, Callable[[Any], dict[str, Any]]] = {
    "title": lambda value: {"title": value},
    "description": lambda value: {"description": value},
    "status": lambda value: {"status": _enum_value(value)},
    "priority": lambda value: {"priority": _enum_value(value)},
    "source": lambda value: {"source": _enum_value(value)},
    "category": lambda value: {"category": _enum_value(value)},
    "subcategory": lambda value: {"subcategory": value.to_document() if value else None},
    "phone_number": lambda value: {"phoneNumber": value},
    "transcription": lambda value: {"transcription": value},
    "audio": lambda value: {"audio": value.to_document() if value else None},
    "attachments": lambda value: {"attachments": [item.to_document() for item in dedupe_attachments(value)]},
    "notes": lambda value: {"notes": [note.to_document() for note in value]},
    "reporter": _reference_fields("reporterId", "reporter"),
    "assignees": _assignee_fields,
    "location": _reference_fields("locationId", "location"),
    "resolved_at": lambda value: {"resolvedAt": _iso(value)},
    "closed_at": lambda value: {"closedAt": _iso(value)},
}


def changes_to_document(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Translate a mapping of Ticket attribute changes into document fields."""

    doc: dict[str, Any] = {}
    for name, value in changes.items():
        serializer = _SERIALIZERS.get(name)
        if serializer is None:
            raise ValueError(f"Ticket field {name!r} cannot be patched")
        doc.update(serializer(value))
    return doc


def _read_reference(
    doc: Mapping[str, Any],
    id_key: str,
    snapshot_key: str,
    parse: Callable[[Mapping[str, Any]], S],
) -> Reference[S] | None:
    snapshot_doc = doc.get(snapshot_key)
    if not snapshot_doc:
        if doc.get(id_key):
            logger.debug("Ticket %s has %s without %s", doc.get("id"), id_key, snapshot_key)
        return None
    payload = dict(snapshot_doc)
    payload.setdefault("id", doc.get(id_key))
    if not payload.get("id"):
        return None
    return Reference.of(parse(payload))


def _read_assignees(doc: Mapping[str, Any]) -> list[Reference[Person]]:
    ids = list(doc.get("assigneeIds") or [])
    snapshots = list(doc.get("assignees") or [])
    refs: list[Reference[Person]] = []
    for index, snapshot in enumerate(snapshots):
        payload = dict(snapshot)
        if not payload.get("id") and index < len(ids):
            payload["id"] = ids[index]
        if payload.get("id"):
            refs.append(Reference.of(Person.from_document(payload)))
    return refs
