from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from maintdesk.tickets.models import SubcategoryName, TicketCategory


@dataclass(slots=True, frozen=True)
class SubcategoryEntry:
    """A subcategory as configured in the category catalogue."""

    name: SubcategoryName
    display_name: str
    is_active: bool = True
    order: int | None = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "SubcategoryEntry":
        name = SubcategoryName(doc["name"])
        return cls(
            name=name,
            display_name=str(doc.get("displayName") or name.value).strip(),
            is_active=bool(doc.get("isActive", True)),
            order=doc.get("order"),
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"name": self.name.value, "displayName": self.display_name, "isActive": self.is_active}
        if self.order is not None:
            doc["order"] = self.order
        return doc


@dataclass(slots=True)
class Category:
    id: TicketCategory
    display_name: str
    is_active: bool = True
    description: str | None = None
    subcategories: list[SubcategoryEntry] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Category":
        return cls(
            id=TicketCategory(doc["id"]),
            display_name=str(doc.get("displayName") or doc["id"]),
            is_active=bool(doc.get("isActive", True)),
            description=doc.get("description"),
            subcategories=[SubcategoryEntry.from_document(item) for item in doc.get("subcategories") or []],
            created_at=doc.get("createdAt"),
            updated_at=doc.get("updatedAt"),
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "id": self.id.value,
            "type": "category",
            "displayName": self.display_name,
            "isActive": self.is_active,
            "description": self.description,
            "subcategories": [item.to_document() for item in self.subcategories],
        }
        if self.created_at:
            doc["createdAt"] = self.created_at
        if self.updated_at:
            doc["updatedAt"] = self.updated_at
        return doc


def _entries(*items: tuple[str, str]) -> list[SubcategoryEntry]:
    return [
        SubcategoryEntry(name=SubcategoryName(name), display_name=display_name, order=position)
        for position, (name, display_name) in enumerate(items, start=1)
    ]


DEFAULT_TAXONOMY: tuple[Category, ...] = (
    Category(
        id=TicketCategory.PREVENTIVE,
        display_name="Preventive Maintenance",
        subcategories=_entries(
            ("PAINTING", "Wall painting"),
            ("HVAC", "A/C filter replacement"),
            ("GENERATOR", "Generator test"),
        ),
    ),
    Category(
        id=TicketCategory.CORRECTIVE,
        display_name="Corrective Maintenance",
        subcategories=_entries(
            ("HVAC", "A/C repair"),
            ("ELECTRICAL", "Light bulb replacement"),
            ("LOCKS", "Lock repair"),
            ("PLUMBING", "Leak repair"),
            ("FLOORING", "Floor repair"),
        ),
    ),
    Category(
        id=TicketCategory.EMERGENCY,
        display_name="Emergency Maintenance",
        subcategories=_entries(
            ("ELECTRICAL", "Power outage"),
            ("HVAC", "Main A/C failure"),
        ),
    ),
    Category(
        id=TicketCategory.DEFERRED,
        display_name="Deferred Maintenance",
        subcategories=_entries(
            ("STRUCTURE", "Crack repair"),
            ("FURNITURE", "Furniture replacement"),
            ("CORROSION", "Surface rust removal"),
            ("DOORS", "Minor door adjustments"),
        ),
    ),
)
