from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(slots=True, frozen=True)
class LocationRef:
    """Denormalised location snapshot kept on tickets."""

    id: str
    name: str
    location_type_id: str | None = None
    phone_numbers: tuple[str, ...] = field(default_factory=tuple)
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = ""

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "LocationRef":
        return cls(
            id=str(doc["id"]),
            name=str(doc.get("name") or ""),
            location_type_id=doc.get("locationTypeId"),
            phone_numbers=tuple(str(number) for number in doc.get("phoneNumbers") or ()),
            address=str(doc.get("address") or ""),
            city=str(doc.get("city") or ""),
            state=str(doc.get("state") or ""),
            zip=str(doc.get("zip") or ""),
            country=str(doc.get("country") or ""),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "locationTypeId": self.location_type_id,
            "phoneNumbers": list(self.phone_numbers),
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "country": self.country,
        }
