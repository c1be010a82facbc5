from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Mapping, Protocol

import httpx

from maintdesk.people.models import digits_only

from .models import LocationRef

logger = logging.getLogger(__name__)


class LocationDirectory(Protocol):
    async def find_by_id(self, location_type_id: str | None, location_id: str) -> LocationRef | None:
        ...

    async def find_by_phone(self, phone: str) -> LocationRef | None:
        ...

    async def find_by_email_domain(self, domain: str) -> LocationRef | None:
        ...


def email_domain(email: str) -> str:
    return email.rpartition("@")[2].strip().lower()


class LocationCatalog:
    """In-process location directory.

    Locations are matched by exact id, by any of their digits-only phone
    numbers, or through the configured email-domain -> location-id map.
    """

    def __init__(
        self,
        locations: Iterable[LocationRef] = (),
        *,
        email_domains: Mapping[str, str] | None = None,
    ) -> None:
        self._locations = {location.id: location for location in locations}
        self._email_domains = {domain.lower(): location_id for domain, location_id in (email_domains or {}).items()}

    @classmethod
    def from_file(cls, path: str | Path, *, email_domains: Mapping[str, str] | None = None) -> "LocationCatalog":
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        locations = [LocationRef.from_document(item) for item in raw]
        logger.info("Loaded %d locations from %s", len(locations), path)
        return cls(locations, email_domains=email_domains)

    def __len__(self) -> int:
        return len(self._locations)

    async def find_by_id(self, location_type_id: str | None, location_id: str) -> LocationRef | None:
        location = self._locations.get(location_id)
        if location is None:
            return None
        if location_type_id and location.location_type_id and location.location_type_id != location_type_id:
            return None
        return location

    async def find_by_phone(self, phone: str) -> LocationRef | None:
        cleaned = digits_only(phone)
        if not cleaned:
            return None
        for location in self._locations.values():
            if cleaned in location.phone_numbers:
                return location
        return None

    async def find_by_email_domain(self, domain: str) -> LocationRef | None:
        location_id = self._email_domains.get(domain.strip().lower().lstrip("@"))
        if location_id is None:
            return None
        return self._locations.get(location_id)


class RemoteLocationDirectory:
    """Resolve locations by id through the external location API."""

    def __init__(
        self,
        base_url: str,
        *,
        fallback: LocationCatalog | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._fallback = fallback or LocationCatalog()
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def find_by_id(self, location_type_id: str | None, location_id: str) -> LocationRef | None:
        if not location_type_id:
            return await self._fallback.find_by_id(None, location_id)
        url = f"{self._base_url}/location-types/{location_type_id}/locations/{location_id}"
        response = await self._client.get(url)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return LocationRef.from_document(response.json())

    async def find_by_phone(self, phone: str) -> LocationRef | None:
        return await self._fallback.find_by_phone(phone)

    async def find_by_email_domain(self, domain: str) -> LocationRef | None:
        return await self._fallback.find_by_email_domain(domain)

    async def aclose(self) -> None:
        await self._client.aclose()
