from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field

from maintdesk.api.errors import ok
from maintdesk.dependencies.services import PersonServiceDep
from maintdesk.people.models import Department, PersonRole

router = APIRouter(prefix="/people", tags=["people"])


class PersonPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    first_name: str = Field(..., min_length=1, alias="firstName")
    last_name: str = Field(..., min_length=1, alias="lastName")
    email: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")
    role: PersonRole = PersonRole.USER
    department: Department | None = None
    location_id: str | None = Field(default=None, alias="locationId")

    def to_fields(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class PersonUpdatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    first_name: str | None = Field(default=None, min_length=1, alias="firstName")
    last_name: str | None = Field(default=None, min_length=1, alias="lastName")
    email: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")
    role: PersonRole | None = None
    department: Department | None = None
    location_id: str | None = Field(default=None, alias="locationId")


class BulkPersonRequest(BaseModel):
    items: list[PersonPayload] = Field(..., min_length=1, max_length=500)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_person(payload: PersonPayload, service: PersonServiceDep) -> dict[str, Any]:
    return ok((await service.create(payload.to_fields())).to_document())


@router.post("/bulk")
async def bulk_create_people(payload: BulkPersonRequest, service: PersonServiceDep) -> dict[str, Any]:
    result = await service.bulk_create([item.to_fields() for item in payload.items])
    return ok(
        {
            "succeeded": [person.to_document() for person in result.succeeded],
            "failed": [
                {"item": dict(failure.item), "error": {"code": failure.error.code, "message": failure.error.message}}
                for failure in result.failed
            ],
        }
    )


@router.put("/by-email")
async def upsert_person_by_email(payload: PersonPayload, service: PersonServiceDep) -> dict[str, Any]:
    return ok((await service.upsert_by_email(payload.to_fields())).to_document())


@router.get("")
async def list_people(
    service: PersonServiceDep,
    role: PersonRole | None = None,
    department: Department | None = None,
    page_size: int = Query(default=20, ge=1, le=100, alias="pageSize"),
    continuation_token: str | None = Query(default=None, alias="continuationToken"),
) -> dict[str, Any]:
    people, token = await service.list(
        role=role,
        department=department,
        page_size=page_size,
        continuation_token=continuation_token,
    )
    return ok([person.to_document() for person in people], continuationToken=token)


@router.get("/{person_id}")
async def get_person(person_id: str, service: PersonServiceDep) -> dict[str, Any]:
    return ok((await service.get(person_id)).to_document())


@router.patch("/{person_id}")
async def update_person(person_id: str, payload: PersonUpdatePayload, service: PersonServiceDep) -> dict[str, Any]:
    fields = payload.model_dump(by_alias=True, exclude_unset=True, mode="json")
    return ok((await service.update(person_id, fields)).to_document())


@router.delete("/{person_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_person(person_id: str, service: PersonServiceDep) -> Response:
    await service.delete(person_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
