from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Response, status
from pydantic import BaseModel, ConfigDict, Field

from maintdesk.api.errors import ok
from maintdesk.categories.models import Category, SubcategoryEntry
from maintdesk.dependencies.services import CategoryServiceDep
from maintdesk.tickets.models import SubcategoryName, TicketCategory

router = APIRouter(prefix="/categories", tags=["categories"])


class SubcategoryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: SubcategoryName
    display_name: str = Field(..., min_length=1, alias="displayName")
    is_active: bool = Field(default=True, alias="isActive")
    order: int | None = None

    def to_entry(self) -> SubcategoryEntry:
        return SubcategoryEntry(
            name=self.name,
            display_name=self.display_name.strip(),
            is_active=self.is_active,
            order=self.order,
        )


class CategoryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: TicketCategory
    display_name: str = Field(..., min_length=1, alias="displayName")
    description: str | None = None
    is_active: bool = Field(default=True, alias="isActive")
    subcategories: list[SubcategoryRequest] = Field(default_factory=list)


class CategoryUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    display_name: str | None = Field(default=None, min_length=1, alias="displayName")
    description: str | None = None
    is_active: bool | None = Field(default=None, alias="isActive")
    subcategories: list[SubcategoryRequest] | None = None


@router.get("")
async def list_categories(service: CategoryServiceDep) -> dict[str, Any]:
    return ok([category.to_document() for category in await service.list_active()])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_category(payload: CategoryRequest, service: CategoryServiceDep) -> dict[str, Any]:
    category = Category(
        id=payload.id,
        display_name=payload.display_name,
        description=payload.description,
        is_active=payload.is_active,
        subcategories=[item.to_entry() for item in payload.subcategories],
    )
    return ok((await service.create(category)).to_document())


@router.post("/seed")
async def seed_categories(service: CategoryServiceDep) -> dict[str, Any]:
    results = await service.seed()
    return ok([{"id": result.id.value, "action": result.action} for result in results], count=len(results))


@router.get("/{category_id}")
async def get_category(category_id: str, service: CategoryServiceDep) -> dict[str, Any]:
    return ok((await service.get(category_id)).to_document())


@router.patch("/{category_id}")
async def update_category(
    category_id: str,
    payload: CategoryUpdateRequest,
    service: CategoryServiceDep,
) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    for name in payload.model_fields_set:
        value = getattr(payload, name)
        if value is None and name != "description":
            continue
        if name == "subcategories":
            value = [item.to_entry() for item in value]
        changes[name] = value
    return ok((await service.update(category_id, changes)).to_document())


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(category_id: str, service: CategoryServiceDep) -> Response:
    await service.delete(category_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{category_id}/subcategories")
async def upsert_subcategory(
    category_id: str,
    payload: SubcategoryRequest,
    service: CategoryServiceDep,
) -> dict[str, Any]:
    return ok((await service.upsert_subcategory(category_id, payload.to_entry())).to_document())


@router.delete("/{category_id}/subcategories/{name}")
async def remove_subcategory(category_id: str, name: SubcategoryName, service: CategoryServiceDep) -> dict[str, Any]:
    return ok((await service.remove_subcategory(category_id, name)).to_document())
