from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Literal, Mapping, Sequence

from maintdesk.core.errors import ConflictError, NotFoundError, ValidationError
from maintdesk.storage.documents import DocumentRepository
from maintdesk.tickets.models import SubcategoryName, TicketCategory

from .models import DEFAULT_TAXONOMY, Category, SubcategoryEntry

logger = logging.getLogger(__name__)


class CategoryNotFoundError(NotFoundError):
    code = "CATEGORY_NOT_FOUND"


@dataclass(slots=True, frozen=True)
class SeedResult:
    id: TicketCategory
    action: Literal["created", "updated"]


class CategoryService:
    """Maintain the category/subcategory catalogue in the ``categories`` collection."""

    def __init__(self, store: DocumentRepository) -> None:
        self._store = store

    async def create(self, category: Category) -> Category:
        if await self._store.get(category.id.value) is not None:
            raise ConflictError(f"Category {category.id.value} already exists", details={"id": category.id.value})
        _check_unique_names(category.subcategories)
        created = await self._store.create(category.to_document())
        return Category.from_document(created)

    async def get(self, category_id: str) -> Category:
        doc = await self._store.get(category_id)
        if doc is None:
            raise CategoryNotFoundError(f"Category {category_id} not found")
        return Category.from_document(doc)

    async def update(self, category_id: str, changes: Mapping[str, Any]) -> Category:
        allowed = {"display_name", "is_active", "description", "subcategories"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError("Unknown category fields", details={"fields": sorted(unknown)})
        current = await self.get(category_id)
        updated = dataclasses.replace(current, **changes)
        _check_unique_names(updated.subcategories)
        return await self._replace(updated)

    async def delete(self, category_id: str) -> None:
        if not await self._store.delete(category_id):
            raise CategoryNotFoundError(f"Category {category_id} not found")

    async def list_active(self) -> list[Category]:
        page = await self._store.query(
            {"type": "category", "isActive": True},
            sort=("id", "asc"),
            page_size=1000,
        )
        return [Category.from_document(doc) for doc in page.items]

    async def upsert_subcategory(self, category_id: str, entry: SubcategoryEntry) -> Category:
        """Replace the subcategory with the same name in place, or append it."""

        current = await self.get(category_id)
        subcategories = list(current.subcategories)
        for index, existing in enumerate(subcategories):
            if existing.name == entry.name:
                subcategories[index] = entry
                break
        else:
            subcategories.append(entry)
        current.subcategories = subcategories
        return await self._replace(current)

    async def remove_subcategory(self, category_id: str, name: SubcategoryName | str) -> Category:
        current = await self.get(category_id)
        target = SubcategoryName(name)
        current.subcategories = [entry for entry in current.subcategories if entry.name != target]
        return await self._replace(current)

    async def seed(self, taxonomy: Sequence[Category] = DEFAULT_TAXONOMY) -> list[SeedResult]:
        results: list[SeedResult] = []
        for category in taxonomy:
            if await self._store.get(category.id.value) is None:
                await self._store.create(category.to_document())
                results.append(SeedResult(category.id, "created"))
            else:
                await self._store.patch(
                    category.id.value,
                    {
                        "displayName": category.display_name,
                        "isActive": category.is_active,
                        "subcategories": [entry.to_document() for entry in category.subcategories],
                    },
                )
                results.append(SeedResult(category.id, "updated"))
            logger.info("[seed] %s %s", results[-1].action, category.id.value)
        return results

    async def _replace(self, category: Category) -> Category:
        doc = await self._store.replace(category.id.value, category.to_document())
        if doc is None:
            raise CategoryNotFoundError(f"Category {category.id.value} not found")
        return Category.from_document(doc)


def _check_unique_names(entries: Sequence[SubcategoryEntry]) -> None:
    names = [entry.name for entry in entries]
    duplicates = sorted({name.value for name in names if names.count(name) > 1})
    if duplicates:
        raise ValidationError("Subcategory names must be unique within a category", details={"names": duplicates})
