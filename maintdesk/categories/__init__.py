"""Ticket category catalogue."""

from .models import DEFAULT_TAXONOMY, Category, SubcategoryEntry
from .service import CategoryNotFoundError, CategoryService, SeedResult

__all__ = [
    "Category",
    "CategoryNotFoundError",
    "CategoryService",
    "DEFAULT_TAXONOMY",
    "SeedResult",
    "SubcategoryEntry",
]
