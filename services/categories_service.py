"""Service layer for handling category-related logic."""
import logging
from typing import List, Optional

from models.category import Category, CategoryInput
from services.errors import DuplicateNameError, NotFoundError, ReferenceInUseError
from storage.interface import CATEGORIES, EXPENSES, RecordStore
from utils.query_cache import QueryCache

logger = logging.getLogger(__name__)


def find_by_name(categories: List[Category], name: str, exclude_id: Optional[str] = None) -> Optional[Category]:
    """Case-insensitive lookup, skipping the category with exclude_id."""
    target = name.strip().lower()
    for category in categories:
        if category.name.lower() == target and category.id != exclude_id:
            return category
    return None


async def list_categories(store: RecordStore, cache: QueryCache) -> List[Category]:
    """All categories ordered by name."""
    return await cache.get_or_fetch(CATEGORIES, store.list_categories)


async def create_category(store: RecordStore, cache: QueryCache, data: CategoryInput) -> Category:
    logger.info(f"Creating category '{data.name}'")
    existing = await store.list_categories()
    if find_by_name(existing, data.name):
        logger.warning(f"Rejected duplicate category name '{data.name}'")
        raise DuplicateNameError("Category name already exists.")

    category = await store.insert_category(Category(name=data.name))
    cache.invalidate(CATEGORIES)
    logger.info(f"Category '{category.name}' added with id {category.id}")
    return category


async def update_category(store: RecordStore, cache: QueryCache, category_id: str, data: CategoryInput) -> Category:
    """
    Rename a category. Expenses that reference the old name are updated
    to the new one so they stay linked.
    """
    current = await store.get_category(category_id)
    if current is None:
        raise NotFoundError(f"Category {category_id} not found.")

    existing = await store.list_categories()
    if find_by_name(existing, data.name, exclude_id=category_id):
        logger.warning(f"Rejected rename of category '{current.name}' to existing name '{data.name}'")
        raise DuplicateNameError("Category name already exists.")

    updated = await store.update_category(Category(id=category_id, name=data.name))
    if updated is None:
        raise NotFoundError(f"Category {category_id} not found.")

    if current.name != updated.name:
        renamed = await store.rename_reference("category", current.name, updated.name)
        logger.info(f"Category '{current.name}' renamed to '{updated.name}' ({renamed} expenses updated)")
        cache.invalidate(EXPENSES)
    cache.invalidate(CATEGORIES)
    return updated


async def delete_category(store: RecordStore, cache: QueryCache, category_id: str) -> Category:
    """Delete a category unless an expense still uses it. Returns the deleted category."""
    category = await store.get_category(category_id)
    if category is None:
        raise NotFoundError(f"Category {category_id} not found.")

    in_use = await store.count_expenses_referencing("category", category.name)
    if in_use:
        logger.warning(f"Refusing to delete category '{category.name}': used by {in_use} expenses")
        raise ReferenceInUseError(f'Category "{category.name}" is currently assigned to one or more expenses.')

    if not await store.delete_category(category_id):
        raise NotFoundError(f"Category {category_id} not found.")
    cache.invalidate(CATEGORIES)
    logger.info(f"Category '{category.name}' deleted")
    return category
