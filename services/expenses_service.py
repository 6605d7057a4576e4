"""Service layer for handling expense-related logic."""
import logging
from typing import Any, Dict, List, Optional

from models.expense import Expense, ExpenseCreate
from services import categories_service, vendors_service
from services.errors import NotFoundError, ValidationFailed
from storage.interface import EXPENSES, SUMMARY, RecordStore
from utils.query_cache import QueryCache

logger = logging.getLogger(__name__)


def _cache_key(limit: Optional[int]) -> str:
    return f"{EXPENSES}:limit={limit}" if limit else EXPENSES


async def list_expenses(store: RecordStore, cache: QueryCache, limit: Optional[int] = None) -> List[Expense]:
    """Fetches expenses sorted by date descending, optionally only the first `limit`."""
    logger.debug(f"Listing expenses (limit: {limit})")
    return await cache.get_or_fetch(_cache_key(limit), lambda: store.list_expenses(limit=limit))


async def create_expense(store: RecordStore, cache: QueryCache, data: ExpenseCreate) -> Expense:
    """
    Records a new expense.
    - The amount/date checks already ran when `data` was validated.
    - Category (required) and vendor (optional) must name existing records;
      the stored expense uses their canonical spelling.
    - The expense and the summary counter are written together by the store.
    """
    logger.info(f"Creating expense: {data.date} {data.category} {data.amount:.2f}")

    category = categories_service.find_by_name(await store.list_categories(), data.category)
    if category is None:
        logger.warning(f"Rejected expense with unknown category '{data.category}'")
        raise ValidationFailed(f'Category "{data.category}" does not exist.', field="category")

    vendor_name = None
    if data.vendor:
        vendor = vendors_service.find_by_name(await store.list_vendors(), data.vendor)
        if vendor is None:
            logger.warning(f"Rejected expense with unknown vendor '{data.vendor}'")
            raise ValidationFailed(f'Vendor "{data.vendor}" does not exist.', field="vendor")
        vendor_name = vendor.name

    expense = Expense(
        date=data.date,
        category=category.name,
        vendor=vendor_name,
        amount=data.amount,
        notes=data.notes,
    )
    stored = await store.insert_expense(expense)
    cache.invalidate(EXPENSES, SUMMARY)
    logger.info(f"Expense {stored.id} added ({stored.category}, {stored.amount:.2f})")
    return stored


async def delete_expense(store: RecordStore, cache: QueryCache, expense_id: str) -> Expense:
    """Deletes one expense; the store subtracts it from the summary in the same write."""
    deleted = await store.delete_expense(expense_id)
    if deleted is None:
        raise NotFoundError(f"Expense {expense_id} not found.")
    cache.invalidate(EXPENSES, SUMMARY)
    logger.info(f"Expense {expense_id} deleted ({deleted.category}, {deleted.amount:.2f})")
    return deleted


async def delete_all_expenses(store: RecordStore, cache: QueryCache) -> Dict[str, Any]:
    """Deletes all expenses and zeroes the summary."""
    logger.warning("Deleting ALL expenses.")
    deleted_count = await store.delete_all_expenses()
    cache.invalidate(EXPENSES, SUMMARY)
    logger.info(f"Successfully deleted {deleted_count} expenses.")
    return {"status": "success", "deleted_count": deleted_count}
