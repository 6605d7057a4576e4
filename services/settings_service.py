"""Service layer for income, the expense summary and the dashboard."""
import logging
from typing import Any, Dict, Iterable

from models.expense import Expense
from models.settings import DashboardSummary, IncomeSetting, SummaryData
from services import expenses_service
from storage.interface import INCOME, SUMMARY, RecordStore
from utils.query_cache import QueryCache

logger = logging.getLogger(__name__)

RECENT_EXPENSES_LIMIT = 5


def compute_summary(expenses: Iterable[Expense]) -> SummaryData:
    """Total and count of the given expenses."""
    total = 0.0
    count = 0
    for expense in expenses:
        total += expense.amount
        count += 1
    return SummaryData(total_expenses=round(total, 2), expense_count=count)


def compute_balance(income: float, total_expenses: float) -> float:
    return round(income - total_expenses, 2)


async def get_income(store: RecordStore, cache: QueryCache) -> IncomeSetting:
    return await cache.get_or_fetch(INCOME, store.get_income)


async def get_summary(store: RecordStore, cache: QueryCache) -> SummaryData:
    return await cache.get_or_fetch(SUMMARY, store.get_summary)


async def get_dashboard(store: RecordStore, cache: QueryCache) -> DashboardSummary:
    """
    Income, totals and balance from the running summary counter (no scan
    of the expense collection), plus the most recent expenses.
    """
    income = await get_income(store, cache)
    summary = await get_summary(store, cache)
    recent = await expenses_service.list_expenses(store, cache, limit=RECENT_EXPENSES_LIMIT)
    total = round(summary.total_expenses, 2)
    return DashboardSummary(
        income=round(income.amount, 2),
        total_expenses=total,
        expense_count=summary.expense_count,
        balance=compute_balance(income.amount, total),
        recent_expenses=recent,
    )


async def update_income(store: RecordStore, cache: QueryCache, amount: float) -> IncomeSetting:
    if amount < 0:
        raise ValueError("Income cannot be negative.")
    logger.info(f"Updating monthly income to {amount:.2f}")
    income = await store.set_income(amount)
    cache.invalidate(INCOME)
    return income


async def recalculate_summary(store: RecordStore, cache: QueryCache) -> SummaryData:
    """Rebuild the running counter from a full scan of the expenses."""
    summary = compute_summary(await store.list_expenses())
    stored = await store.set_summary(summary)
    cache.invalidate(SUMMARY)
    logger.info(f"Summary recalculated: {stored.expense_count} expenses, total {stored.total_expenses:.2f}")
    return stored


async def reset_all_data(store: RecordStore, cache: QueryCache) -> Dict[str, Any]:
    """Delete every expense and zero income and summary. Vendors and categories are kept."""
    logger.warning("Resetting all expense data and income.")
    result = await expenses_service.delete_all_expenses(store, cache)
    await store.set_income(0.0)
    cache.invalidate(INCOME)
    return result
