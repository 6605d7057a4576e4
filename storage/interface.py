"""
Abstract storage interface.

Both backends (a local JSON file and a MongoDB database) implement the
same operations so the services never know which one they talk to.
Referential integrity between expenses and vendors/categories is enforced
by the services, not here.
"""
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Literal, Optional

from models.category import Category
from models.expense import Expense
from models.settings import IncomeSetting, SummaryData
from models.vendor import Vendor

logger = logging.getLogger(__name__)

# Collection keys passed to change listeners
EXPENSES = "expenses"
CATEGORIES = "categories"
VENDORS = "vendors"
INCOME = "income"
SUMMARY = "summary"

ReferenceField = Literal["category", "vendor"]
ChangeListener = Callable[[str], None]


class RecordStore(ABC):
    """
    Storage for the four entity collections plus the summary counter.

    Any method may raise ConnectionError when the backend fails.
    """

    def __init__(self):
        self._listeners: List[ChangeListener] = []

    # --- Change notification ---

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener called with the key of every changed collection."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, *keys: str) -> None:
        for key in keys:
            for listener in list(self._listeners):
                try:
                    listener(key)
                except Exception:
                    logger.exception(f"Change listener failed for key '{key}'")

    # --- Expenses ---

    @abstractmethod
    async def list_expenses(self, limit: Optional[int] = None) -> List[Expense]:
        """Expenses ordered by date, newest first."""

    @abstractmethod
    async def get_expense(self, expense_id: str) -> Optional[Expense]:
        pass

    @abstractmethod
    async def insert_expense(self, expense: Expense) -> Expense:
        """
        Store a new expense and add its amount to the summary counter.

        Both writes are applied together; a reader never sees one without
        the other.
        """

    @abstractmethod
    async def delete_expense(self, expense_id: str) -> Optional[Expense]:
        """
        Remove an expense and subtract it from the summary counter, atomically.

        Returns the deleted expense, or None if it did not exist.
        """

    @abstractmethod
    async def delete_all_expenses(self) -> int:
        """Remove every expense and zero the summary. Returns the deleted count."""

    @abstractmethod
    async def count_expenses_referencing(self, field: ReferenceField, name: str) -> int:
        """Number of expenses whose category/vendor equals name, ignoring case."""

    @abstractmethod
    async def rename_reference(self, field: ReferenceField, old_name: str, new_name: str) -> int:
        """Point every expense referencing old_name at new_name. Returns the count."""

    # --- Categories ---

    @abstractmethod
    async def list_categories(self) -> List[Category]:
        pass

    @abstractmethod
    async def get_category(self, category_id: str) -> Optional[Category]:
        pass

    @abstractmethod
    async def insert_category(self, category: Category) -> Category:
        pass

    @abstractmethod
    async def update_category(self, category: Category) -> Optional[Category]:
        pass

    @abstractmethod
    async def delete_category(self, category_id: str) -> bool:
        pass

    # --- Vendors ---

    @abstractmethod
    async def list_vendors(self) -> List[Vendor]:
        pass

    @abstractmethod
    async def get_vendor(self, vendor_id: str) -> Optional[Vendor]:
        pass

    @abstractmethod
    async def insert_vendor(self, vendor: Vendor) -> Vendor:
        pass

    @abstractmethod
    async def update_vendor(self, vendor: Vendor) -> Optional[Vendor]:
        pass

    @abstractmethod
    async def delete_vendor(self, vendor_id: str) -> bool:
        pass

    # --- Settings ---

    @abstractmethod
    async def get_income(self) -> IncomeSetting:
        pass

    @abstractmethod
    async def set_income(self, amount: float) -> IncomeSetting:
        pass

    @abstractmethod
    async def get_summary(self) -> SummaryData:
        pass

    @abstractmethod
    async def set_summary(self, summary: SummaryData) -> SummaryData:
        pass

    async def close(self) -> None:
        pass
