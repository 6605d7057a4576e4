"""Local JSON file backend."""
import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import ValidationError

from models.category import Category
from models.expense import Expense
from models.settings import IncomeSetting, SummaryData
from models.vendor import Vendor
from storage.interface import (
    CATEGORIES,
    EXPENSES,
    INCOME,
    SUMMARY,
    VENDORS,
    RecordStore,
    ReferenceField,
)

logger = logging.getLogger(__name__)

# Fixed keys inside the data file, one per collection plus income/summary
STORAGE_KEYS = {
    EXPENSES: "expenseWiseApp_expenses",
    CATEGORIES: "expenseWiseApp_categories",
    VENDORS: "expenseWiseApp_vendors",
    INCOME: "expenseWiseApp_income",
    SUMMARY: "expenseWiseApp_summary",
}
LIST_KEYS = (EXPENSES, CATEGORIES, VENDORS)


def _new_id() -> str:
    return uuid4().hex


def _empty_data() -> Dict[str, Any]:
    return {
        EXPENSES: [],
        CATEGORIES: [],
        VENDORS: [],
        INCOME: IncomeSetting().model_dump(mode='json'),
        SUMMARY: SummaryData().model_dump(mode='json'),
    }


class JsonFileStore(RecordStore):
    """
    Keeps every collection in one JSON file, under fixed keys.

    Each mutation rewrites the whole file through a temporary file and
    os.replace, so an expense and its summary counter are always persisted
    together. Concurrent writers from other processes follow "last write
    wins"; their changes are picked up by comparing the file's mtime before
    every read, and announced to subscribers.
    """

    def __init__(self, path):
        super().__init__()
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self._data: Optional[Dict[str, Any]] = None
        self._mtime_ns: Optional[int] = None

    # --- File handling ---

    def _file_mtime(self) -> Optional[int]:
        try:
            return self.path.stat().st_mtime_ns
        except FileNotFoundError:
            return None

    def _load_file(self) -> Dict[str, Any]:
        data = _empty_data()
        if not self.path.exists():
            return data
        try:
            raw = json.loads(self.path.read_text(encoding='utf-8') or "{}")
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read data file {self.path}: {e}. Starting empty.")
            return data
        for key, storage_key in STORAGE_KEYS.items():
            if storage_key not in raw:
                continue
            value = raw[storage_key]
            expected = list if key in LIST_KEYS else dict
            if not isinstance(value, expected):
                logger.error(f"Ignoring malformed '{storage_key}' in {self.path}")
                continue
            data[key] = value
        return data

    def _write_file(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {STORAGE_KEYS[key]: value for key, value in data.items()}
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".expensewise-", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                json.dump(payload, fh, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _snapshot(self) -> Dict[str, Any]:
        """Current data, reloaded when the file was changed by someone else."""
        mtime = self._file_mtime()
        if self._data is None:
            self._data = self._load_file()
            self._mtime_ns = mtime
        elif mtime != self._mtime_ns:
            logger.info(f"Data file {self.path} changed on disk, reloading.")
            previous = self._data
            self._data = self._load_file()
            self._mtime_ns = mtime
            self._notify(*[key for key in STORAGE_KEYS if previous.get(key) != self._data.get(key)])
        return self._data

    async def _commit(self, data: Dict[str, Any], *changed: str) -> None:
        """Persist data (caller holds the lock) and announce the changed keys."""
        try:
            await asyncio.to_thread(self._write_file, data)
        except OSError as e:
            logger.error(f"Failed to write data file {self.path}: {e}")
            raise ConnectionError(f"Storage error writing {self.path}: {e}")
        self._data = data
        self._mtime_ns = self._file_mtime()
        self._notify(*changed)

    def _copy(self) -> Dict[str, Any]:
        current = self._snapshot()
        return {key: (list(value) if isinstance(value, list) else dict(value)) for key, value in current.items()}

    # --- Parsing helpers ---

    @staticmethod
    def _parse_many(model, docs: List[Dict[str, Any]]) -> list:
        items = []
        for doc in docs:
            try:
                items.append(model.model_validate(doc))
            except ValidationError as e:
                logger.error(f"Data validation error for stored {model.__name__} {doc.get('id', 'N/A')}: {e}")
        return items

    @staticmethod
    def _find_index(docs: List[Dict[str, Any]], record_id: str) -> Optional[int]:
        for index, doc in enumerate(docs):
            if doc.get('id') == record_id:
                return index
        return None

    @classmethod
    def _parse_at(cls, model, docs: List[Dict[str, Any]], record_id: str) -> tuple:
        """(index, record) of record_id; (None, None) when missing or unparseable."""
        index = cls._find_index(docs, record_id)
        if index is None:
            return None, None
        try:
            return index, model.model_validate(docs[index])
        except ValidationError as e:
            logger.error(f"Data validation error for stored {model.__name__} {record_id}: {e}")
            return None, None

    # --- Expenses ---

    async def list_expenses(self, limit: Optional[int] = None) -> List[Expense]:
        expenses = self._parse_many(Expense, self._snapshot()[EXPENSES])
        expenses.sort(key=lambda e: e.date, reverse=True)
        return expenses[:limit] if limit else expenses

    async def get_expense(self, expense_id: str) -> Optional[Expense]:
        _, expense = self._parse_at(Expense, self._snapshot()[EXPENSES], expense_id)
        return expense

    async def insert_expense(self, expense: Expense) -> Expense:
        async with self._lock:
            data = self._copy()
            stored = expense.model_copy(update={'id': _new_id()})
            data[EXPENSES].insert(0, stored.model_dump(mode='json'))
            summary = SummaryData.model_validate(data[SUMMARY])
            summary.total_expenses = round(summary.total_expenses + stored.amount, 2)
            summary.expense_count += 1
            data[SUMMARY] = summary.model_dump(mode='json')
            await self._commit(data, EXPENSES, SUMMARY)
        return stored

    async def delete_expense(self, expense_id: str) -> Optional[Expense]:
        async with self._lock:
            data = self._copy()
            index, deleted = self._parse_at(Expense, data[EXPENSES], expense_id)
            if index is None:
                return None
            data[EXPENSES].pop(index)
            summary = SummaryData.model_validate(data[SUMMARY])
            summary.total_expenses = round(summary.total_expenses - deleted.amount, 2)
            summary.expense_count = max(summary.expense_count - 1, 0)
            data[SUMMARY] = summary.model_dump(mode='json')
            await self._commit(data, EXPENSES, SUMMARY)
        return deleted

    async def delete_all_expenses(self) -> int:
        async with self._lock:
            data = self._copy()
            deleted_count = len(data[EXPENSES])
            data[EXPENSES] = []
            data[SUMMARY] = SummaryData().model_dump(mode='json')
            await self._commit(data, EXPENSES, SUMMARY)
        return deleted_count

    async def count_expenses_referencing(self, field: ReferenceField, name: str) -> int:
        target = name.strip().lower()
        return sum(
            1 for doc in self._snapshot()[EXPENSES]
            if isinstance(doc.get(field), str) and doc[field].strip().lower() == target
        )

    async def rename_reference(self, field: ReferenceField, old_name: str, new_name: str) -> int:
        target = old_name.strip().lower()
        async with self._lock:
            data = self._copy()
            renamed = 0
            for index, doc in enumerate(data[EXPENSES]):
                if isinstance(doc.get(field), str) and doc[field].strip().lower() == target:
                    data[EXPENSES][index] = {**doc, field: new_name}
                    renamed += 1
            if renamed:
                await self._commit(data, EXPENSES)
        return renamed

    # --- Named collections (categories, vendors) ---

    async def _list_named(self, key: str, model) -> list:
        items = self._parse_many(model, self._snapshot()[key])
        items.sort(key=lambda item: item.name.lower())
        return items

    async def _get_named(self, key: str, model, record_id: str):
        _, record = self._parse_at(model, self._snapshot()[key], record_id)
        return record

    async def _insert_named(self, key: str, record):
        async with self._lock:
            data = self._copy()
            stored = record.model_copy(update={'id': _new_id()})
            data[key].insert(0, stored.model_dump(mode='json'))
            await self._commit(data, key)
        return stored

    async def _update_named(self, key: str, record):
        async with self._lock:
            data = self._copy()
            index = self._find_index(data[key], record.id)
            if index is None:
                return None
            data[key][index] = record.model_dump(mode='json')
            await self._commit(data, key)
        return record

    async def _delete_named(self, key: str, record_id: str) -> bool:
        async with self._lock:
            data = self._copy()
            index = self._find_index(data[key], record_id)
            if index is None:
                return False
            data[key].pop(index)
            await self._commit(data, key)
        return True

    async def list_categories(self) -> List[Category]:
        return await self._list_named(CATEGORIES, Category)

    async def get_category(self, category_id: str) -> Optional[Category]:
        return await self._get_named(CATEGORIES, Category, category_id)

    async def insert_category(self, category: Category) -> Category:
        return await self._insert_named(CATEGORIES, category)

    async def update_category(self, category: Category) -> Optional[Category]:
        return await self._update_named(CATEGORIES, category)

    async def delete_category(self, category_id: str) -> bool:
        return await self._delete_named(CATEGORIES, category_id)

    async def list_vendors(self) -> List[Vendor]:
        return await self._list_named(VENDORS, Vendor)

    async def get_vendor(self, vendor_id: str) -> Optional[Vendor]:
        return await self._get_named(VENDORS, Vendor, vendor_id)

    async def insert_vendor(self, vendor: Vendor) -> Vendor:
        return await self._insert_named(VENDORS, vendor)

    async def update_vendor(self, vendor: Vendor) -> Optional[Vendor]:
        return await self._update_named(VENDORS, vendor)

    async def delete_vendor(self, vendor_id: str) -> bool:
        return await self._delete_named(VENDORS, vendor_id)

    # --- Settings ---

    async def get_income(self) -> IncomeSetting:
        try:
            return IncomeSetting.model_validate(self._snapshot()[INCOME])
        except ValidationError as e:
            logger.error(f"Stored income is invalid, using 0: {e}")
            return IncomeSetting()

    async def set_income(self, amount: float) -> IncomeSetting:
        income = IncomeSetting(amount=amount)
        async with self._lock:
            data = self._copy()
            data[INCOME] = income.model_dump(mode='json')
            await self._commit(data, INCOME)
        return income

    async def get_summary(self) -> SummaryData:
        try:
            return SummaryData.model_validate(self._snapshot()[SUMMARY])
        except ValidationError as e:
            logger.error(f"Stored summary is invalid, using zero: {e}")
            return SummaryData()

    async def set_summary(self, summary: SummaryData) -> SummaryData:
        async with self._lock:
            data = self._copy()
            data[SUMMARY] = summary.model_dump(mode='json')
            await self._commit(data, SUMMARY)
        return summary
