"""JsonFileStore: persistence layout, atomic summary updates and change notification."""
import json
import os
import pytest
from datetime import date

from models.category import Category
from models.expense import Expense
from models.vendor import Vendor
from storage.json_store import STORAGE_KEYS, JsonFileStore


def make_expense(amount, day=28, category="Groceries", vendor=None):
    return Expense(date=date(2024, 7, day), category=category, vendor=vendor, amount=amount)


def read_raw(store):
    return json.loads(store.path.read_text(encoding="utf-8"))


@pytest.mark.asyncio
async def test_missing_file_starts_empty(store):
    assert await store.list_expenses() == []
    assert await store.list_categories() == []
    assert (await store.get_income()).amount == 0
    assert (await store.get_summary()).total_expenses == 0


@pytest.mark.asyncio
async def test_insert_expense_writes_expense_and_summary_together(store):
    stored = await store.insert_expense(make_expense(75.50))

    assert stored.id
    raw = read_raw(store)
    assert set(raw) == set(STORAGE_KEYS.values())
    assert raw["expenseWiseApp_expenses"][0]["date"] == "2024-07-28"
    assert raw["expenseWiseApp_summary"]["total_expenses"] == 75.50
    assert raw["expenseWiseApp_summary"]["expense_count"] == 1


@pytest.mark.asyncio
async def test_delete_expense_reverts_summary(store):
    first = await store.insert_expense(make_expense(100.0))
    await store.insert_expense(make_expense(20.25))

    deleted = await store.delete_expense(first.id)

    assert deleted.amount == 100.0
    summary = await store.get_summary()
    assert summary.total_expenses == 20.25
    assert summary.expense_count == 1
    assert await store.delete_expense(first.id) is None


@pytest.mark.asyncio
async def test_delete_all_expenses_zeroes_summary(store):
    await store.insert_expense(make_expense(10))
    await store.insert_expense(make_expense(15))

    assert await store.delete_all_expenses() == 2
    assert await store.list_expenses() == []
    summary = await store.get_summary()
    assert (summary.total_expenses, summary.expense_count) == (0, 0)


@pytest.mark.asyncio
async def test_expenses_are_listed_newest_first(store):
    await store.insert_expense(make_expense(1, day=10))
    await store.insert_expense(make_expense(2, day=20))
    await store.insert_expense(make_expense(3, day=15))

    expenses = await store.list_expenses()
    assert [e.amount for e in expenses] == [2, 3, 1]
    assert [e.amount for e in await store.list_expenses(limit=2)] == [2, 3]


@pytest.mark.asyncio
async def test_named_collections_sorted_by_name_ignoring_case(store):
    for name in ["utilities", "Groceries", "Rent"]:
        await store.insert_category(Category(name=name))
    assert [c.name for c in await store.list_categories()] == ["Groceries", "Rent", "utilities"]


@pytest.mark.asyncio
async def test_update_and_delete_vendor(store):
    vendor = await store.insert_vendor(Vendor(name="SuperMart"))
    updated = await store.update_vendor(vendor.model_copy(update={"contact_phone": "123-456-7890"}))
    assert (await store.get_vendor(vendor.id)).contact_phone == "123-456-7890"
    assert updated.contact_phone == "123-456-7890"

    assert await store.delete_vendor(vendor.id) is True
    assert await store.delete_vendor(vendor.id) is False
    assert await store.update_vendor(vendor) is None


@pytest.mark.asyncio
async def test_reference_count_and_rename_ignore_case(store):
    await store.insert_expense(make_expense(10, category="Rent"))
    await store.insert_expense(make_expense(10, category="rent"))
    await store.insert_expense(make_expense(10, category="Groceries", vendor="SuperMart"))

    assert await store.count_expenses_referencing("category", "RENT") == 2
    assert await store.count_expenses_referencing("vendor", "supermart") == 1

    assert await store.rename_reference("category", "Rent", "Housing") == 2
    assert await store.count_expenses_referencing("category", "Housing") == 2
    assert await store.count_expenses_referencing("category", "Rent") == 0


@pytest.mark.asyncio
async def test_listeners_receive_changed_keys(store):
    changes = []
    unsubscribe = store.subscribe(changes.append)

    await store.insert_expense(make_expense(10))
    await store.set_income(5000)
    unsubscribe()
    await store.insert_category(Category(name="Rent"))

    assert changes == ["expenses", "summary", "income"]


@pytest.mark.asyncio
async def test_change_by_another_process_is_reloaded_and_announced(tmp_path):
    path = tmp_path / "shared.json"
    first = JsonFileStore(path)
    second = JsonFileStore(path)
    await first.set_income(1000)
    assert (await second.get_income()).amount == 1000

    changes = []
    second.subscribe(changes.append)
    await first.insert_category(Category(name="Rent"))
    # Make sure the modification time differs even on coarse filesystems
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

    assert [c.name for c in await second.list_categories()] == ["Rent"]
    assert changes == ["categories"]


@pytest.mark.asyncio
async def test_corrupt_file_is_treated_as_empty(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileStore(path)

    assert await store.list_expenses() == []
    await store.set_income(10)
    assert read_raw(store)["expenseWiseApp_income"]["amount"] == 10


@pytest.mark.asyncio
async def test_malformed_key_is_ignored(tmp_path):
    path = tmp_path / "partial.json"
    path.write_text(json.dumps({
        "expenseWiseApp_expenses": "oops",
        "expenseWiseApp_categories": [{"id": "c1", "name": "Rent"}],
    }), encoding="utf-8")
    store = JsonFileStore(path)

    assert await store.list_expenses() == []
    assert [c.name for c in await store.list_categories()] == ["Rent"]


@pytest.mark.asyncio
async def test_malformed_record_reads_as_missing(tmp_path):
    path = tmp_path / "malformed.json"
    path.write_text(json.dumps({
        "expenseWiseApp_expenses": [{"id": "e1", "date": "2024-07-28", "category": "Groceries", "amount": "lots"}],
        "expenseWiseApp_categories": [{"id": "c1"}],
        "expenseWiseApp_vendors": [{"id": "v1", "name": ""}, {"id": "v2", "name": "SuperMart"}],
        "expenseWiseApp_summary": {"total_expenses": 5.0, "expense_count": 1},
    }), encoding="utf-8")
    store = JsonFileStore(path)

    assert await store.get_expense("e1") is None
    assert await store.get_category("c1") is None
    assert (await store.get_vendor("v2")).name == "SuperMart"

    assert await store.delete_expense("e1") is None
    assert len(read_raw(store)["expenseWiseApp_expenses"]) == 1
    assert (await store.get_summary()).total_expenses == 5.0
