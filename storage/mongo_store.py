"""MongoDB backend, accessed with motor."""
import logging
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from models.category import Category
from models.expense import Expense
from models.settings import INCOME_DOC_ID, SUMMARY_DOC_ID, IncomeSetting, SummaryData
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

# Collation used for name ordering so "apple" sorts next to "Apple"
NAME_COLLATION = {"locale": "en", "strength": 2}


def _to_object_id(record_id: str) -> Optional[ObjectId]:
    # ObjectId(None) would mint a new id, so check first
    if not isinstance(record_id, str) or not ObjectId.is_valid(record_id):
        return None
    return ObjectId(record_id)


def _name_filter(field: str, name: str) -> Dict[str, Any]:
    """Case-insensitive exact match on a string field."""
    return {field: {"$regex": f"^{re.escape(name.strip())}$", "$options": "i"}}


def _doc_to_record(doc: Dict[str, Any]) -> Dict[str, Any]:
    # Convert ObjectId and date format
    doc = dict(doc)
    if '_id' in doc:
        doc['id'] = str(doc.pop('_id'))
    if 'date' in doc and isinstance(doc['date'], datetime):
        doc['date'] = doc['date'].date()
    return doc


def _record_to_doc(record) -> Dict[str, Any]:
    doc = record.model_dump(exclude={'id'})
    if isinstance(doc.get('date'), date):
        # Convert date to datetime for MongoDB
        doc['date'] = datetime.combine(doc['date'], datetime.min.time())
    return doc


class MongoStore(RecordStore):
    """
    One collection per entity (expenses, vendors, categories, settings).

    The settings collection holds two fixed-id documents: the income
    setting and the running expense summary. Expense writes and the
    summary update share a multi-document transaction, which needs a
    replica set or sharded cluster.
    """

    def __init__(self, client: AsyncIOMotorClient, db_name: str):
        super().__init__()
        self.client = client
        self.db: AsyncIOMotorDatabase = client[db_name]
        self.expenses: AsyncIOMotorCollection = self.db.get_collection("expenses")
        self.categories: AsyncIOMotorCollection = self.db.get_collection("categories")
        self.vendors: AsyncIOMotorCollection = self.db.get_collection("vendors")
        self.settings: AsyncIOMotorCollection = self.db.get_collection("settings")

    @classmethod
    def from_uri(cls, uri: str, db_name: str) -> "MongoStore":
        logger.info(f"Connecting to MongoDB database '{db_name}'...")
        return cls(AsyncIOMotorClient(uri), db_name)

    async def ping(self) -> None:
        await self.client.admin.command('ping')
        logger.info("MongoDB ping successful.")

    async def close(self) -> None:
        logger.info("Closing MongoDB connection...")
        self.client.close()
        logger.info("MongoDB connection closed.")

    # --- Parsing helpers ---

    @staticmethod
    def _parse(model, doc: Optional[Dict[str, Any]]):
        if doc is None:
            return None
        return model.model_validate(_doc_to_record(doc))

    @classmethod
    def _parse_found(cls, model, doc: Optional[Dict[str, Any]]):
        try:
            return cls._parse(model, doc)
        except ValidationError as e:
            logger.error(f"Data validation error for document ID {doc.get('_id', 'N/A')}: {e}")
            return None

    async def _parse_cursor(self, model, cursor) -> list:
        items = []
        async for doc in cursor:
            try:
                items.append(self._parse(model, doc))
            except ValidationError as e:
                logger.error(f"Data validation error for document ID {doc.get('_id', 'N/A')}: {e}")
                # Skip invalid documents
                continue
        return items

    # --- Expenses ---

    async def list_expenses(self, limit: Optional[int] = None) -> List[Expense]:
        logger.debug(f"Fetching expenses from collection '{self.expenses.name}' (limit: {limit})")
        try:
            cursor = self.expenses.find().sort([("date", DESCENDING), ("_id", DESCENDING)])
            if limit:
                cursor = cursor.limit(limit)
            return await self._parse_cursor(Expense, cursor)
        except PyMongoError as e:
            logger.error(f"Database error fetching expenses: {e}")
            raise ConnectionError(f"Database error fetching expenses: {e}")

    async def get_expense(self, expense_id: str) -> Optional[Expense]:
        oid = _to_object_id(expense_id)
        if oid is None:
            return None
        try:
            return self._parse_found(Expense, await self.expenses.find_one({"_id": oid}))
        except PyMongoError as e:
            logger.error(f"Database error fetching expense {expense_id}: {e}")
            raise ConnectionError(f"Database error fetching expense: {e}")

    async def insert_expense(self, expense: Expense) -> Expense:
        doc = _record_to_doc(expense)
        try:
            async with await self.client.start_session() as session:
                async with session.start_transaction():
                    result = await self.expenses.insert_one(doc, session=session)
                    await self.settings.update_one(
                        {"_id": SUMMARY_DOC_ID},
                        {"$inc": {"total_expenses": expense.amount, "expense_count": 1}},
                        upsert=True,
                        session=session,
                    )
        except PyMongoError as e:
            logger.error(f"Database error inserting expense: {e}")
            raise ConnectionError(f"Database error saving expense: {e}")
        self._notify(EXPENSES, SUMMARY)
        return expense.model_copy(update={'id': str(result.inserted_id)})

    async def delete_expense(self, expense_id: str) -> Optional[Expense]:
        oid = _to_object_id(expense_id)
        if oid is None:
            return None
        try:
            async with await self.client.start_session() as session:
                async with session.start_transaction():
                    doc = await self.expenses.find_one_and_delete({"_id": oid}, session=session)
                    if doc is None:
                        return None
                    await self.settings.update_one(
                        {"_id": SUMMARY_DOC_ID},
                        {"$inc": {"total_expenses": -float(doc.get('amount', 0)), "expense_count": -1}},
                        upsert=True,
                        session=session,
                    )
        except PyMongoError as e:
            logger.error(f"Database error deleting expense {expense_id}: {e}")
            raise ConnectionError(f"Database error deleting expense: {e}")
        self._notify(EXPENSES, SUMMARY)
        return self._parse(Expense, doc)

    async def delete_all_expenses(self) -> int:
        logger.warning(f"Deleting ALL documents from collection '{self.expenses.name}'.")
        try:
            async with await self.client.start_session() as session:
                async with session.start_transaction():
                    result = await self.expenses.delete_many({}, session=session)
                    await self.settings.replace_one(
                        {"_id": SUMMARY_DOC_ID},
                        SummaryData().model_dump(exclude={'id'}),
                        upsert=True,
                        session=session,
                    )
        except PyMongoError as e:
            logger.error(f"Database error during delete_many operation: {e}")
            raise ConnectionError(f"Database error deleting expenses: {e}")
        self._notify(EXPENSES, SUMMARY)
        return result.deleted_count

    async def count_expenses_referencing(self, field: ReferenceField, name: str) -> int:
        try:
            return await self.expenses.count_documents(_name_filter(field, name))
        except PyMongoError as e:
            logger.error(f"Database error counting expenses by {field}: {e}")
            raise ConnectionError(f"Database error checking {field} usage: {e}")

    async def rename_reference(self, field: ReferenceField, old_name: str, new_name: str) -> int:
        try:
            result = await self.expenses.update_many(_name_filter(field, old_name), {"$set": {field: new_name}})
        except PyMongoError as e:
            logger.error(f"Database error renaming {field} '{old_name}': {e}")
            raise ConnectionError(f"Database error updating expenses: {e}")
        if result.modified_count:
            self._notify(EXPENSES)
        return result.modified_count

    # --- Named collections (categories, vendors) ---

    async def _list_named(self, collection: AsyncIOMotorCollection, model) -> list:
        try:
            cursor = collection.find(collation=NAME_COLLATION).sort("name", ASCENDING)
            return await self._parse_cursor(model, cursor)
        except PyMongoError as e:
            logger.error(f"Database error fetching {collection.name}: {e}")
            raise ConnectionError(f"Database error fetching {collection.name}: {e}")

    async def _get_named(self, collection: AsyncIOMotorCollection, model, record_id: str):
        oid = _to_object_id(record_id)
        if oid is None:
            return None
        try:
            return self._parse_found(model, await collection.find_one({"_id": oid}))
        except PyMongoError as e:
            logger.error(f"Database error fetching {collection.name} {record_id}: {e}")
            raise ConnectionError(f"Database error fetching {collection.name}: {e}")

    async def _insert_named(self, collection: AsyncIOMotorCollection, record, key: str):
        try:
            result = await collection.insert_one(_record_to_doc(record))
        except PyMongoError as e:
            logger.error(f"Database error inserting into {collection.name}: {e}")
            raise ConnectionError(f"Database error saving to {collection.name}: {e}")
        self._notify(key)
        return record.model_copy(update={'id': str(result.inserted_id)})

    async def _update_named(self, collection: AsyncIOMotorCollection, record, key: str):
        oid = _to_object_id(record.id)
        if oid is None:
            return None
        try:
            result = await collection.replace_one({"_id": oid}, _record_to_doc(record))
        except PyMongoError as e:
            logger.error(f"Database error updating {collection.name} {record.id}: {e}")
            raise ConnectionError(f"Database error updating {collection.name}: {e}")
        if result.matched_count == 0:
            return None
        self._notify(key)
        return record

    async def _delete_named(self, collection: AsyncIOMotorCollection, record_id: str, key: str) -> bool:
        oid = _to_object_id(record_id)
        if oid is None:
            return False
        try:
            result = await collection.delete_one({"_id": oid})
        except PyMongoError as e:
            logger.error(f"Database error deleting {collection.name} {record_id}: {e}")
            raise ConnectionError(f"Database error deleting from {collection.name}: {e}")
        if result.deleted_count:
            self._notify(key)
        return result.deleted_count > 0

    async def list_categories(self) -> List[Category]:
        return await self._list_named(self.categories, Category)

    async def get_category(self, category_id: str) -> Optional[Category]:
        return await self._get_named(self.categories, Category, category_id)

    async def insert_category(self, category: Category) -> Category:
        return await self._insert_named(self.categories, category, CATEGORIES)

    async def update_category(self, category: Category) -> Optional[Category]:
        return await self._update_named(self.categories, category, CATEGORIES)

    async def delete_category(self, category_id: str) -> bool:
        return await self._delete_named(self.categories, category_id, CATEGORIES)

    async def list_vendors(self) -> List[Vendor]:
        return await self._list_named(self.vendors, Vendor)

    async def get_vendor(self, vendor_id: str) -> Optional[Vendor]:
        return await self._get_named(self.vendors, Vendor, vendor_id)

    async def insert_vendor(self, vendor: Vendor) -> Vendor:
        return await self._insert_named(self.vendors, vendor, VENDORS)

    async def update_vendor(self, vendor: Vendor) -> Optional[Vendor]:
        return await self._update_named(self.vendors, vendor, VENDORS)

    async def delete_vendor(self, vendor_id: str) -> bool:
        return await self._delete_named(self.vendors, vendor_id, VENDORS)

    # --- Settings ---

    async def _get_setting(self, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.settings.find_one({"_id": doc_id})
        except PyMongoError as e:
            logger.error(f"Database error fetching setting '{doc_id}': {e}")
            raise ConnectionError(f"Database error fetching settings: {e}")

    async def _put_setting(self, doc_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return await self.settings.find_one_and_update(
                {"_id": doc_id},
                {"$set": values},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.error(f"Database error saving setting '{doc_id}': {e}")
            raise ConnectionError(f"Database error saving settings: {e}")

    async def get_income(self) -> IncomeSetting:
        doc = await self._get_setting(INCOME_DOC_ID)
        return self._parse(IncomeSetting, doc) if doc else IncomeSetting()

    async def set_income(self, amount: float) -> IncomeSetting:
        doc = await self._put_setting(INCOME_DOC_ID, {"amount": amount})
        self._notify(INCOME)
        return self._parse(IncomeSetting, doc)

    async def get_summary(self) -> SummaryData:
        doc = await self._get_setting(SUMMARY_DOC_ID)
        return self._parse(SummaryData, doc) if doc else SummaryData()

    async def set_summary(self, summary: SummaryData) -> SummaryData:
        doc = await self._put_setting(SUMMARY_DOC_ID, summary.model_dump(exclude={'id'}))
        self._notify(SUMMARY)
        return self._parse(SummaryData, doc)
