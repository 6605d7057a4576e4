"""Service layer for handling vendor-related logic."""
import logging
from typing import List, Optional

from models.vendor import Vendor, VendorInput
from services.errors import DuplicateNameError, NotFoundError, ReferenceInUseError
from storage.interface import EXPENSES, VENDORS, RecordStore
from utils.query_cache import QueryCache

logger = logging.getLogger(__name__)


def find_by_name(vendors: List[Vendor], name: str, exclude_id: Optional[str] = None) -> Optional[Vendor]:
    target = name.strip().lower()
    for vendor in vendors:
        if vendor.name.lower() == target and vendor.id != exclude_id:
            return vendor
    return None


async def list_vendors(store: RecordStore, cache: QueryCache) -> List[Vendor]:
    return await cache.get_or_fetch(VENDORS, store.list_vendors)


async def create_vendor(store: RecordStore, cache: QueryCache, data: VendorInput) -> Vendor:
    """Add a vendor. Names must be unique, ignoring case."""
    logger.info(f"Creating vendor '{data.name}'")
    if find_by_name(await store.list_vendors(), data.name):
        logger.warning(f"Rejected duplicate vendor name '{data.name}'")
        raise DuplicateNameError("Vendor name already exists.")

    vendor = await store.insert_vendor(Vendor(**data.model_dump()))
    cache.invalidate(VENDORS)
    logger.info(f"Vendor '{vendor.name}' added with id {vendor.id}")
    return vendor


async def update_vendor(store: RecordStore, cache: QueryCache, vendor_id: str, data: VendorInput) -> Vendor:
    """Update name and contact details; a rename follows through to existing expenses."""
    current = await store.get_vendor(vendor_id)
    if current is None:
        raise NotFoundError(f"Vendor {vendor_id} not found.")

    if find_by_name(await store.list_vendors(), data.name, exclude_id=vendor_id):
        logger.warning(f"Rejected rename of vendor '{current.name}' to existing name '{data.name}'")
        raise DuplicateNameError("Vendor name already exists.")

    updated = await store.update_vendor(Vendor(id=vendor_id, **data.model_dump()))
    if updated is None:
        raise NotFoundError(f"Vendor {vendor_id} not found.")

    if current.name != updated.name:
        renamed = await store.rename_reference("vendor", current.name, updated.name)
        logger.info(f"Vendor '{current.name}' renamed to '{updated.name}' ({renamed} expenses updated)")
        cache.invalidate(EXPENSES)
    cache.invalidate(VENDORS)
    return updated


async def delete_vendor(store: RecordStore, cache: QueryCache, vendor_id: str) -> Vendor:
    vendor = await store.get_vendor(vendor_id)
    if vendor is None:
        raise NotFoundError(f"Vendor {vendor_id} not found.")

    in_use = await store.count_expenses_referencing("vendor", vendor.name)
    if in_use:
        logger.warning(f"Refusing to delete vendor '{vendor.name}': used by {in_use} expenses")
        raise ReferenceInUseError(f'Vendor "{vendor.name}" is currently assigned to one or more expenses.')

    if not await store.delete_vendor(vendor_id):
        raise NotFoundError(f"Vendor {vendor_id} not found.")
    cache.invalidate(VENDORS)
    logger.info(f"Vendor '{vendor.name}' deleted")
    return vendor
