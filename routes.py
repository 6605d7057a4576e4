"""API Routes for expenses, categories, vendors and the dashboard"""
from fastapi import APIRouter, HTTPException, Depends, Request, Query
from typing import List, Annotated, Optional
from services import categories_service, expenses_service, settings_service, vendors_service
from services.errors import DuplicateNameError, ExpenseWiseError, NotFoundError, ReferenceInUseError
from models.category import Category, CategoryInput
from models.expense import Expense, ExpenseCreate
from models.settings import DashboardSummary, IncomeSetting, IncomeUpdate, SummaryData
from models.vendor import Vendor, VendorInput
from storage.interface import RecordStore
from utils.query_cache import QueryCache
from utils.rate_limit import limiter, mutation_rate_limit
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

# --- Dependency Functions ---
def get_store(request: Request) -> RecordStore:
    """Dependency to get the record store from the request state."""
    store = getattr(request.state, "store", None)
    if store is None:
        logger.error("Record store not found in application state. Check the storage configuration.")
        raise HTTPException(status_code=503, detail="Database service not available.")
    return store

def get_cache(request: Request) -> QueryCache:
    cache = getattr(request.state, "query_cache", None)
    if cache is None:
        raise HTTPException(status_code=503, detail="Database service not available.")
    return cache

# Type hints for the dependencies
StoreDep = Annotated[RecordStore, Depends(get_store)]
CacheDep = Annotated[QueryCache, Depends(get_cache)]

def service_error_to_http(error: ExpenseWiseError) -> HTTPException:
    """Maps a service error to the HTTP status the API reports it with."""
    if isinstance(error, NotFoundError):
        status_code = 404
    elif isinstance(error, (DuplicateNameError, ReferenceInUseError)):
        status_code = 409
    else:
        status_code = 422
    return HTTPException(status_code=status_code, detail={"field": error.field, "message": error.message})

def _unexpected(action: str, e: Exception) -> HTTPException:
    if isinstance(e, ConnectionError):
        logger.error(f"Connection error {action}: {e}")
        return HTTPException(status_code=503, detail=f"Database connection error: {e}")
    logger.exception(f"Unexpected error {action}: {e}")
    return HTTPException(status_code=500, detail=f"An unexpected server error occurred while {action}.")

# --- Expenses ---

@router.get("/expenses", response_model=List[Expense], summary="Get Expenses", description="Retrieves expense records sorted by date descending.")
async def get_expenses(
    store: StoreDep,
    cache: CacheDep,
    limit: Optional[int] = Query(None, ge=1, description="Return at most this many expenses."),
) -> List[Expense]:
    logger.info(f"GET /expenses endpoint called (limit: {limit})")
    try:
        return await expenses_service.list_expenses(store, cache, limit=limit)
    except Exception as e:
        raise _unexpected("fetching expenses", e)

@router.post("/expenses", response_model=Expense, status_code=201, summary="Add Expense")
@limiter.limit(mutation_rate_limit)
async def add_expense(request: Request, payload: ExpenseCreate, store: StoreDep, cache: CacheDep) -> Expense:
    logger.info(f"POST /expenses endpoint called: {payload.category} {payload.amount}")
    try:
        return await expenses_service.create_expense(store, cache, payload)
    except ExpenseWiseError as e:
        raise service_error_to_http(e)
    except Exception as e:
        raise _unexpected("saving the expense", e)

@router.delete("/expenses/all", summary="Delete All Expenses", description="Deletes all expense records and zeroes the summary. Use with caution!")
@limiter.limit(mutation_rate_limit)
async def delete_all_expenses_route(request: Request, store: StoreDep, cache: CacheDep):
    logger.warning("DELETE /expenses/all endpoint called. This will clear all expenses.")
    try:
        return await expenses_service.delete_all_expenses(store, cache)
    except Exception as e:
        raise _unexpected("deleting expenses", e)

@router.delete("/expenses/{expense_id}", summary="Delete Expense")
@limiter.limit(mutation_rate_limit)
async def delete_expense_route(request: Request, expense_id: str, store: StoreDep, cache: CacheDep):
    logger.info(f"DELETE /expenses/{expense_id} endpoint called")
    try:
        await expenses_service.delete_expense(store, cache, expense_id)
        return {"status": "success"}
    except ExpenseWiseError as e:
        raise service_error_to_http(e)
    except Exception as e:
        raise _unexpected("deleting the expense", e)

# --- Categories ---

@router.get("/categories", response_model=List[Category], summary="Get Categories")
async def get_categories(store: StoreDep, cache: CacheDep) -> List[Category]:
    try:
        return await categories_service.list_categories(store, cache)
    except Exception as e:
        raise _unexpected("fetching categories", e)

@router.post("/categories", response_model=Category, status_code=201, summary="Add Category")
@limiter.limit(mutation_rate_limit)
async def add_category(request: Request, payload: CategoryInput, store: StoreDep, cache: CacheDep) -> Category:
    try:
        return await categories_service.create_category(store, cache, payload)
    except ExpenseWiseError as e:
        raise service_error_to_http(e)
    except Exception as e:
        raise _unexpected("saving the category", e)

@router.put("/categories/{category_id}", response_model=Category, summary="Update Category")
@limiter.limit(mutation_rate_limit)
async def edit_category(request: Request, category_id: str, payload: CategoryInput, store: StoreDep, cache: CacheDep) -> Category:
    try:
        return await categories_service.update_category(store, cache, category_id, payload)
    except ExpenseWiseError as e:
        raise service_error_to_http(e)
    except Exception as e:
        raise _unexpected("updating the category", e)

@router.delete("/categories/{category_id}", summary="Delete Category", description="Fails with 409 while any expense uses the category.")
@limiter.limit(mutation_rate_limit)
async def remove_category(request: Request, category_id: str, store: StoreDep, cache: CacheDep):
    try:
        await categories_service.delete_category(store, cache, category_id)
        return {"status": "success"}
    except ExpenseWiseError as e:
        raise service_error_to_http(e)
    except Exception as e:
        raise _unexpected("deleting the category", e)

# --- Vendors ---

@router.get("/vendors", response_model=List[Vendor], summary="Get Vendors")
async def get_vendors(store: StoreDep, cache: CacheDep) -> List[Vendor]:
    try:
        return await vendors_service.list_vendors(store, cache)
    except Exception as e:
        raise _unexpected("fetching vendors", e)

@router.post("/vendors", response_model=Vendor, status_code=201, summary="Add Vendor")
@limiter.limit(mutation_rate_limit)
async def add_vendor(request: Request, payload: VendorInput, store: StoreDep, cache: CacheDep) -> Vendor:
    try:
        return await vendors_service.create_vendor(store, cache, payload)
    except ExpenseWiseError as e:
        raise service_error_to_http(e)
    except Exception as e:
        raise _unexpected("saving the vendor", e)

@router.put("/vendors/{vendor_id}", response_model=Vendor, summary="Update Vendor")
@limiter.limit(mutation_rate_limit)
async def edit_vendor(request: Request, vendor_id: str, payload: VendorInput, store: StoreDep, cache: CacheDep) -> Vendor:
    try:
        return await vendors_service.update_vendor(store, cache, vendor_id, payload)
    except ExpenseWiseError as e:
        raise service_error_to_http(e)
    except Exception as e:
        raise _unexpected("updating the vendor", e)

@router.delete("/vendors/{vendor_id}", summary="Delete Vendor", description="Fails with 409 while any expense uses the vendor.")
@limiter.limit(mutation_rate_limit)
async def remove_vendor(request: Request, vendor_id: str, store: StoreDep, cache: CacheDep):
    try:
        await vendors_service.delete_vendor(store, cache, vendor_id)
        return {"status": "success"}
    except ExpenseWiseError as e:
        raise service_error_to_http(e)
    except Exception as e:
        raise _unexpected("deleting the vendor", e)

# --- Dashboard & settings ---

@router.get("/dashboard", response_model=DashboardSummary, summary="Dashboard Summary", description="Income, total expenses, balance and the most recent expenses.")
async def get_dashboard(store: StoreDep, cache: CacheDep) -> DashboardSummary:
    try:
        return await settings_service.get_dashboard(store, cache)
    except Exception as e:
        raise _unexpected("loading the dashboard", e)

@router.put("/settings/income", response_model=IncomeSetting, summary="Set Monthly Income")
@limiter.limit(mutation_rate_limit)
async def set_income(request: Request, payload: IncomeUpdate, store: StoreDep, cache: CacheDep) -> IncomeSetting:
    try:
        return await settings_service.update_income(store, cache, payload.amount)
    except Exception as e:
        raise _unexpected("saving the income", e)

@router.post("/summary/recalculate", response_model=SummaryData, summary="Recalculate Summary", description="Rebuilds the running expense total from all stored expenses.")
@limiter.limit(mutation_rate_limit)
async def recalculate_summary(request: Request, store: StoreDep, cache: CacheDep) -> SummaryData:
    try:
        return await settings_service.recalculate_summary(store, cache)
    except Exception as e:
        raise _unexpected("recalculating the summary", e)

@router.post("/reset", summary="Reset All Data", description="Deletes all expenses and zeroes income and summary.")
@limiter.limit(mutation_rate_limit)
async def reset_data(request: Request, store: StoreDep, cache: CacheDep):
    logger.warning("POST /reset endpoint called. This will clear all expenses and the income.")
    try:
        return await settings_service.reset_all_data(store, cache)
    except Exception as e:
        raise _unexpected("resetting data", e)
