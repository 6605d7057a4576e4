"""Server-rendered form screens: Dashboard, Expenses, Vendors and Categories.

Every screen pairs a form with a table. Successful submissions redirect back
to the screen with a `notice` query parameter (shown as a transient
confirmation); failed ones re-render the screen with the errors and the
submitted values, and nothing is written.
"""
import logging
import os
from datetime import date
from typing import Annotated, Any, Dict, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from models.category import CategoryInput
from models.expense import NO_VENDOR_VALUE, ExpenseCreate
from models.settings import IncomeUpdate
from models.vendor import VendorInput
from services import categories_service, expenses_service, settings_service, vendors_service
from services.errors import DuplicateNameError, ExpenseWiseError, NotFoundError, ReferenceInUseError
from storage.interface import RecordStore
from utils.query_cache import QueryCache

logger = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")
templates = Jinja2Templates(directory=TEMPLATES_DIR)
templates.env.filters["money"] = lambda value: f"{value:,.2f}" if value is not None else ""

router = APIRouter()

GENERIC_FAILURE = "Something went wrong while talking to the database. Please try again."

REQUIRED_MESSAGES = {
    "date": "Expense date is required.",
    "amount": "Amount is required.",
    "category": "Category is required.",
    "name": "Name cannot be empty.",
}


class StorageUnavailable(Exception):
    """The record store or query cache was not opened at startup."""


def get_page_store(request: Request) -> RecordStore:
    store = getattr(request.state, "store", None)
    if store is None:
        logger.error("Record store not found in application state. Check the storage configuration.")
        raise StorageUnavailable()
    return store


def get_page_cache(request: Request) -> QueryCache:
    cache = getattr(request.state, "query_cache", None)
    if cache is None:
        raise StorageUnavailable()
    return cache


PageStoreDep = Annotated[RecordStore, Depends(get_page_store)]
PageCacheDep = Annotated[QueryCache, Depends(get_page_cache)]


async def storage_unavailable_handler(request: Request, exc: StorageUnavailable) -> HTMLResponse:
    return render(request, "unavailable.html", {"error": GENERIC_FAILURE}, status_code=503)


def form_errors(exc: ValidationError) -> Dict[str, str]:
    """First error message per field, without pydantic's "Value error, " prefix."""
    errors: Dict[str, str] = {}
    for error in exc.errors():
        field = str(error["loc"][0]) if error.get("loc") else "__all__"
        if field in errors:
            continue
        if error["type"] == "missing" or error.get("input") == "":
            errors[field] = REQUIRED_MESSAGES.get(field, "This field is required.")
            continue
        message = error["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors[field] = message
    return errors


def parse_form(model, values: Dict[str, Any]):
    """Validate form values into model; returns (instance, errors)."""
    try:
        return model.model_validate(values), {}
    except ValidationError as e:
        return None, form_errors(e)


def redirect_with_notice(path: str, notice: str) -> RedirectResponse:
    return RedirectResponse(f"{path}?{urlencode({'notice': notice})}", status_code=303)


async def read_form(request: Request, *fields: str) -> Dict[str, str]:
    form = await request.form()
    return {field: str(form.get(field, "")) for field in fields}


def render(request: Request, template: str, context: Dict[str, Any], status_code: int = 200) -> HTMLResponse:
    context.setdefault("notice", request.query_params.get("notice"))
    context.setdefault("error", None)
    context.setdefault("errors", {})
    return templates.TemplateResponse(request, template, context, status_code=status_code)


def failure_status(error: ExpenseWiseError) -> int:
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ReferenceInUseError):
        return 409
    return 400


# --- Dashboard ---

async def _dashboard_page(request, store, cache, status_code=200, **context) -> HTMLResponse:
    try:
        dashboard = await settings_service.get_dashboard(store, cache)
    except ConnectionError as e:
        logger.error(f"Could not load dashboard: {e}")
        return render(request, "dashboard.html", {"dashboard": None, "error": GENERIC_FAILURE}, status_code=503)
    context.setdefault("values", {"amount": dashboard.income})
    return render(request, "dashboard.html", {"dashboard": dashboard, **context}, status_code=status_code)


@router.get("/", response_class=HTMLResponse)
async def dashboard_page(request: Request, store: PageStoreDep, cache: PageCacheDep):
    return await _dashboard_page(request, store, cache)


@router.post("/income", response_class=HTMLResponse)
async def update_income_form(request: Request, store: PageStoreDep, cache: PageCacheDep):
    values = await read_form(request, "amount")
    data, errors = parse_form(IncomeUpdate, values)
    if errors:
        if "amount" in errors and values["amount"].strip():
            errors["amount"] = "Income must be a non-negative number."
        return await _dashboard_page(request, store, cache, status_code=400, values=values, errors=errors)
    try:
        income = await settings_service.update_income(store, cache, data.amount)
    except ConnectionError as e:
        logger.error(f"Could not save income: {e}")
        return await _dashboard_page(request, store, cache, status_code=503, values=values, error=GENERIC_FAILURE)
    return redirect_with_notice("/", f"Monthly income set to ${income.amount:,.2f}.")


@router.post("/reset", response_class=HTMLResponse)
async def reset_data_form(request: Request, store: PageStoreDep, cache: PageCacheDep):
    try:
        result = await settings_service.reset_all_data(store, cache)
    except ConnectionError as e:
        logger.error(f"Could not reset data: {e}")
        return await _dashboard_page(request, store, cache, status_code=503, error=GENERIC_FAILURE)
    return redirect_with_notice("/", f"All data reset ({result['deleted_count']} expenses removed).")


# --- Expenses ---

def _default_expense_values() -> Dict[str, str]:
    return {"date": date.today().isoformat(), "amount": "", "category": "", "vendor": NO_VENDOR_VALUE, "notes": ""}


async def _expenses_page(request, store, cache, status_code=200, **context) -> HTMLResponse:
    try:
        expenses = await expenses_service.list_expenses(store, cache)
        categories = await categories_service.list_categories(store, cache)
        vendors = await vendors_service.list_vendors(store, cache)
    except ConnectionError as e:
        logger.error(f"Could not load expenses page: {e}")
        return render(request, "expenses.html", {
            "expenses": [], "categories": [], "vendors": [], "values": _default_expense_values(),
            "no_vendor": NO_VENDOR_VALUE, "today": date.today().isoformat(), "error": GENERIC_FAILURE,
        }, status_code=503)
    context.setdefault("values", _default_expense_values())
    return render(request, "expenses.html", {
        "expenses": expenses,
        "categories": categories,
        "vendors": vendors,
        "no_vendor": NO_VENDOR_VALUE,
        "today": date.today().isoformat(),
        **context,
    }, status_code=status_code)


@router.get("/expenses", response_class=HTMLResponse)
async def expenses_page(request: Request, store: PageStoreDep, cache: PageCacheDep):
    return await _expenses_page(request, store, cache)


@router.post("/expenses", response_class=HTMLResponse)
async def add_expense_form(request: Request, store: PageStoreDep, cache: PageCacheDep):
    values = await read_form(request, "date", "amount", "category", "vendor", "notes")
    data, errors = parse_form(ExpenseCreate, values)
    if errors:
        return await _expenses_page(request, store, cache, status_code=400, values=values, errors=errors)
    try:
        expense = await expenses_service.create_expense(store, cache, data)
    except ExpenseWiseError as e:
        return await _expenses_page(request, store, cache, status_code=failure_status(e), values=values, errors={e.field: e.message})
    except ConnectionError as e:
        logger.error(f"Could not save expense: {e}")
        return await _expenses_page(request, store, cache, status_code=503, values=values, error=GENERIC_FAILURE)
    return redirect_with_notice("/expenses", f"Added {expense.category} expense of ${expense.amount:,.2f}.")


@router.post("/expenses/{expense_id}/delete", response_class=HTMLResponse)
async def delete_expense_form(request: Request, expense_id: str, store: PageStoreDep, cache: PageCacheDep):
    try:
        await expenses_service.delete_expense(store, cache, expense_id)
    except ExpenseWiseError as e:
        return await _expenses_page(request, store, cache, status_code=failure_status(e), error=e.message)
    except ConnectionError as e:
        logger.error(f"Could not delete expense {expense_id}: {e}")
        return await _expenses_page(request, store, cache, status_code=503, error=GENERIC_FAILURE)
    return redirect_with_notice("/expenses", "Successfully removed the expense record.")


# --- Categories and vendors ---

class _NamedScreen:
    """Wiring for a name-keyed screen (categories or vendors)."""

    def __init__(self, path, template, label, fields, input_model, list_items, create, update, remove):
        self.path = path
        self.template = template
        self.label = label
        self.fields = fields
        self.input_model = input_model
        self.list_items = list_items
        self.create = create
        self.update = update
        self.remove = remove

    def blank_values(self) -> Dict[str, str]:
        return {field: "" for field in self.fields}

    async def page(self, request, store, cache, editing_id: Optional[str] = None, status_code=200, **context) -> HTMLResponse:
        try:
            items = await self.list_items(store, cache)
        except ConnectionError as e:
            logger.error(f"Could not load {self.path}: {e}")
            return render(request, self.template, {
                "items": [], "editing": None, "values": self.blank_values(), "error": GENERIC_FAILURE,
            }, status_code=503)
        editing = next((item for item in items if item.id == editing_id), None) if editing_id else None
        if "values" not in context:
            context["values"] = (
                {field: getattr(editing, field) or "" for field in self.fields} if editing else self.blank_values()
            )
        return render(request, self.template, {"items": items, "editing": editing, **context}, status_code=status_code)

    async def save(self, request, store, cache, record_id: Optional[str] = None):
        values = await read_form(request, *self.fields)
        data, errors = parse_form(self.input_model, values)
        if errors:
            return await self.page(request, store, cache, record_id, status_code=400, values=values, errors=errors)
        try:
            if record_id is None:
                record = await self.create(store, cache, data)
                notice = f'{self.label} "{record.name}" has been added.'
            else:
                record = await self.update(store, cache, record_id, data)
                notice = f'{self.label} "{record.name}" has been updated.'
        except NotFoundError as e:
            return await self.page(request, store, cache, status_code=404, error=e.message)
        except DuplicateNameError as e:
            return await self.page(request, store, cache, record_id, status_code=409, values=values, errors={e.field: e.message})
        except ConnectionError as e:
            logger.error(f"Could not save {self.label.lower()}: {e}")
            return await self.page(request, store, cache, record_id, status_code=503, values=values, error=GENERIC_FAILURE)
        return redirect_with_notice(self.path, notice)

    async def delete(self, request, store, cache, record_id: str):
        try:
            record = await self.remove(store, cache, record_id)
        except ExpenseWiseError as e:
            return await self.page(request, store, cache, status_code=failure_status(e), error=e.message)
        except ConnectionError as e:
            logger.error(f"Could not delete {self.label.lower()} {record_id}: {e}")
            return await self.page(request, store, cache, status_code=503, error=GENERIC_FAILURE)
        return redirect_with_notice(self.path, f'{self.label} "{record.name}" has been removed.')


categories_screen = _NamedScreen(
    "/categories", "categories.html", "Category", ("name",), CategoryInput,
    categories_service.list_categories,
    categories_service.create_category,
    categories_service.update_category,
    categories_service.delete_category,
)
vendors_screen = _NamedScreen(
    "/vendors", "vendors.html", "Vendor", ("name", "contact_person", "contact_email", "contact_phone"), VendorInput,
    vendors_service.list_vendors,
    vendors_service.create_vendor,
    vendors_service.update_vendor,
    vendors_service.delete_vendor,
)


@router.get("/categories", response_class=HTMLResponse)
async def categories_page(request: Request, store: PageStoreDep, cache: PageCacheDep, edit: Optional[str] = None):
    return await categories_screen.page(request, store, cache, editing_id=edit)


@router.post("/categories", response_class=HTMLResponse)
async def add_category_form(request: Request, store: PageStoreDep, cache: PageCacheDep):
    return await categories_screen.save(request, store, cache)


@router.post("/categories/{category_id}", response_class=HTMLResponse)
async def update_category_form(request: Request, category_id: str, store: PageStoreDep, cache: PageCacheDep):
    return await categories_screen.save(request, store, cache, category_id)


@router.post("/categories/{category_id}/delete", response_class=HTMLResponse)
async def delete_category_form(request: Request, category_id: str, store: PageStoreDep, cache: PageCacheDep):
    return await categories_screen.delete(request, store, cache, category_id)


@router.get("/vendors", response_class=HTMLResponse)
async def vendors_page(request: Request, store: PageStoreDep, cache: PageCacheDep, edit: Optional[str] = None):
    return await vendors_screen.page(request, store, cache, editing_id=edit)


@router.post("/vendors", response_class=HTMLResponse)
async def add_vendor_form(request: Request, store: PageStoreDep, cache: PageCacheDep):
    return await vendors_screen.save(request, store, cache)


@router.post("/vendors/{vendor_id}", response_class=HTMLResponse)
async def update_vendor_form(request: Request, vendor_id: str, store: PageStoreDep, cache: PageCacheDep):
    return await vendors_screen.save(request, store, cache, vendor_id)


@router.post("/vendors/{vendor_id}/delete", response_class=HTMLResponse)
async def delete_vendor_form(request: Request, vendor_id: str, store: PageStoreDep, cache: PageCacheDep):
    return await vendors_screen.delete(request, store, cache, vendor_id)
