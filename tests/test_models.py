"""Validation rules of the input models."""
import pytest
from datetime import date, timedelta

from pydantic import ValidationError

from models.category import CategoryInput
from models.expense import NO_VENDOR_VALUE, ExpenseCreate
from models.settings import IncomeSetting, IncomeUpdate
from models.vendor import VendorInput


class TestExpenseCreate:

    def test_valid_expense(self):
        expense = ExpenseCreate(date=date(2024, 7, 28), category=" Groceries ", amount="75.5")
        assert expense.category == "Groceries"
        assert expense.amount == 75.5
        assert expense.vendor is None

    @pytest.mark.parametrize("amount", [0, -1, -75.5])
    def test_rejects_non_positive_amount(self, amount):
        with pytest.raises(ValidationError, match="Amount must be positive"):
            ExpenseCreate(date=date(2024, 7, 28), category="Groceries", amount=amount)

    def test_rejects_non_numeric_amount(self):
        with pytest.raises(ValidationError):
            ExpenseCreate(date=date(2024, 7, 28), category="Groceries", amount="abc")

    @pytest.mark.parametrize("amount", ["nan", "inf", "-inf", float("nan"), float("inf")])
    def test_rejects_non_finite_amount(self, amount):
        with pytest.raises(ValidationError, match="finite number"):
            ExpenseCreate(date=date(2024, 7, 28), category="Groceries", amount=amount)

    def test_rejects_future_date(self):
        with pytest.raises(ValidationError, match="future"):
            ExpenseCreate(date=date.today() + timedelta(days=1), category="Groceries", amount=10)

    def test_rejects_date_before_1900(self):
        with pytest.raises(ValidationError, match="1900"):
            ExpenseCreate(date=date(1899, 12, 31), category="Groceries", amount=10)

    def test_requires_category(self):
        with pytest.raises(ValidationError, match="Category is required"):
            ExpenseCreate(date=date(2024, 7, 28), category="   ", amount=10)

    @pytest.mark.parametrize("vendor", ["", "  ", NO_VENDOR_VALUE])
    def test_no_vendor_values_become_none(self, vendor):
        expense = ExpenseCreate(date=date(2024, 7, 28), category="Groceries", amount=10, vendor=vendor, notes="")
        assert expense.vendor is None
        assert expense.notes is None


class TestVendorInput:

    def test_blank_contact_fields_become_none(self):
        vendor = VendorInput(name="SuperMart", contact_person="", contact_email=" ", contact_phone="")
        assert vendor.contact_person is None
        assert vendor.contact_email is None
        assert vendor.contact_phone is None

    def test_accepts_valid_email(self):
        vendor = VendorInput(name="City Power", contact_email="billing@citypower.com")
        assert vendor.contact_email == "billing@citypower.com"

    @pytest.mark.parametrize("email", ["billing-at-citypower", "a@b..c", "a@-.x", "billing@citypower"])
    def test_rejects_invalid_email(self, email):
        with pytest.raises(ValidationError, match="Invalid email address"):
            VendorInput(name="City Power", contact_email=email)

    def test_rejects_empty_name(self):
        with pytest.raises(ValidationError, match="Vendor name cannot be empty"):
            VendorInput(name="  ")


def test_category_name_is_stripped_and_required():
    assert CategoryInput(name="  Rent ").name == "Rent"
    with pytest.raises(ValidationError, match="Category name cannot be empty"):
        CategoryInput(name="")


def test_income_must_not_be_negative():
    assert IncomeUpdate(amount=0).amount == 0
    with pytest.raises(ValidationError):
        IncomeUpdate(amount=-1)


@pytest.mark.parametrize("amount", ["nan", "inf"])
def test_income_must_be_finite(amount):
    with pytest.raises(ValidationError, match="finite number"):
        IncomeUpdate(amount=amount)
    with pytest.raises(ValidationError, match="finite number"):
        IncomeSetting(amount=amount)
