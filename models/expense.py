"""Pydantic models for Expense data"""
from pydantic import BaseModel, Field, field_validator
from datetime import date
from typing import Optional

NO_VENDOR_VALUE = "__none__" # Form value for the "None" vendor option
MIN_EXPENSE_DATE = date(1900, 1, 1)

class Expense(BaseModel):
    """
    Represents a single dated, categorized expense record.
    """
    id: Optional[str] = None
    date: date
    category: str
    vendor: Optional[str] = None
    amount: float
    notes: Optional[str] = None

    class Config:
        populate_by_name = True
        from_attributes = True

class ExpenseCreate(BaseModel):
    """
    Input for a new expense, as submitted by the expense form or the API.
    Expenses cannot be edited afterwards, only deleted.
    """
    date: date
    category: str
    vendor: Optional[str] = None
    amount: float = Field(..., allow_inf_nan=False, description="Positive amount spent.")
    notes: Optional[str] = None

    @field_validator('amount')
    @classmethod
    def amount_must_be_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Amount must be positive.")
        return round(value, 2)

    @field_validator('date')
    @classmethod
    def date_in_range(cls, value: date) -> date:
        if value > date.today():
            raise ValueError("Expense date cannot be in the future.")
        if value < MIN_EXPENSE_DATE:
            raise ValueError("Expense date cannot be before 1900-01-01.")
        return value

    @field_validator('category')
    @classmethod
    def category_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Category is required.")
        return value

    @field_validator('vendor', 'notes', mode='before')
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            if not value or value == NO_VENDOR_VALUE:
                return None
        return value
