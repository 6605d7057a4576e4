"""Pydantic models for the income setting and derived summary"""
from pydantic import BaseModel, Field
from typing import List

from models.expense import Expense

INCOME_DOC_ID = "userIncome"
SUMMARY_DOC_ID = "summary"

class IncomeSetting(BaseModel):
    """The single stored monthly income value."""
    id: str = INCOME_DOC_ID
    amount: float = Field(0.0, ge=0, allow_inf_nan=False)

class IncomeUpdate(BaseModel):
    amount: float = Field(..., ge=0, allow_inf_nan=False, description="Monthly income, any non-negative number.")

class SummaryData(BaseModel):
    """Running total of expenses, kept next to the income document."""
    id: str = SUMMARY_DOC_ID
    total_expenses: float = 0.0
    expense_count: int = 0

class DashboardSummary(BaseModel):
    income: float
    total_expenses: float
    expense_count: int
    balance: float
    recent_expenses: List[Expense] = []
