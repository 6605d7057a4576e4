"""Pydantic models for Category data"""
from pydantic import BaseModel, field_validator
from typing import Optional

class CategoryInput(BaseModel):
    name: str

    @field_validator('name')
    @classmethod
    def name_not_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Category name cannot be empty.")
        return value

class Category(CategoryInput):
    """A named classification tag for expenses. Names are unique, ignoring case."""
    id: Optional[str] = None

    class Config:
        populate_by_name = True
        from_attributes = True
