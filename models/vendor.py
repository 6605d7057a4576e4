"""Pydantic models for Vendor data"""
from pydantic import BaseModel, EmailStr, ValidationError, field_validator
from typing import Optional

class VendorInput(BaseModel):
    name: str
    contact_person: Optional[str] = None
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = None

    @field_validator('name')
    @classmethod
    def name_not_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Vendor name cannot be empty.")
        return value

    @field_validator('contact_person', 'contact_email', 'contact_phone', mode='before')
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator('contact_email', mode='wrap')
    @classmethod
    def email_format(cls, value, handler):
        # Replace email-validator's detailed reason with the form message
        try:
            return handler(value)
        except ValidationError:
            raise ValueError("Invalid email address.")

class Vendor(VendorInput):
    """
    A named counterparty an expense can be attributed to.
    """
    id: Optional[str] = None

    class Config:
        populate_by_name = True
        from_attributes = True
