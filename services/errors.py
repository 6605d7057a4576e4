"""Errors raised by the service layer and translated by the routes."""
from typing import Optional


class ExpenseWiseError(Exception):
    """Base error. `field` names the form field the error belongs to, if any."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ValidationFailed(ExpenseWiseError, ValueError):
    """Invalid input that is only detectable against stored data."""


class DuplicateNameError(ValidationFailed):
    """A vendor or category with the same name (ignoring case) exists."""

    def __init__(self, message: str, field: str = "name"):
        super().__init__(message, field=field)


class ReferenceInUseError(ExpenseWiseError):
    """Delete blocked: the record is still referenced by an expense."""


class NotFoundError(ExpenseWiseError, LookupError):
    pass
