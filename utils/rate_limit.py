"""Shared slowapi limiter, applied to the mutating API routes."""
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

DEFAULT_RATE_LIMIT = "60/minute"

# In-memory storage (no storage_uri): limits are per process
limiter = Limiter(key_func=get_remote_address)


def mutation_rate_limit() -> str:
    """Read at request time so a RATE_LIMIT from .env is honored."""
    return os.getenv("RATE_LIMIT", DEFAULT_RATE_LIMIT)
