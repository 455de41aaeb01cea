"""Storage layer: asyncpg connection management and the queue schema."""

from kchoo.storage.database import Database
from kchoo.storage.errors import (
    ConstraintViolation,
    NotFound,
    StoreConflict,
    StoreError,
    StoreUnavailable,
)

__all__ = [
    "ConstraintViolation",
    "Database",
    "NotFound",
    "StoreConflict",
    "StoreError",
    "StoreUnavailable",
]
