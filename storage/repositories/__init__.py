"""
Repository Layer.

All database access goes through repositories; SQLAlchemy errors
never leave this package unwrapped.
"""

from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import (
    ConnectionError,
    IntegrityError,
    QueryError,
    RecordNotFoundError,
    RepositoryException,
    TransactionError,
    ValidationError,
)
from storage.repositories.stored_files import StoredFileRepository, coerce_record_id


__all__ = [
    "BaseRepository",
    "StoredFileRepository",
    "coerce_record_id",
    "RepositoryException",
    "RecordNotFoundError",
    "IntegrityError",
    "ConnectionError",
    "QueryError",
    "TransactionError",
    "ValidationError",
]
