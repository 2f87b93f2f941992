"""
Repository Layer Exceptions.

============================================================
PURPOSE
============================================================
Every SQLAlchemy error raised inside a repository is caught and
re-raised as one of these, carrying the repository name and the
operation that failed.

Services catch RepositoryException per file so one failed insert
does not abort a whole upload batch.

============================================================
"""

from typing import Any, Optional


class RepositoryException(Exception):
    """Base exception for all repository operations."""

    def __init__(
        self,
        message: str,
        repository_name: str,
        operation: str,
        details: Optional[dict] = None
    ) -> None:
        self.message = message
        self.repository_name = repository_name
        self.operation = operation
        self.details = details or {}
        super().__init__(f"[{repository_name}] {operation}: {message}")


# ============================================================
# CALLER ERRORS
# ============================================================

class RecordNotFoundError(RepositoryException):
    """An update targeted a record that does not exist (or is the wrong variant)."""

    def __init__(self, repository_name: str, record_id: Any, operation: str = "get") -> None:
        super().__init__(
            f"Record with id={record_id} not found",
            repository_name,
            operation,
            details={"id": str(record_id)},
        )
        self.record_id = record_id


class ValidationError(RepositoryException):
    """An update named a field the record does not allow to change."""

    def __init__(self, repository_name: str, operation: str, field: str, reason: str) -> None:
        super().__init__(
            f"Validation failed for {field}: {reason}",
            repository_name,
            operation,
            details={"field": field, "reason": reason},
        )
        self.field = field
        self.reason = reason


# ============================================================
# WRAPPED DRIVER ERRORS
# ============================================================

class _DriverError(RepositoryException):
    summary = "Database error"

    def __init__(self, repository_name: str, operation: str, original_error: str) -> None:
        super().__init__(
            f"{self.summary}: {original_error}",
            repository_name,
            operation,
            details={"original_error": original_error},
        )


class ConnectionError(_DriverError):
    """The metadata store could not be reached."""
    summary = "Database connection failed"


class IntegrityError(_DriverError):
    """A constraint was violated (duplicate id, dangling foreign key)."""
    summary = "Integrity constraint violated"


class QueryError(_DriverError):
    """A statement failed for any other reason."""
    summary = "Query failed"


class TransactionError(_DriverError):
    """Commit failed; the session has been rolled back."""
    summary = "Transaction commit failed"
