"""
Storage Package.

Metadata persistence for the vault.

Modules:
- database: engine and session management
- models/: ORM models of the stored file variants
- repositories/: data access layer
"""

from storage import models  # noqa: F401  registers tables before create_all
from storage.database import Database, DatabaseConfig
from storage.repositories import StoredFileRepository


__all__ = [
    "Database",
    "DatabaseConfig",
    "StoredFileRepository",
]
