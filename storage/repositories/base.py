"""
Base Repository Class.

============================================================
PURPOSE
============================================================
Common plumbing for async repositories:
- Error wrapping (SQLAlchemy -> repository exceptions)
- Read helpers
- One flush-then-commit path for every write

============================================================
USAGE
============================================================
Repositories receive an AsyncSession from the caller, which owns
its lifetime (see storage.database.Database.session).

============================================================
"""

import logging
from typing import Any, Generic, List, NoReturn, Optional, Type, TypeVar

from sqlalchemy.exc import (
    IntegrityError as SQLAlchemyIntegrityError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncSession

from storage.models.base import Base
from storage.repositories.exceptions import (
    ConnectionError,
    IntegrityError,
    QueryError,
    TransactionError,
)


T = TypeVar("T", bound=Base)

_WRAPPERS = (
    (OperationalError, ConnectionError),
    (SQLAlchemyIntegrityError, IntegrityError),
)


class BaseRepository(Generic[T]):
    """
    Base class for all repositories.

    Subclasses pass their model class and a name used in log
    records and exception messages.
    """

    def __init__(self, session: AsyncSession, model_class: Type[T], repository_name: str) -> None:
        self._session = session
        self._model_class = model_class
        self._repository_name = repository_name
        self._logger = logging.getLogger(f"repository.{repository_name}")

    # =========================================================
    # ERROR WRAPPING
    # =========================================================

    def _handle_db_error(
        self,
        error: SQLAlchemyError,
        operation: str,
        context: Optional[dict] = None
    ) -> NoReturn:
        self._logger.error(
            f"Database error in {operation}: {error}",
            extra={"context": context or {}},
            exc_info=True
        )
        wrapper = QueryError
        for sa_type, candidate in _WRAPPERS:
            if isinstance(error, sa_type):
                wrapper = candidate
                break
        detail = str(getattr(error, "orig", None) or error)
        raise wrapper(self._repository_name, operation, detail) from error

    # =========================================================
    # READS
    # =========================================================

    async def _execute_query(self, stmt: Any, operation: str) -> List[T]:
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            self._handle_db_error(e, operation)
        return list(result.scalars().all())

    async def _execute_scalar(self, stmt: Any, operation: str) -> Any:
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            self._handle_db_error(e, operation)
        return result.scalar_one_or_none()

    # =========================================================
    # WRITES
    # =========================================================

    async def _flush_and_commit(self, operation: str, context: Optional[dict] = None) -> None:
        """
        Flush pending changes, then commit.

        Statement errors surface from the flush and are wrapped by
        type; a failing commit becomes TransactionError. The session
        is rolled back in both cases.
        """
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            await self._session.rollback()
            self._handle_db_error(e, operation, context)

        try:
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            self._logger.error(f"Commit failed in {operation}: {e}")
            raise TransactionError(self._repository_name, operation, str(e)) from e
